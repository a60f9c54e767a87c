"""
Exception classes for dbre.
"""

from typing import Any, Dict, Optional


class DbreError(Exception):
    """Base exception for all dbre errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        result = self.message
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            result += f" [{details_str}]"
        if self.cause:
            result += f" (caused by: {self.cause})"
        return result


class ConfigurationError(DbreError):
    """Raised when there's an error in configuration."""

    pass


class DatabaseError(DbreError):
    """Raised when there's an error with database operations."""

    pass


class DatabaseConnectionError(DatabaseError):
    """Raised when a database connection cannot be opened or used."""

    pass


class DatabaseConfigurationError(DatabaseError):
    """Raised when there's an error in database configuration."""

    pass


class IntrospectionError(DatabaseError):
    """Raised when reading the live catalog fails."""

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        details = {"table": table} if table else None
        super().__init__(message, details, cause)
        self.table = table


class UnsupportedDialectError(DatabaseError):
    """Raised when a database dialect name is not recognised."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unsupported database dialect: {name}")
        self.name = name


class DocumentError(DbreError):
    """Raised when there's an error with the persisted schema document."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        details = {"path": path} if path else None
        super().__init__(message, details, cause)
        self.path = path


class DocumentNotFoundError(DocumentError):
    """Raised when the persisted document is required but does not exist."""

    pass


class DocumentParseError(DocumentError):
    """Raised when the persisted document is malformed."""

    pass
