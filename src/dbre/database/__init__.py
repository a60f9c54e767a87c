"""
Database integration for dbre.

This module provides:
- Connection pool management
- Dialect policies (case folding, sequence support)
- Live schema introspection
- A read-only facade for table and sequence lookups
"""

from .connection import ConnectionConfig, ConnectionPool
from .dialect import CaseFolding, Dialect, DIALECTS, dialect_for_server_version, get_dialect
from .introspection import LiveSchemaReader, detect_case_folding, resolve_dialect
from .facade import DatabaseFacade

__all__ = [
    "ConnectionConfig",
    "ConnectionPool",
    "CaseFolding",
    "Dialect",
    "DIALECTS",
    "dialect_for_server_version",
    "get_dialect",
    "LiveSchemaReader",
    "detect_case_folding",
    "resolve_dialect",
    "DatabaseFacade",
]
