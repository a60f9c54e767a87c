"""
Configuration system for dbre using Pydantic.
"""

import os
from pathlib import Path
from typing import Any, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .database.connection import ConnectionConfig
from .exceptions import ConfigurationError
from .model.identity import IdentityFilter, TableType


class DatabaseConnection(BaseModel):
    """Database connection configuration."""

    host: str = Field(..., description="Database host")
    port: int = Field(5432, description="Database port")
    database: str = Field(..., description="Database name")
    user: str = Field(..., description="Database user")
    password: str = Field(..., description="Database password")
    ssl_mode: str = Field("prefer", description="SSL mode")
    connect_timeout: int = Field(30, description="Connection timeout in seconds")
    command_timeout: int = Field(60, description="Command timeout in seconds")
    dialect: Optional[str] = Field(
        None, description="Dialect name; must agree with the server, which decides when omitted"
    )

    def to_connection_config(self) -> ConnectionConfig:
        """Connection pool settings for this database; sessions only read the catalog."""
        return ConnectionConfig(
            host=self.host,
            port=self.port,
            database=self.database,
            user=self.user,
            password=self.password,
            ssl_mode=self.ssl_mode,
            connect_timeout=float(self.connect_timeout),
            command_timeout=float(self.command_timeout),
            read_only=True,
        )


class IntrospectionConfig(BaseModel):
    """Which tables to read from the live schema."""

    catalog_pattern: Optional[str] = Field(
        None, description="Catalog LIKE pattern, any catalog when omitted"
    )
    schema_pattern: Optional[str] = Field(
        None, description="Schema LIKE pattern, any schema when omitted"
    )
    table_pattern: Optional[str] = Field(
        None, description="Table name LIKE pattern, any table when omitted"
    )
    include_views: bool = Field(True, description="Also reverse engineer views")
    include_tables: List[str] = Field(
        default_factory=list, description="Only these tables (empty means all)"
    )
    exclude_tables: List[str] = Field(
        default_factory=list, description="Tables to skip"
    )

    def to_filter(self, table: Optional[str] = None) -> IdentityFilter:
        """Identity filter for these settings, optionally narrowed to one table."""
        table_types = (TableType.TABLE, TableType.VIEW) if self.include_views else (TableType.TABLE,)
        return IdentityFilter(
            catalog=self.catalog_pattern,
            schema=self.schema_pattern,
            table=table or self.table_pattern,
            table_types=table_types,
        )


class DocumentConfig(BaseModel):
    """Persisted document configuration."""

    path: str = Field("dbre.xml", description="Path of the persisted document")
    template: Optional[str] = Field(
        None, description="Template used when the document does not exist yet"
    )
    package: Optional[str] = Field(
        None, description="Package that overrides the document package"
    )
    default_package: Optional[str] = Field(
        None, description="Project default package, used when no other package applies"
    )

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Document path is required")
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        "INFO", description="Log level"
    )
    format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format",
    )
    file: Optional[str] = Field(None, description="Log file path")
    max_size: int = Field(10485760, description="Max log file size in bytes")  # 10MB
    backup_count: int = Field(5, description="Number of backup log files")


class DbreConfig(BaseSettings):
    """Main dbre configuration."""

    debug: bool = Field(False, description="Enable debug mode")

    database: Optional[DatabaseConnection] = Field(
        None, description="Live database connection"
    )
    introspection: IntrospectionConfig = Field(
        default_factory=IntrospectionConfig, description="Introspection configuration"
    )
    document: DocumentConfig = Field(
        default_factory=DocumentConfig, description="Persisted document configuration"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="DBRE_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "DbreConfig":
        """Load configuration from a YAML file."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)

            # Expand environment variables in the data
            data = cls._expand_env_vars(data or {})

            return cls(**data)
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file: {e}")
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}")
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration structure in {path}: {e}")

    @classmethod
    def _expand_env_vars(cls, data: Any) -> Any:
        """Recursively expand environment variables in configuration data."""
        if isinstance(data, dict):
            return {k: cls._expand_env_vars(v) for k, v in data.items()}
        elif isinstance(data, list):
            return [cls._expand_env_vars(item) for item in data]
        elif isinstance(data, str):
            return os.path.expandvars(data)
        else:
            return data

    def require_database(self) -> DatabaseConnection:
        """Database settings, which most commands cannot run without."""
        if self.database is None:
            raise ConfigurationError("No database configured")
        return self.database

    def validate_config(self) -> None:
        """Validate the configuration for consistency."""
        if self.database is None:
            raise ConfigurationError("Configuration has no database section")

        overlap = {t.lower() for t in self.introspection.include_tables} & {
            t.lower() for t in self.introspection.exclude_tables
        }
        if overlap:
            raise ConfigurationError(
                f"Tables both included and excluded: {', '.join(sorted(overlap))}"
            )

    def to_yaml(self, path: Union[str, Path]) -> None:
        """Save configuration to a YAML file."""
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(
                self.model_dump(exclude_none=True),
                f,
                default_flow_style=False,
                indent=2,
                sort_keys=False,
            )
