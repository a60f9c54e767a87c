"""
Schema model package for dbre.

This package provides:
- Case-insensitive table identities
- Immutable table, column, key and index values
- Portable SQL type codes
"""

from .identity import IdentifiableTable, IdentityFilter, TableType, identity_of
from .sql_types import SqlType, normalize_type_name, sql_type_for, sql_type_name
from .structure import (
    Column,
    ForeignKey,
    ForeignKeyReference,
    Index,
    PrimaryKey,
    Table,
    TableOrigin,
    table_map,
)

__all__ = [
    "IdentifiableTable",
    "IdentityFilter",
    "TableType",
    "identity_of",
    "SqlType",
    "normalize_type_name",
    "sql_type_for",
    "sql_type_name",
    "Column",
    "ForeignKey",
    "ForeignKeyReference",
    "Index",
    "PrimaryKey",
    "Table",
    "TableOrigin",
    "table_map",
]
