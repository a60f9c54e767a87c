"""
Pytest configuration and shared fixtures for dbre tests.

This module provides shared fixtures and utilities for testing all dbre components.
"""

from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
import yaml

from dbre.database.connection import ConnectionPool
from dbre.database.introspection import (
    COLUMNS_QUERY,
    FOREIGN_KEYS_QUERY,
    INDEXES_QUERY,
    PRIMARY_KEYS_QUERY,
    TABLE_REMARKS_QUERY,
    TABLES_QUERY,
)
from dbre.document.store import DocumentStore
from dbre.model.identity import TableType, identity_of
from dbre.model.sql_types import SqlType
from dbre.model.structure import Column, ForeignKey, ForeignKeyReference, Index, PrimaryKey, Table


# ============================================================================
# Model Fixtures
# ============================================================================

def make_column(
    name: str,
    data_type: int = SqlType.INTEGER,
    type_name: str = "int4",
    column_size: int = 10,
    decimal_digits: int = 0,
    nullable: bool = True,
    remarks: Optional[str] = None,
) -> Column:
    """Build a column with sensible defaults."""
    return Column(
        name=name,
        data_type=int(data_type),
        column_size=column_size,
        decimal_digits=decimal_digits,
        nullable=nullable,
        type_name=type_name,
        remarks=remarks,
    )


@pytest.fixture
def column_factory():
    """The make_column helper, for tests that build their own tables."""
    return make_column


@pytest.fixture
def person_table() -> Table:
    """PERSON(ID int not null primary key, NAME varchar(50) nullable)."""
    return Table.from_live_schema(
        identity_of(None, None, "PERSON", TableType.TABLE),
        columns=[
            make_column("ID", nullable=False),
            make_column("NAME", SqlType.VARCHAR, "varchar(50)", column_size=50),
        ],
        primary_keys=[PrimaryKey(name="PERSON_PK", column_name="ID", key_sequence=1)],
    )


@pytest.fixture
def address_table() -> Table:
    """ADDRESS with a foreign key to PERSON and two indexes."""
    person_id = make_column("PERSON_ID", nullable=False)
    return Table.from_live_schema(
        identity_of(None, None, "ADDRESS", TableType.TABLE),
        columns=[
            make_column("ID", nullable=False),
            person_id,
            make_column("CITY", SqlType.VARCHAR, "varchar(100)", column_size=100, remarks="City name"),
        ],
        primary_keys=[PrimaryKey(name="ADDRESS_PK", column_name="ID", key_sequence=1)],
        foreign_keys=[
            ForeignKey(
                name="ADDRESS_PERSON_FK",
                referenced_table="PERSON",
                references=(ForeignKeyReference(person_id, "ID", 1),),
            )
        ],
        indexes=[
            Index(name="ADDRESS_PK", column_name="ID", non_unique=False),
            Index(name="ADDRESS_CITY_IDX", column_name="CITY", non_unique=True),
        ],
    )


@pytest.fixture
def live_tables(person_table, address_table) -> List[Table]:
    """Live schema with PERSON and ADDRESS."""
    return [person_table, address_table]


# ============================================================================
# Document Fixtures
# ============================================================================

@pytest.fixture
def document_path(tmp_path) -> str:
    """Path of a document that does not exist yet."""
    return str(tmp_path / "dbre.xml")


@pytest.fixture
def document_store(document_path) -> DocumentStore:
    """Document store backed by a temporary directory."""
    return DocumentStore(document_path)


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def mock_connection() -> MagicMock:
    """Mock asyncpg connection."""
    conn = MagicMock()
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchval = AsyncMock(return_value=None)
    return conn


@pytest.fixture
def mock_pool(mock_connection) -> MagicMock:
    """Mock connection pool whose acquire() yields mock_connection."""
    pool = MagicMock(spec=ConnectionPool)

    @asynccontextmanager
    async def acquire():
        yield mock_connection

    pool.acquire = MagicMock(side_effect=acquire)
    pool.fetch = AsyncMock(return_value=[])
    pool.fetchval = AsyncMock(return_value="PostgreSQL 16.2 on x86_64-pc-linux-gnu")
    return pool


class CatalogRows:
    """Routes catalog queries to canned rows, like a tiny PostgreSQL catalog."""

    def __init__(self):
        self.tables: List[Dict[str, Any]] = []
        self.columns: Dict[str, List[Dict[str, Any]]] = {}
        self.primary_keys: Dict[str, List[Dict[str, Any]]] = {}
        self.foreign_keys: Dict[str, List[Dict[str, Any]]] = {}
        self.indexes: Dict[str, List[Dict[str, Any]]] = {}
        self.remarks: Dict[str, Optional[str]] = {}

    def add_table(self, name: str, table_type: str = "BASE TABLE", schema: str = "public"):
        self.tables.append(
            {
                "table_catalog": "testdb",
                "table_schema": schema,
                "table_name": name,
                "table_type": table_type,
            }
        )

    def add_column(
        self,
        table: str,
        name: str,
        data_type: str = "integer",
        udt_name: str = "int4",
        type_name: str = "integer",
        nullable: bool = True,
        column_size: int = 32,
        decimal_digits: int = 0,
        remarks: Optional[str] = None,
    ):
        self.columns.setdefault(table, []).append(
            {
                "column_name": name,
                "data_type": data_type,
                "udt_name": udt_name,
                "nullable": nullable,
                "column_size": column_size,
                "decimal_digits": decimal_digits,
                "type_name": type_name,
                "remarks": remarks,
            }
        )

    async def fetch(self, query: str, *args):
        if query == TABLES_QUERY:
            return list(self.tables)
        table = args[1]
        if query == COLUMNS_QUERY:
            return sorted(self.columns.get(table, []), key=lambda r: r["column_name"])
        if query == PRIMARY_KEYS_QUERY:
            return self.primary_keys.get(table, [])
        if query == FOREIGN_KEYS_QUERY:
            return self.foreign_keys.get(table, [])
        if query == INDEXES_QUERY:
            return self.indexes.get(table, [])
        raise AssertionError(f"Unexpected query: {query}")

    async def fetchval(self, query: str, *args):
        if query == TABLE_REMARKS_QUERY:
            return self.remarks.get(args[1])
        raise AssertionError(f"Unexpected query: {query}")


@pytest.fixture
def catalog(mock_connection) -> CatalogRows:
    """Canned catalog wired into mock_connection."""
    rows = CatalogRows()
    mock_connection.fetch.side_effect = rows.fetch
    mock_connection.fetchval.side_effect = rows.fetchval
    return rows


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config_data() -> Dict[str, Any]:
    """Sample configuration data for testing."""
    return {
        "database": {
            "host": "localhost",
            "port": 5432,
            "database": "testdb",
            "user": "test_user",
            "password": "test_pass",
        },
        "introspection": {
            "schema_pattern": "public",
            "exclude_tables": ["flyway_schema_history"],
        },
        "document": {
            "path": "dbre.xml",
            "default_package": "com.example.domain",
        },
        "logging": {"level": "INFO"},
    }


@pytest.fixture
def temp_config_file(sample_config_data, tmp_path) -> str:
    """Temporary configuration file whose document lives next to it."""
    data = dict(sample_config_data)
    data["document"] = dict(data["document"], path=str(tmp_path / "dbre.xml"))
    path = tmp_path / "dbre-config.yaml"
    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(data, f)
    return str(path)
