"""
Live schema introspection for dbre.

Reads tables, columns, primary keys, foreign keys and indexes from a live
PostgreSQL catalog and assembles them into Table values keyed by identity.
"""

import logging
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

import asyncpg

from .connection import ConnectionPool
from .dialect import CaseFolding, Dialect, dialect_for_server_version, get_dialect
from ..exceptions import ConfigurationError, IntrospectionError, UnsupportedDialectError
from ..model.identity import IdentifiableTable, IdentityFilter, TableType, identity_of
from ..model.sql_types import sql_type_for
from ..model.structure import (
    Column,
    ForeignKey,
    ForeignKeyReference,
    Index,
    PrimaryKey,
    Table,
)


logger = logging.getLogger(__name__)


SYSTEM_SCHEMAS = ("information_schema", "pg_catalog", "pg_toast")

TABLES_QUERY = """
    SELECT table_catalog, table_schema, table_name, table_type
    FROM information_schema.tables
    WHERE ($1::text IS NULL OR table_catalog LIKE $1)
    AND ($2::text IS NULL OR table_schema LIKE $2)
    AND ($3::text IS NULL OR table_name LIKE $3)
    AND table_type = ANY($4::text[])
    AND table_schema <> ALL($5::text[])
    ORDER BY table_schema, table_name
"""

COLUMNS_QUERY = """
    SELECT
        c.column_name,
        c.data_type,
        c.udt_name,
        c.is_nullable = 'YES' AS nullable,
        COALESCE(
            c.character_maximum_length,
            c.numeric_precision,
            c.datetime_precision,
            0
        ) AS column_size,
        COALESCE(c.numeric_scale, 0) AS decimal_digits,
        format_type(a.atttypid, a.atttypmod) AS type_name,
        col_description(a.attrelid, a.attnum) AS remarks
    FROM information_schema.columns c
    JOIN pg_catalog.pg_namespace n ON n.nspname = c.table_schema
    JOIN pg_catalog.pg_class r ON r.relname = c.table_name AND r.relnamespace = n.oid
    JOIN pg_catalog.pg_attribute a ON a.attrelid = r.oid AND a.attname = c.column_name
    WHERE c.table_schema = $1 AND c.table_name = $2
    ORDER BY c.column_name
"""

PRIMARY_KEYS_QUERY = """
    SELECT con.conname AS pk_name, a.attname AS column_name, k.ord AS key_seq
    FROM pg_catalog.pg_constraint con
    JOIN pg_catalog.pg_class r ON r.oid = con.conrelid
    JOIN pg_catalog.pg_namespace n ON n.oid = r.relnamespace
    CROSS JOIN LATERAL unnest(con.conkey) WITH ORDINALITY AS k(attnum, ord)
    JOIN pg_catalog.pg_attribute a ON a.attrelid = r.oid AND a.attnum = k.attnum
    WHERE con.contype = 'p' AND n.nspname = $1 AND r.relname = $2
    ORDER BY k.ord
"""

FOREIGN_KEYS_QUERY = """
    SELECT
        con.conname AS fk_name,
        fr.relname AS pk_table,
        la.attname AS fk_column,
        ra.attname AS pk_column,
        k.ord AS key_seq
    FROM pg_catalog.pg_constraint con
    JOIN pg_catalog.pg_class r ON r.oid = con.conrelid
    JOIN pg_catalog.pg_namespace n ON n.oid = r.relnamespace
    JOIN pg_catalog.pg_class fr ON fr.oid = con.confrelid
    CROSS JOIN LATERAL unnest(con.conkey, con.confkey)
        WITH ORDINALITY AS k(local_attnum, foreign_attnum, ord)
    JOIN pg_catalog.pg_attribute la ON la.attrelid = con.conrelid AND la.attnum = k.local_attnum
    JOIN pg_catalog.pg_attribute ra ON ra.attrelid = con.confrelid AND ra.attnum = k.foreign_attnum
    WHERE con.contype = 'f' AND n.nspname = $1 AND r.relname = $2
    ORDER BY con.conname, k.ord
"""

INDEXES_QUERY = """
    SELECT
        ic.relname AS index_name,
        a.attname AS column_name,
        NOT ix.indisunique AS non_unique,
        CASE
            WHEN ix.indisclustered THEN 1
            WHEN am.amname = 'hash' THEN 2
            ELSE 3
        END AS sort_type
    FROM pg_catalog.pg_index ix
    JOIN pg_catalog.pg_class r ON r.oid = ix.indrelid
    JOIN pg_catalog.pg_namespace n ON n.oid = r.relnamespace
    JOIN pg_catalog.pg_class ic ON ic.oid = ix.indexrelid
    JOIN pg_catalog.pg_am am ON am.oid = ic.relam
    CROSS JOIN LATERAL unnest(ix.indkey::int2[]) WITH ORDINALITY AS k(attnum, ord)
    JOIN pg_catalog.pg_attribute a ON a.attrelid = r.oid AND a.attnum = k.attnum
    WHERE n.nspname = $1 AND r.relname = $2
    ORDER BY ic.relname, k.ord
"""

TABLE_REMARKS_QUERY = """
    SELECT obj_description(r.oid, 'pg_class')
    FROM pg_catalog.pg_class r
    JOIN pg_catalog.pg_namespace n ON n.oid = r.relnamespace
    WHERE n.nspname = $1 AND r.relname = $2
"""


async def resolve_dialect(pool: ConnectionPool, name: Optional[str] = None) -> Dialect:
    """Resolve the dialect of a connection once per run.

    The server version banner decides. A configured name must agree with it
    and is used on its own only when the banner is not recognised.
    """
    configured = get_dialect(name) if name else None
    try:
        version = await pool.fetchval("SELECT version()")
    except Exception as e:
        raise IntrospectionError("Failed to read server version", cause=e) from e

    try:
        dialect = dialect_for_server_version(version)
    except UnsupportedDialectError:
        if configured is None:
            raise
        logger.warning(f"Unrecognised server {version!r}, using configured {configured.name} dialect")
        return configured

    if configured is not None and configured.name != dialect.name:
        raise ConfigurationError(
            f"Configured dialect {configured.name} does not match the {dialect.name} server",
            details={"server": version},
        )
    logger.info(f"Detected {dialect.name} dialect (identifiers stored {dialect.case_folding.value})")
    return dialect


async def detect_case_folding(pool: ConnectionPool, dialect_name: Optional[str] = None) -> CaseFolding:
    """Identifier case-folding convention of the connected catalog."""
    dialect = await resolve_dialect(pool, dialect_name)
    return dialect.case_folding


class LiveSchemaReader:
    """Builds Table values from a live catalog.

    The case-folding policy is resolved by the caller and applied to every
    filter before querying, because catalog lookups are case sensitive.
    """

    def __init__(
        self,
        pool: ConnectionPool,
        case_folding: CaseFolding = CaseFolding.LOWER,
        include_tables: Optional[Iterable[str]] = None,
        exclude_tables: Optional[Iterable[str]] = None,
    ):
        self.pool = pool
        self.case_folding = case_folding
        self.include_tables: Set[str] = {t.lower() for t in include_tables or ()}
        self.exclude_tables: Set[str] = {t.lower() for t in exclude_tables or ()}

    def fold_filter(self, identity_filter: IdentityFilter) -> IdentityFilter:
        """Apply the catalog's case-folding convention to a filter."""
        fold = self.case_folding.fold
        return identity_filter.with_names(
            fold(identity_filter.catalog),
            fold(identity_filter.schema),
            fold(identity_filter.table),
        )

    async def read_tables(
        self, identity_filter: Optional[IdentityFilter] = None
    ) -> Dict[IdentifiableTable, Table]:
        """Read every table matching the filter, fully populated."""
        folded = self.fold_filter(identity_filter or IdentityFilter())
        tables: Dict[IdentifiableTable, Table] = OrderedDict()

        try:
            async with self.pool.acquire() as conn:
                for row in await self._list_tables(conn, folded):
                    if not self._is_selected(row["table_name"]):
                        logger.debug(f"Skipping table {row['table_name']}")
                        continue
                    table = await self._read_table(conn, row)
                    if table.identity in tables:
                        logger.debug(f"Ignoring duplicate table {table.id}")
                        continue
                    tables[table.identity] = table
        except IntrospectionError:
            raise
        except Exception as e:
            logger.error(f"Error reading tables: {e}")
            raise IntrospectionError("Failed to read tables from database", cause=e) from e

        logger.info(f"Read {len(tables)} tables from database")
        return tables

    async def read_table(self, identity: IdentifiableTable) -> Optional[Table]:
        """Read a single table, None if it does not exist."""
        tables = await self.read_tables(IdentityFilter.for_identity(identity))
        return tables.get(identity)

    def _is_selected(self, table_name: str) -> bool:
        name = table_name.lower()
        if self.include_tables and name not in self.include_tables:
            return False
        return name not in self.exclude_tables

    async def _list_tables(self, conn: asyncpg.Connection, folded: IdentityFilter) -> List[Any]:
        types = [table_type.catalog_name for table_type in folded.table_types]
        try:
            return await conn.fetch(
                TABLES_QUERY,
                folded.catalog,
                folded.schema,
                folded.table,
                types,
                list(SYSTEM_SCHEMAS),
            )
        except Exception as e:
            raise IntrospectionError("Failed to list tables", cause=e) from e

    async def _read_table(self, conn: asyncpg.Connection, row: Any) -> Table:
        schema = row["table_schema"]
        name = row["table_name"]
        qualified = f"{schema}.{name}"
        identity = identity_of(
            row["table_catalog"], schema, name, TableType.parse(row["table_type"])
        )

        try:
            columns = [self._column(r) for r in await conn.fetch(COLUMNS_QUERY, schema, name)]
            primary_keys = [
                PrimaryKey(name=r["pk_name"], column_name=r["column_name"], key_sequence=int(r["key_seq"]))
                for r in await conn.fetch(PRIMARY_KEYS_QUERY, schema, name)
            ]
            foreign_keys = self._foreign_keys(
                columns, await conn.fetch(FOREIGN_KEYS_QUERY, schema, name)
            )
            indexes = [
                Index(
                    name=r["index_name"],
                    column_name=r["column_name"],
                    non_unique=bool(r["non_unique"]),
                    sort_type=int(r["sort_type"]),
                )
                for r in await conn.fetch(INDEXES_QUERY, schema, name)
            ]
            remarks = await conn.fetchval(TABLE_REMARKS_QUERY, schema, name)
        except Exception as e:
            logger.error(f"Error reading table {qualified}: {e}")
            raise IntrospectionError(
                "Failed to read table metadata", table=qualified, cause=e
            ) from e

        logger.debug(
            f"Read {qualified}: {len(columns)} columns, {len(primary_keys)} primary key columns, "
            f"{len(foreign_keys)} foreign keys, {len(indexes)} index columns"
        )
        return Table.from_live_schema(
            identity, columns, primary_keys, foreign_keys, indexes, remarks=remarks
        )

    @staticmethod
    def _column(row: Any) -> Column:
        data_type = row["data_type"]
        if data_type in ("USER-DEFINED", "ARRAY"):
            code = sql_type_for(data_type if data_type == "ARRAY" else row["udt_name"])
        else:
            code = sql_type_for(row["udt_name"])
            if code.name == "OTHER":
                code = sql_type_for(data_type)
        return Column(
            name=row["column_name"],
            data_type=int(code),
            column_size=int(row["column_size"] or 0),
            decimal_digits=int(row["decimal_digits"] or 0),
            nullable=bool(row["nullable"]),
            type_name=row["type_name"] or data_type,
            remarks=row["remarks"],
        )

    @staticmethod
    def _foreign_keys(columns: Sequence[Column], rows: Iterable[Any]) -> List[ForeignKey]:
        by_name = {column.name: column for column in columns}
        grouped: Dict[tuple, List[ForeignKeyReference]] = OrderedDict()
        for row in rows:
            key = (row["fk_name"], row["pk_table"])
            column = by_name.get(row["fk_column"])
            if column is None:
                raise IntrospectionError(
                    f"Foreign key {row['fk_name']} references unknown column {row['fk_column']}"
                )
            grouped.setdefault(key, []).append(
                ForeignKeyReference(
                    column=column,
                    referenced_column=row["pk_column"],
                    key_sequence=int(row["key_seq"]),
                )
            )
        return [
            ForeignKey(name=name, referenced_table=referenced, references=tuple(references))
            for (name, referenced), references in grouped.items()
        ]
