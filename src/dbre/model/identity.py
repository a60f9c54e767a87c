"""
Table identity for dbre.

An IdentifiableTable is the canonical, case-insensitive key of a table. It is
used both to match live tables against the persisted document and as the key
of every table map produced by the readers.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Tuple

from ..exceptions import DbreError


class TableType(str, Enum):
    """Kinds of relations that are reverse engineered."""

    TABLE = "TABLE"
    VIEW = "VIEW"

    @classmethod
    def parse(cls, value: str) -> "TableType":
        """Parse a table type from a catalog or document value."""
        normalized = (value or "").strip().upper()
        if normalized == "BASE TABLE":
            return cls.TABLE
        try:
            return cls(normalized)
        except ValueError:
            raise DbreError(f"Unknown table type: {value!r}") from None

    @property
    def catalog_name(self) -> str:
        """Name used for this type by information_schema.tables."""
        return "BASE TABLE" if self is TableType.TABLE else self.value


def _fold(value: Optional[str]) -> Optional[str]:
    return value.lower() if value is not None else None


@dataclass(frozen=True, eq=False)
class IdentifiableTable:
    """Identity of a table: catalog, schema, name and type.

    Equality and hashing ignore case on every field; None is only equal
    to None.
    """

    table: str
    table_type: TableType = TableType.TABLE
    catalog: Optional[str] = None
    schema: Optional[str] = None

    def _key(self) -> Tuple[Optional[str], Optional[str], str, TableType]:
        return (_fold(self.catalog), _fold(self.schema), self.table.lower(), self.table_type)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, IdentifiableTable):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def canonical_id(self) -> str:
        """Composite key used as the ``id`` attribute in the persisted document."""
        parts = [self.table_type.value]
        if self.catalog is not None:
            parts.append(self.catalog)
        if self.schema is not None:
            parts.append(self.schema)
        parts.append(self.table)
        return ".".join(parts)

    def __str__(self) -> str:
        return self.canonical_id()


def identity_of(
    catalog: Optional[str],
    schema: Optional[str],
    table: str,
    table_type: TableType = TableType.TABLE,
) -> IdentifiableTable:
    """Build the identity of a table.

    Only a single implicit catalog and schema is supported: the supplied
    catalog and schema are accepted but not retained, so tables are
    identified by name and type alone.
    """
    if not table:
        raise DbreError("Table name is required")
    return IdentifiableTable(table=table, table_type=TableType(table_type))


@dataclass(frozen=True)
class IdentityFilter:
    """Filter used to select tables from a live catalog.

    Each of catalog, schema and table is a SQL LIKE pattern; None matches
    anything.
    """

    catalog: Optional[str] = None
    schema: Optional[str] = None
    table: Optional[str] = None
    table_types: Tuple[TableType, ...] = (TableType.TABLE, TableType.VIEW)

    @classmethod
    def for_identity(cls, identity: IdentifiableTable) -> "IdentityFilter":
        """Filter that selects exactly one table identity."""
        return cls(
            catalog=identity.catalog,
            schema=identity.schema,
            table=identity.table,
            table_types=(identity.table_type,),
        )

    def with_names(
        self,
        catalog: Optional[str],
        schema: Optional[str],
        table: Optional[str],
    ) -> "IdentityFilter":
        """Copy of this filter with different name patterns."""
        return replace(self, catalog=catalog, schema=schema, table=table)
