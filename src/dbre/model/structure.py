"""
Structural schema model for dbre.

Tables, columns, keys and indexes are immutable values built once per run,
either from a live catalog or from a persisted document. Both origins
produce the same Table type through the from_live_schema and
from_persisted_document constructors.
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from .identity import IdentifiableTable, TableType
from .sql_types import normalize_type_name, sql_type_name
from ..exceptions import DbreError


logger = logging.getLogger(__name__)


# Index sort types as reported by catalog metadata APIs
INDEX_STATISTIC = 0
INDEX_CLUSTERED = 1
INDEX_HASHED = 2
INDEX_OTHER = 3


class TableOrigin(str, Enum):
    """Where a Table value was read from."""

    LIVE = "live"
    PERSISTED = "persisted"


@dataclass(frozen=True)
class Column:
    """A table column.

    Primary key membership is stored on the column itself as a position
    (1-based key sequence) and the name of the key it belongs to.
    """

    name: str
    data_type: int
    column_size: int
    decimal_digits: int
    nullable: bool
    type_name: str
    remarks: Optional[str] = None
    primary_key_position: Optional[int] = None
    primary_key_name: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "type_name", normalize_type_name(self.type_name))
        if self.remarks == "":
            object.__setattr__(self, "remarks", None)

    @property
    def local_id(self) -> str:
        return self.name

    @property
    def type(self) -> str:
        """Name of the SQL type code."""
        return sql_type_name(self.data_type)

    @property
    def is_primary_key(self) -> bool:
        return self.primary_key_position is not None

    def with_primary_key(self, name: Optional[str], position: int) -> "Column":
        """Copy of this column marked as part of a primary key."""
        return replace(self, primary_key_name=name, primary_key_position=position)

    def __str__(self) -> str:
        result = f"{self.name} {self.type_name}"
        if self.column_size:
            if self.decimal_digits:
                result += f"({self.column_size},{self.decimal_digits})"
            else:
                result += f"({self.column_size})"
        if not self.nullable:
            result += " NOT NULL"
        if self.is_primary_key:
            result += f" PK#{self.primary_key_position}"
        return result


@dataclass(frozen=True)
class PrimaryKey:
    """One column of a primary key."""

    name: str
    column_name: str
    key_sequence: int

    @property
    def local_id(self) -> str:
        return f"{self.name}.{self.column_name}"


@dataclass(frozen=True)
class ForeignKeyReference:
    """Pairing of a local column with the column it references."""

    column: Column
    referenced_column: str
    key_sequence: int


@dataclass(frozen=True)
class ForeignKey:
    """A foreign key relationship, references ordered by key sequence."""

    name: str
    referenced_table: str
    references: Tuple[ForeignKeyReference, ...] = ()

    def __post_init__(self):
        ordered = tuple(sorted(self.references, key=lambda r: r.key_sequence))
        object.__setattr__(self, "references", ordered)

    @property
    def local_id(self) -> str:
        return f"{self.name}.{self.referenced_table}"

    @property
    def columns(self) -> Tuple[Column, ...]:
        return tuple(reference.column for reference in self.references)


@dataclass(frozen=True)
class Index:
    """One column of an index."""

    name: str
    column_name: str
    non_unique: bool
    sort_type: int = INDEX_OTHER

    @property
    def local_id(self) -> str:
        return f"{self.name}.{self.column_name}"

    @property
    def is_statistic(self) -> bool:
        """Statistics entries are reported by some catalogs but are not indexes."""
        return self.sort_type == INDEX_STATISTIC


@dataclass(frozen=True, eq=False)
class Table:
    """A table or view and its structure.

    Two tables are equal when their identities are equal, regardless of
    content. Use same_structure() to compare content.
    """

    identity: IdentifiableTable
    columns: Tuple[Column, ...] = ()
    foreign_keys: Tuple[ForeignKey, ...] = ()
    indexes: Tuple[Index, ...] = ()
    origin: TableOrigin = TableOrigin.LIVE
    remarks: Optional[str] = field(default=None, compare=False)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Table):
            return NotImplemented
        return self.identity == other.identity

    def __hash__(self) -> int:
        return hash(self.identity)

    @property
    def name(self) -> str:
        return self.identity.table

    @property
    def table_type(self) -> TableType:
        return self.identity.table_type

    @property
    def id(self) -> str:
        return self.identity.canonical_id()

    @property
    def primary_keys(self) -> Tuple[PrimaryKey, ...]:
        """Primary key projection derived from the columns."""
        keys = [
            PrimaryKey(
                name=column.primary_key_name or "",
                column_name=column.name,
                key_sequence=column.primary_key_position,
            )
            for column in self.columns
            if column.is_primary_key
        ]
        return tuple(sorted(keys, key=lambda k: (k.key_sequence, k.column_name)))

    def get_column(self, name: str) -> Optional[Column]:
        """Get a column by name."""
        for column in self.columns:
            if column.name == name:
                return column
        return None

    def has_column(self, name: str) -> bool:
        return self.get_column(name) is not None

    def same_structure(self, other: "Table") -> bool:
        """Compare identity and every structural attribute."""
        return (
            self.identity == other.identity
            and self.name == other.name
            and self.columns == other.columns
            and self.primary_keys == other.primary_keys
            and self.foreign_keys == other.foreign_keys
            and self.indexes == other.indexes
        )

    def describe(self) -> str:
        """Human readable multi-line description."""
        lines = [f"{self.table_type.value} {self.name}"]
        if self.columns:
            lines.append("  COLUMNS")
            lines.extend(f"    {column}" for column in self.columns)
        if self.primary_keys:
            lines.append("  PRIMARY KEYS")
            lines.extend(
                f"    {pk.name} ({pk.column_name}) #{pk.key_sequence}"
                for pk in self.primary_keys
            )
        if self.foreign_keys:
            lines.append("  FOREIGN KEYS")
            for fk in self.foreign_keys:
                local = ", ".join(r.column.name for r in fk.references)
                remote = ", ".join(r.referenced_column for r in fk.references)
                lines.append(f"    {fk.name} ({local}) -> {fk.referenced_table} ({remote})")
        if self.indexes:
            lines.append("  INDEXES")
            lines.extend(
                f"    {index.name} ({index.column_name})"
                f"{'' if index.non_unique else ' UNIQUE'}"
                for index in self.indexes
            )
        return "\n".join(lines)

    @classmethod
    def from_live_schema(
        cls,
        identity: IdentifiableTable,
        columns: Iterable[Column],
        primary_keys: Iterable[PrimaryKey] = (),
        foreign_keys: Iterable[ForeignKey] = (),
        indexes: Iterable[Index] = (),
        remarks: Optional[str] = None,
    ) -> "Table":
        """Build a table from catalog rows.

        Primary key rows are folded onto their columns and statistics-only
        index entries are dropped.
        """
        by_name = {column.name: column for column in columns}
        for pk in primary_keys:
            column = by_name.get(pk.column_name)
            if column is None:
                raise DbreError(
                    f"Primary key {pk.name} of {identity} references unknown column {pk.column_name}"
                )
            by_name[pk.column_name] = column.with_primary_key(pk.name, pk.key_sequence)

        all_indexes = list(indexes)
        kept_indexes = [index for index in all_indexes if not index.is_statistic]
        if len(kept_indexes) != len(all_indexes):
            logger.debug(
                f"Dropped {len(all_indexes) - len(kept_indexes)} statistics entries for {identity}"
            )

        return cls._assemble(identity, by_name, foreign_keys, kept_indexes, TableOrigin.LIVE, remarks)

    @classmethod
    def from_persisted_document(
        cls,
        identity: IdentifiableTable,
        columns: Iterable[Column],
        foreign_keys: Iterable[ForeignKey] = (),
        indexes: Iterable[Index] = (),
    ) -> "Table":
        """Build a table from a parsed document; columns carry their own key positions."""
        by_name = {column.name: column for column in columns}
        kept_indexes = [index for index in indexes if not index.is_statistic]
        return cls._assemble(identity, by_name, foreign_keys, kept_indexes, TableOrigin.PERSISTED, None)

    @classmethod
    def _assemble(
        cls,
        identity: IdentifiableTable,
        by_name: Dict[str, Column],
        foreign_keys: Iterable[ForeignKey],
        indexes: List[Index],
        origin: TableOrigin,
        remarks: Optional[str],
    ) -> "Table":
        bound = []
        for fk in foreign_keys:
            references = []
            for reference in fk.references:
                column = by_name.get(reference.column.name)
                if column is None:
                    raise DbreError(
                        f"Foreign key {fk.name} of {identity} references unknown column "
                        f"{reference.column.name}"
                    )
                references.append(replace(reference, column=column))
            bound.append(replace(fk, references=tuple(references)))

        return cls(
            identity=identity,
            columns=tuple(sorted(by_name.values(), key=lambda c: c.name)),
            foreign_keys=tuple(sorted(bound, key=lambda fk: (fk.name, fk.referenced_table))),
            indexes=tuple(sorted(indexes, key=lambda i: i.name)),
            origin=origin,
            remarks=remarks,
        )


def table_map(tables: Iterable[Table]) -> Dict[IdentifiableTable, Table]:
    """Key tables by identity, keeping the first table seen for each identity."""
    result: Dict[IdentifiableTable, Table] = {}
    for table in tables:
        if table.identity in result:
            logger.debug(f"Ignoring duplicate table {table.id}")
            continue
        result[table.identity] = table
    return result
