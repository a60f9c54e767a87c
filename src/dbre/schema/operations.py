"""
Document change operations for dbre.

The reconciliation engine never edits the document while it is deciding
what to do. It first turns live tables into DesiredTable values, then
diffs them against the document into a ReconciliationPlan of
DocumentChange operations, and only then applies that plan.
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from ..exceptions import DocumentError
from ..model.identity import IdentifiableTable
from ..model.structure import Column, ForeignKey, Index, PrimaryKey, Table


logger = logging.getLogger(__name__)


class ChangeType(str, Enum):
    """Types of document changes."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ElementKind(str, Enum):
    """Kinds of document elements; values are the element tags."""

    TABLE = "table"
    COLUMN = "column"
    PRIMARY_KEY = "primaryKey"
    FOREIGN_KEY = "foreignKey"
    INDEX = "index"

    @property
    def tag(self) -> str:
        return self.value


NESTED_KINDS = (
    ElementKind.COLUMN,
    ElementKind.PRIMARY_KEY,
    ElementKind.FOREIGN_KEY,
    ElementKind.INDEX,
)

# Attribute values of None remove the attribute from an existing element
Attributes = Dict[str, Optional[str]]

# Anything outside the XML 1.0 Char production
_XML_INVALID = re.compile("[^\t\n\r\u0020-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]")


def _flag(value: bool) -> str:
    return "true" if value else "false"


def _xml_remarks(element_id: str, remarks: Optional[str]) -> str:
    """Remarks with characters XML cannot carry removed."""
    if not remarks:
        return ""
    cleaned = _XML_INVALID.sub("", remarks)
    if cleaned != remarks:
        logger.warning(f"Dropped characters not allowed in XML from the remarks of {element_id}")
    return cleaned


def _checked(element_id: str, attributes: Attributes) -> Attributes:
    """Reject identifying values that cannot be written to the document."""
    for name, value in attributes.items():
        if value is not None and _XML_INVALID.search(value):
            raise DocumentError(
                f"Attribute {name} of {element_id!r} contains characters not allowed in XML"
            )
    return attributes


@dataclass
class DesiredElement:
    """Desired state of one nested element of a table."""

    kind: ElementKind
    element_id: str
    natural_key: Dict[str, str]
    attributes: Attributes

    @classmethod
    def for_column(cls, table_id: str, column: Column) -> "DesiredElement":
        element_id = f"{table_id}.{column.local_id}"
        attributes: Attributes = {
            "id": element_id,
            "name": column.name,
            "type": column.type,
            "typeName": column.type_name,
            "dataType": str(column.data_type),
            "columnSize": str(column.column_size),
            "decimalDigits": str(column.decimal_digits),
            "nullable": _flag(column.nullable),
            "remarks": _xml_remarks(element_id, column.remarks),
            "isPk": _flag(column.is_primary_key),
            "pkSeq": str(column.primary_key_position) if column.is_primary_key else None,
        }
        return cls(ElementKind.COLUMN, element_id, {"name": column.name}, _checked(element_id, attributes))

    @classmethod
    def for_primary_key(cls, table_id: str, primary_key: PrimaryKey) -> "DesiredElement":
        element_id = f"{table_id}.{primary_key.local_id}"
        attributes: Attributes = {
            "id": element_id,
            "columnName": primary_key.column_name,
            "name": primary_key.name,
            "keySeq": str(primary_key.key_sequence),
        }
        return cls(
            ElementKind.PRIMARY_KEY,
            element_id,
            {"columnName": primary_key.column_name},
            _checked(element_id, attributes),
        )

    @classmethod
    def for_foreign_key(cls, table_id: str, foreign_key: ForeignKey) -> List["DesiredElement"]:
        """One element per referencing column."""
        elements = []
        for reference in foreign_key.references:
            element_id = f"{table_id}.{foreign_key.local_id}.{reference.column.name}"
            attributes: Attributes = {
                "id": element_id,
                "name": foreign_key.name,
                "fkTable": foreign_key.referenced_table,
                "fkColumn": reference.column.name,
                "pkTable": foreign_key.referenced_table,
                "pkColumn": reference.referenced_column,
                "keySeq": str(reference.key_sequence),
            }
            elements.append(
                cls(
                    ElementKind.FOREIGN_KEY,
                    element_id,
                    {"name": foreign_key.name, "fkColumn": reference.column.name},
                    _checked(element_id, attributes),
                )
            )
        return elements

    @classmethod
    def for_index(cls, table_id: str, index: Index) -> "DesiredElement":
        element_id = f"{table_id}.{index.local_id}"
        attributes: Attributes = {
            "id": element_id,
            "name": index.name,
            "columnName": index.column_name,
            "nonUnique": _flag(index.non_unique),
            "type": str(index.sort_type),
        }
        return cls(
            ElementKind.INDEX,
            element_id,
            {"name": index.name, "columnName": index.column_name},
            _checked(element_id, attributes),
        )


@dataclass
class DesiredTable:
    """Desired state of a table element and its nested elements."""

    identity: IdentifiableTable
    element_id: str
    name: str
    attributes: Attributes
    children: List[DesiredElement] = field(default_factory=list)

    @classmethod
    def from_table(cls, table: Table) -> "DesiredTable":
        identity = table.identity
        table_id = identity.canonical_id()
        attributes: Attributes = {
            "id": table_id,
            "name": identity.table,
            "catalog": identity.catalog or "",
            "schema": identity.schema or "",
            "tableType": identity.table_type.value,
        }

        children = [DesiredElement.for_column(table_id, column) for column in table.columns]
        children.extend(DesiredElement.for_primary_key(table_id, pk) for pk in table.primary_keys)
        for foreign_key in table.foreign_keys:
            children.extend(DesiredElement.for_foreign_key(table_id, foreign_key))
        children.extend(DesiredElement.for_index(table_id, index) for index in table.indexes)

        return cls(identity, table_id, identity.table, _checked(table_id, attributes), children)


@dataclass
class DocumentChange:
    """A single planned change to the document.

    For nested elements ``table_id`` is the id of the owning table element
    after the change is applied. For deletes ``element_id`` is the id the
    element currently carries in the document.
    """

    change_type: ChangeType
    kind: ElementKind
    element_id: str
    table_name: str
    attributes: Attributes = field(default_factory=dict)
    natural_key: Dict[str, str] = field(default_factory=dict)
    table_id: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.change_type.value} {self.kind.value} {self.element_id}"


@dataclass
class ReconciliationPlan:
    """Ordered list of changes plus the resolved document package."""

    package: str
    changes: List[DocumentChange] = field(default_factory=list)
    previous_package: Optional[str] = None

    def add(self, change: DocumentChange) -> None:
        self.changes.append(change)

    def _of_type(self, change_type: ChangeType) -> List[DocumentChange]:
        return [change for change in self.changes if change.change_type == change_type]

    @property
    def creates(self) -> List[DocumentChange]:
        return self._of_type(ChangeType.CREATE)

    @property
    def updates(self) -> List[DocumentChange]:
        return self._of_type(ChangeType.UPDATE)

    @property
    def deletes(self) -> List[DocumentChange]:
        return self._of_type(ChangeType.DELETE)

    @property
    def package_changed(self) -> bool:
        return self.package != self.previous_package

    @property
    def has_structural_changes(self) -> bool:
        """Whether anything other than an attribute refresh is planned."""
        return bool(self.creates or self.deletes)

    def for_kind(self, kind: ElementKind) -> List[DocumentChange]:
        return [change for change in self.changes if change.kind == kind]

    def summary(self) -> Dict[str, int]:
        """Count of planned changes per change type."""
        counts = Counter(change.change_type.value for change in self.changes)
        return {change_type.value: counts.get(change_type.value, 0) for change_type in ChangeType}

    def table_summary(self) -> Dict[str, int]:
        """Count of planned table-level changes per change type."""
        counts = Counter(change.change_type.value for change in self.for_kind(ElementKind.TABLE))
        return {change_type.value: counts.get(change_type.value, 0) for change_type in ChangeType}
