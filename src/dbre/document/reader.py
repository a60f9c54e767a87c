"""
Reader that turns a persisted document back into Table values.
"""

import logging
from collections import OrderedDict
from typing import Dict, List, Optional, Tuple, Union

from lxml import etree

from .store import PACKAGE_ATTRIBUTE, ROOT_TAG
from ..exceptions import DbreError, DocumentParseError
from ..model.identity import IdentifiableTable, TableType, identity_of
from ..model.structure import Column, ForeignKey, ForeignKeyReference, Index, Table


logger = logging.getLogger(__name__)


TABLE_TAG = "table"
COLUMN_TAG = "column"
PRIMARY_KEY_TAG = "primaryKey"
FOREIGN_KEY_TAG = "foreignKey"
INDEX_TAG = "index"


class PersistedModelReader:
    """Parses ``table`` elements of a persisted document.

    The document is produced by this package, so it is expected to be
    internally consistent: a missing or malformed attribute is an error,
    never silently defaulted.
    """

    def __init__(self, source: Optional[str] = None):
        self.source = source

    def parse(
        self, document: Union[etree._ElementTree, etree._Element]
    ) -> Tuple[str, Dict[IdentifiableTable, Table]]:
        """Return the document package and its tables keyed by identity."""
        root = document.getroot() if isinstance(document, etree._ElementTree) else document
        if root.tag != ROOT_TAG:
            raise self._error(f"Unexpected root element <{root.tag}>")

        package = root.get(PACKAGE_ATTRIBUTE, "")
        tables: Dict[IdentifiableTable, Table] = OrderedDict()
        for element in root.iterchildren(TABLE_TAG):
            table = self.parse_table(element)
            if table.identity in tables:
                logger.debug(f"Ignoring duplicate table element {table.id}")
                continue
            tables[table.identity] = table

        logger.debug(f"Parsed {len(tables)} tables from document")
        return package, tables

    def parse_table(self, element: etree._Element) -> Table:
        name = self._required(element, "name")
        try:
            table_type = TableType.parse(self._required(element, "tableType"))
            identity = identity_of(element.get("catalog"), element.get("schema"), name, table_type)
        except DocumentParseError:
            raise
        except DbreError as e:
            raise self._error(f"Invalid table element {name}: {e.message}") from e

        key_names = {}
        key_positions = {}
        for pk in element.iterchildren(PRIMARY_KEY_TAG):
            column_name = self._required(pk, "columnName")
            key_names[column_name] = pk.get("name") or None
            key_positions[column_name] = self._int(pk, "keySeq")

        columns = [
            self._column(child, key_names, key_positions)
            for child in element.iterchildren(COLUMN_TAG)
        ]
        foreign_keys = self._foreign_keys(element, columns)
        indexes = [
            Index(
                name=self._required(child, "name"),
                column_name=self._required(child, "columnName"),
                non_unique=self._bool(child, "nonUnique"),
                sort_type=self._int(child, "type"),
            )
            for child in element.iterchildren(INDEX_TAG)
        ]

        try:
            return Table.from_persisted_document(identity, columns, foreign_keys, indexes)
        except DbreError as e:
            raise self._error(f"Inconsistent table element {name}: {e.message}") from e

    def _column(
        self,
        element: etree._Element,
        key_names: Dict[str, Optional[str]],
        key_positions: Dict[str, int],
    ) -> Column:
        name = self._required(element, "name")

        position = None
        if element.get("isPk") is not None:
            if self._bool(element, "isPk"):
                position = self._int(element, "pkSeq")
        elif name in key_positions:
            position = key_positions[name]

        return Column(
            name=name,
            data_type=self._int(element, "dataType"),
            column_size=self._int(element, "columnSize"),
            decimal_digits=self._int(element, "decimalDigits"),
            nullable=self._bool(element, "nullable"),
            type_name=self._required(element, "typeName"),
            remarks=element.get("remarks"),
            primary_key_position=position,
            primary_key_name=key_names.get(name) if position is not None else None,
        )

    def _foreign_keys(self, element: etree._Element, columns: List[Column]) -> List[ForeignKey]:
        by_name = {column.name: column for column in columns}
        grouped: Dict[Tuple[str, str], List[ForeignKeyReference]] = OrderedDict()

        for child in element.iterchildren(FOREIGN_KEY_TAG):
            key = (self._required(child, "name"), self._required(child, "fkTable"))
            references = grouped.setdefault(key, [])

            # Elements written without column detail describe the relationship only
            fk_column = child.get("fkColumn")
            if fk_column is None:
                continue
            column = by_name.get(fk_column)
            if column is None:
                raise self._error(f"Foreign key {key[0]} references unknown column {fk_column}")
            references.append(
                ForeignKeyReference(
                    column=column,
                    referenced_column=self._required(child, "pkColumn"),
                    key_sequence=self._int(child, "keySeq"),
                )
            )

        return [
            ForeignKey(name=name, referenced_table=referenced, references=tuple(references))
            for (name, referenced), references in grouped.items()
        ]

    def _required(self, element: etree._Element, attribute: str) -> str:
        value = element.get(attribute)
        if value is None:
            raise self._error(f"<{element.tag}> is missing attribute {attribute}")
        return value

    def _int(self, element: etree._Element, attribute: str) -> int:
        value = self._required(element, attribute)
        try:
            return int(value)
        except ValueError:
            raise self._error(
                f"<{element.tag}> attribute {attribute} is not a number: {value!r}"
            ) from None

    def _bool(self, element: etree._Element, attribute: str) -> bool:
        value = self._required(element, attribute).strip().lower()
        if value not in ("true", "false"):
            raise self._error(f"<{element.tag}> attribute {attribute} is not a boolean: {value!r}")
        return value == "true"

    def _error(self, message: str) -> DocumentParseError:
        where = f"{self.source}: " if self.source else ""
        return DocumentParseError(f"{where}{message}", path=self.source)
