"""
Schema document reconciliation core logic for dbre.

Synchronizes the persisted document with a live schema snapshot in three
steps: build the desired state from the live tables, plan the create,
update and delete operations against the existing document, then apply
the plan. Repeated runs against an unchanged schema produce an identical
document.
"""

import copy
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Set, Union

from lxml import etree

from .operations import (
    NESTED_KINDS,
    Attributes,
    ChangeType,
    DesiredTable,
    DocumentChange,
    ElementKind,
    ReconciliationPlan,
)
from ..database.introspection import LiveSchemaReader
from ..document.reader import PersistedModelReader
from ..document.store import PACKAGE_ATTRIBUTE, DocumentStore
from ..exceptions import ConfigurationError, DbreError
from ..model.identity import IdentifiableTable, IdentityFilter
from ..model.structure import Table


logger = logging.getLogger(__name__)


TableInput = Union[Mapping[IdentifiableTable, Table], Iterable[Table]]


@dataclass
class ReconciliationResult:
    """Result of a document reconciliation."""

    document: etree._ElementTree
    plan: ReconciliationPlan
    package: str
    written: bool = False

    @property
    def summary(self) -> Dict[str, int]:
        return self.plan.summary()


def resolve_package(
    package_override: Optional[str],
    existing_package: Optional[str],
    project_default_package: Optional[str],
) -> str:
    """Pick the document package: override, then existing, then project default."""
    for candidate in (package_override, existing_package, project_default_package):
        if candidate and candidate.strip():
            return candidate.strip()
    raise ConfigurationError(
        "No package available: pass a package or configure document.default_package"
    )


def _matches(element: etree._Element, natural_key: Dict[str, str]) -> bool:
    return all(element.get(name) == value for name, value in natural_key.items())


def _find_unclaimed(
    parent: etree._Element,
    tag: str,
    natural_key: Dict[str, str],
    claimed: Dict[etree._Element, str],
) -> Optional[etree._Element]:
    """First direct child with the tag and natural key that is not yet matched."""
    for element in parent.iterchildren(tag):
        if element not in claimed and _matches(element, natural_key):
            return element
    return None


def _effective_id(element: etree._Element, claimed: Dict[etree._Element, str]) -> str:
    # Matched elements take their new id; everything else keeps its own
    return claimed.get(element, element.get("id", ""))


def _set_attributes(element: etree._Element, attributes: Attributes) -> None:
    for name, value in attributes.items():
        if value is None:
            if name in element.attrib:
                del element.attrib[name]
        else:
            element.set(name, value)


class DocumentReconciler:
    """
    Reconciles the persisted document against the live schema.

    Document elements are matched by natural key: tables by name under the
    document root, nested elements by their identifying attributes within
    the matched table element only. Matched elements are overwritten and
    keep their position; new elements are appended. Elements whose id does
    not correspond to anything live are removed afterwards.
    """

    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        reader: Optional[PersistedModelReader] = None,
    ):
        self.store = store or DocumentStore("dbre.xml")
        self.reader = reader or PersistedModelReader(str(self.store.path))

    def build_desired_state(self, live_tables: TableInput) -> List[DesiredTable]:
        """Desired document state for every live table, in input order."""
        tables = live_tables.values() if isinstance(live_tables, Mapping) else live_tables
        seen: Set[IdentifiableTable] = set()
        desired = []
        for table in tables:
            if table.identity in seen:
                logger.debug(f"Ignoring duplicate live table {table.id}")
                continue
            seen.add(table.identity)
            desired.append(DesiredTable.from_table(table))
        return desired

    def plan(
        self,
        desired: List[DesiredTable],
        document: etree._ElementTree,
        package: str,
        previous_package: Optional[str] = None,
    ) -> ReconciliationPlan:
        """Diff the desired state against a document without modifying it."""
        root = document.getroot()
        plan = ReconciliationPlan(package=package, previous_package=previous_package)
        known_ids: Set[str] = set()
        claimed: Dict[etree._Element, str] = {}

        for table in desired:
            known_ids.add(table.element_id)
            natural_key = {"name": table.name}
            table_element = _find_unclaimed(root, ElementKind.TABLE.tag, natural_key, claimed)
            if table_element is not None:
                claimed[table_element] = table.element_id
            plan.add(
                DocumentChange(
                    change_type=ChangeType.UPDATE if table_element is not None else ChangeType.CREATE,
                    kind=ElementKind.TABLE,
                    element_id=table.element_id,
                    table_name=table.name,
                    attributes=table.attributes,
                    natural_key=natural_key,
                )
            )

            for child in table.children:
                known_ids.add(child.element_id)
                child_element = None
                if table_element is not None:
                    child_element = _find_unclaimed(
                        table_element, child.kind.tag, child.natural_key, claimed
                    )
                if child_element is not None:
                    claimed[child_element] = child.element_id
                change = DocumentChange(
                    change_type=ChangeType.UPDATE if child_element is not None else ChangeType.CREATE,
                    kind=child.kind,
                    element_id=child.element_id,
                    table_name=table.name,
                    attributes=child.attributes,
                    natural_key=child.natural_key,
                    table_id=table.element_id,
                )
                logger.debug(f"Planned {change}")
                plan.add(change)

        for table_element in root.iterchildren(ElementKind.TABLE.tag):
            table_id = _effective_id(table_element, claimed)
            table_name = table_element.get("name", "")
            if table_id not in known_ids:
                plan.add(
                    DocumentChange(
                        change_type=ChangeType.DELETE,
                        kind=ElementKind.TABLE,
                        element_id=table_element.get("id", ""),
                        table_name=table_name,
                    )
                )
                continue

            for kind in NESTED_KINDS:
                for child_element in table_element.iterchildren(kind.tag):
                    if _effective_id(child_element, claimed) in known_ids:
                        continue
                    change = DocumentChange(
                        change_type=ChangeType.DELETE,
                        kind=kind,
                        element_id=child_element.get("id", ""),
                        table_name=table_name,
                        table_id=table_id,
                    )
                    logger.debug(f"Planned {change}")
                    plan.add(change)

        summary = plan.summary()
        logger.info(
            f"Planned {summary['create']} creates, {summary['update']} updates, "
            f"{summary['delete']} deletes"
        )
        return plan

    def apply(self, plan: ReconciliationPlan, document: etree._ElementTree) -> etree._ElementTree:
        """Apply a plan to the document it was planned against, in place."""
        root = document.getroot()
        root.set(PACKAGE_ATTRIBUTE, plan.package)

        claimed: Dict[etree._Element, str] = {}
        table_element: Optional[etree._Element] = None

        for change in plan.changes:
            if change.change_type == ChangeType.DELETE:
                continue
            parent = root if change.kind == ElementKind.TABLE else table_element
            if parent is None:
                raise DbreError(f"No table element to hold {change}")

            if change.change_type == ChangeType.UPDATE:
                element = _find_unclaimed(parent, change.kind.tag, change.natural_key, claimed)
                if element is None:
                    raise DbreError(f"Document does not match plan: cannot {change}")
            else:
                element = etree.SubElement(parent, change.kind.tag)

            _set_attributes(element, change.attributes)
            claimed[element] = change.element_id
            if change.kind == ElementKind.TABLE:
                table_element = element

        for change in plan.deletes:
            if change.kind == ElementKind.TABLE:
                for element in list(root.iterchildren(ElementKind.TABLE.tag)):
                    if element not in claimed and element.get("id", "") == change.element_id:
                        logger.info(f"Removing table {change.table_name} ({change.element_id})")
                        root.remove(element)
                continue

            for owner in root.iterchildren(ElementKind.TABLE.tag):
                if _effective_id(owner, claimed) != change.table_id:
                    continue
                for element in list(owner.iterchildren(change.kind.tag)):
                    if element not in claimed and element.get("id", "") == change.element_id:
                        logger.debug(f"Removing {change.kind.value} {change.element_id}")
                        owner.remove(element)

        return document

    def reconcile(
        self,
        live_tables: TableInput,
        existing_document: Optional[etree._ElementTree] = None,
        package_override: Optional[str] = None,
        project_default_package: Optional[str] = None,
    ) -> ReconciliationResult:
        """
        Reconcile live tables into a document.

        Args:
            live_tables: Live tables, as a map keyed by identity or any iterable
            existing_document: Previously persisted document; the template is used when None
            package_override: Package that wins over everything else
            project_default_package: Package used when no other is available

        Returns:
            ReconciliationResult holding a new document; the input document is not modified
        """
        if existing_document is None:
            document = self.store.load_template()
            existing_package = None
        else:
            # A document that cannot be parsed is never written back
            existing_package, _ = self.reader.parse(existing_document)
            document = copy.deepcopy(existing_document)

        package = resolve_package(package_override, existing_package, project_default_package)
        desired = self.build_desired_state(live_tables)
        plan = self.plan(desired, document, package, previous_package=existing_package)
        self.apply(plan, document)

        return ReconciliationResult(document=document, plan=plan, package=package)

    async def reconcile_file(
        self,
        live_reader: LiveSchemaReader,
        identity_filter: Optional[IdentityFilter] = None,
        package_override: Optional[str] = None,
        project_default_package: Optional[str] = None,
        dry_run: bool = False,
    ) -> ReconciliationResult:
        """Read the live schema, reconcile the stored document and write it back."""
        live_tables = await live_reader.read_tables(identity_filter)
        logger.info(f"Reconciling {len(live_tables)} live tables into {self.store.path}")

        result = self.reconcile(live_tables, self.store.load(), package_override, project_default_package)

        if dry_run:
            logger.info("Dry run, document not written")
        else:
            self.store.write(result.document)
            result.written = True
        return result
