"""
Read-only database access for code outside the reconciliation engine.
"""

import logging
from typing import Dict, Optional, Set

from .connection import ConnectionPool
from .dialect import CaseFolding, Dialect
from .introspection import LiveSchemaReader
from ..exceptions import DatabaseError
from ..model.identity import IdentifiableTable, IdentityFilter
from ..model.structure import Table


logger = logging.getLogger(__name__)


class DatabaseFacade:
    """Single entry point for table and sequence lookups.

    The facade never touches the persisted document.
    """

    def __init__(
        self,
        pool: ConnectionPool,
        dialect: Dialect,
        case_folding: Optional[CaseFolding] = None,
        introspection: Optional[LiveSchemaReader] = None,
    ):
        self.pool = pool
        self.dialect = dialect
        self.case_folding = case_folding or dialect.case_folding
        self.reader = introspection or LiveSchemaReader(pool, self.case_folding)

    async def get_table(self, identity: IdentifiableTable) -> Optional[Table]:
        """Find one table by identity."""
        return await self.reader.read_table(identity)

    async def get_tables(
        self, identity_filter: Optional[IdentityFilter] = None
    ) -> Dict[IdentifiableTable, Table]:
        """Find every table matching a filter."""
        return await self.reader.read_tables(identity_filter)

    async def get_sequences(self, dialect: Optional[Dialect] = None) -> Set[str]:
        """List sequence names, lower-cased and trimmed.

        Dialects without sequence support yield an empty set.
        """
        dialect = dialect or self.dialect
        if not dialect.supports_sequences:
            logger.debug(f"Dialect {dialect.name} does not support sequences")
            return set()

        try:
            rows = await self.pool.fetch(dialect.sequence_query)
        except Exception as e:
            logger.error(f"Error listing sequences: {e}")
            raise DatabaseError(f"Failed to list sequences for {dialect.name}", cause=e) from e

        sequences = {row[0].strip().lower() for row in rows if row[0]}
        logger.debug(f"Found {len(sequences)} sequences")
        return sequences

    async def describe(self, identity_filter: Optional[IdentityFilter] = None) -> str:
        """Describe every matching table, one block per table."""
        tables = await self.get_tables(identity_filter)
        if not tables:
            return "No tables found"
        return "\n\n".join(table.describe() for table in tables.values())
