"""
Database dialect policy for dbre.

Each dialect records how the vendor folds unquoted identifiers and whether
(and how) sequences can be listed.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple

from ..exceptions import UnsupportedDialectError


class CaseFolding(str, Enum):
    """How a catalog stores unquoted identifiers."""

    UPPER = "upper"
    LOWER = "lower"
    AS_IS = "as_is"

    def fold(self, name: Optional[str]) -> Optional[str]:
        """Fold a name the way the catalog stores it."""
        if name is None:
            return None
        if self is CaseFolding.UPPER:
            return name.upper()
        if self is CaseFolding.LOWER:
            return name.lower()
        return name


@dataclass(frozen=True)
class Dialect:
    """Capabilities of a database vendor."""

    name: str
    case_folding: CaseFolding
    supports_sequences: bool = False
    sequence_query: Optional[str] = None
    aliases: Tuple[str, ...] = field(default=(), compare=False)

    def __post_init__(self):
        if self.supports_sequences and not self.sequence_query:
            raise ValueError(f"Dialect {self.name} supports sequences but has no query")


POSTGRESQL = Dialect(
    name="postgresql",
    case_folding=CaseFolding.LOWER,
    supports_sequences=True,
    sequence_query=(
        "SELECT sequence_name FROM information_schema.sequences "
        "WHERE sequence_schema NOT IN ('information_schema', 'pg_catalog')"
    ),
    aliases=("postgres", "pgsql"),
)

H2 = Dialect(
    name="h2",
    case_folding=CaseFolding.UPPER,
    supports_sequences=True,
    sequence_query="SELECT SEQUENCE_NAME FROM INFORMATION_SCHEMA.SEQUENCES",
)

HSQL = Dialect(
    name="hsql",
    case_folding=CaseFolding.UPPER,
    supports_sequences=True,
    sequence_query="SELECT SEQUENCE_NAME FROM INFORMATION_SCHEMA.SYSTEM_SEQUENCES",
    aliases=("hsqldb", "hsql database engine"),
)

ORACLE = Dialect(
    name="oracle",
    case_folding=CaseFolding.UPPER,
    supports_sequences=True,
    sequence_query="SELECT SEQUENCE_NAME FROM USER_SEQUENCES",
)

DB2 = Dialect(
    name="db2",
    case_folding=CaseFolding.UPPER,
    supports_sequences=True,
    sequence_query="SELECT SEQNAME FROM SYSCAT.SEQUENCES",
)

DERBY = Dialect(
    name="derby",
    case_folding=CaseFolding.UPPER,
    aliases=("apache derby",),
)

MYSQL = Dialect(
    name="mysql",
    case_folding=CaseFolding.AS_IS,
    aliases=("mariadb",),
)

SQLSERVER = Dialect(
    name="sqlserver",
    case_folding=CaseFolding.AS_IS,
    aliases=("microsoft sql server", "mssql"),
)

DIALECTS: Tuple[Dialect, ...] = (POSTGRESQL, H2, HSQL, ORACLE, DB2, DERBY, MYSQL, SQLSERVER)

_BY_NAME: Dict[str, Dialect] = {}
for _dialect in DIALECTS:
    _BY_NAME[_dialect.name] = _dialect
    for _alias in _dialect.aliases:
        _BY_NAME[_alias] = _dialect


def get_dialect(name: str) -> Dialect:
    """Look up a dialect by name or product alias, ignoring case."""
    dialect = _BY_NAME.get((name or "").strip().lower())
    if dialect is None:
        raise UnsupportedDialectError(name)
    return dialect


def dialect_for_server_version(version: str) -> Dialect:
    """Pick the dialect matching a ``SELECT version()`` banner."""
    banner = (version or "").lower()
    # Longest names first so that "hsql database engine" wins over "hsql"
    for key in sorted(_BY_NAME, key=len, reverse=True):
        if re.search(rf"\b{re.escape(key)}\b", banner):
            return _BY_NAME[key]
    raise UnsupportedDialectError(version)
