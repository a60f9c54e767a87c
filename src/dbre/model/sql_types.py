"""
Portable SQL type codes.

Columns carry a numeric type code compatible with the java.sql.Types
constants so that documents stay interchangeable with JDBC based tooling.
"""

import re
from enum import IntEnum
from typing import Optional


class SqlType(IntEnum):
    """Numeric SQL type codes."""

    BIT = -7
    TINYINT = -6
    BIGINT = -5
    LONGVARBINARY = -4
    VARBINARY = -3
    BINARY = -2
    LONGVARCHAR = -1
    NULL = 0
    CHAR = 1
    NUMERIC = 2
    DECIMAL = 3
    INTEGER = 4
    SMALLINT = 5
    FLOAT = 6
    REAL = 7
    DOUBLE = 8
    VARCHAR = 12
    BOOLEAN = 16
    DATE = 91
    TIME = 92
    TIMESTAMP = 93
    OTHER = 1111
    JAVA_OBJECT = 2000
    DISTINCT = 2001
    STRUCT = 2002
    ARRAY = 2003
    BLOB = 2004
    CLOB = 2005
    REF = 2006
    TIME_WITH_TIMEZONE = 2013
    TIMESTAMP_WITH_TIMEZONE = 2014


# Keys are normalized type names as reported by information_schema
# (data_type) or pg_type (udt_name).
_TYPE_CODES = {
    "bit": SqlType.BIT,
    "bit varying": SqlType.BIT,
    "varbit": SqlType.BIT,
    "bool": SqlType.BOOLEAN,
    "boolean": SqlType.BOOLEAN,
    "int2": SqlType.SMALLINT,
    "smallint": SqlType.SMALLINT,
    "smallserial": SqlType.SMALLINT,
    "int": SqlType.INTEGER,
    "int4": SqlType.INTEGER,
    "integer": SqlType.INTEGER,
    "serial": SqlType.INTEGER,
    "int8": SqlType.BIGINT,
    "bigint": SqlType.BIGINT,
    "bigserial": SqlType.BIGINT,
    "numeric": SqlType.NUMERIC,
    "decimal": SqlType.DECIMAL,
    "float4": SqlType.REAL,
    "real": SqlType.REAL,
    "float": SqlType.FLOAT,
    "float8": SqlType.DOUBLE,
    "double precision": SqlType.DOUBLE,
    "money": SqlType.DOUBLE,
    "char": SqlType.CHAR,
    "bpchar": SqlType.CHAR,
    "character": SqlType.CHAR,
    "varchar": SqlType.VARCHAR,
    "character varying": SqlType.VARCHAR,
    "text": SqlType.VARCHAR,
    "name": SqlType.VARCHAR,
    "clob": SqlType.CLOB,
    "bytea": SqlType.BINARY,
    "blob": SqlType.BLOB,
    "date": SqlType.DATE,
    "time": SqlType.TIME,
    "time without time zone": SqlType.TIME,
    "timetz": SqlType.TIME_WITH_TIMEZONE,
    "time with time zone": SqlType.TIME_WITH_TIMEZONE,
    "timestamp": SqlType.TIMESTAMP,
    "timestamp without time zone": SqlType.TIMESTAMP,
    "timestamptz": SqlType.TIMESTAMP_WITH_TIMEZONE,
    "timestamp with time zone": SqlType.TIMESTAMP_WITH_TIMEZONE,
    "array": SqlType.ARRAY,
}

_PRECISION_SUFFIX = re.compile(r"\s*\([^)]*\)")
_WHITESPACE = re.compile(r"\s+")


def normalize_type_name(type_name: Optional[str]) -> str:
    """Strip precision and scale from a vendor type name.

    ``varchar(50)`` becomes ``varchar`` and ``timestamp(6) without time zone``
    becomes ``timestamp without time zone``.
    """
    if not type_name:
        return ""
    stripped = _PRECISION_SUFFIX.sub("", type_name)
    return _WHITESPACE.sub(" ", stripped).strip()


def sql_type_for(type_name: Optional[str]) -> SqlType:
    """Map a vendor type name to its SQL type code."""
    normalized = normalize_type_name(type_name).lower()
    if normalized.startswith("_") or normalized.endswith("[]"):
        return SqlType.ARRAY
    return _TYPE_CODES.get(normalized, SqlType.OTHER)


def sql_type_name(code: int) -> str:
    """Name of a SQL type code, OTHER when the code is unknown."""
    try:
        return SqlType(code).name
    except ValueError:
        return SqlType.OTHER.name
