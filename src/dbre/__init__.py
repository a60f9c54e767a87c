"""
dbre: database reverse engineering.

dbre introspects a live relational schema and keeps a persisted XML
description of it in sync across repeated runs, preserving unrelated
content and element identifiers.
"""

__version__ = "0.1.0"
__author__ = "dbre Contributors"

from .config import DbreConfig
from .exceptions import DbreError, ConfigurationError, DatabaseError, DocumentError

__all__ = [
    "__version__",
    "DbreConfig",
    "DbreError",
    "ConfigurationError",
    "DatabaseError",
    "DocumentError",
]
