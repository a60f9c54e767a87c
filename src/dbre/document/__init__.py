"""
Persisted schema document for dbre.

This module provides:
- Loading and atomic writing of the XML document
- The packaged empty document template
- Parsing of the document back into Table values
"""

from .store import DocumentStore, normalize_whitespace
from .reader import PersistedModelReader

__all__ = [
    "DocumentStore",
    "normalize_whitespace",
    "PersistedModelReader",
]
