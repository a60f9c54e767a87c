"""
Document reconciliation for dbre.

This module provides:
- Desired-state and change operation types
- Planning of create, update and delete operations
- Application of a plan to the persisted document
"""

from .operations import (
    ChangeType,
    DesiredElement,
    DesiredTable,
    DocumentChange,
    ElementKind,
    ReconciliationPlan,
)
from .reconciler import DocumentReconciler, ReconciliationResult, resolve_package

__all__ = [
    "ChangeType",
    "DesiredElement",
    "DesiredTable",
    "DocumentChange",
    "ElementKind",
    "ReconciliationPlan",
    "DocumentReconciler",
    "ReconciliationResult",
    "resolve_package",
]
