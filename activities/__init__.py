"""Activity definitions module."""

from activities.reconcile import (
    reconcile_statement,
    ReconcileStatementInput,
    ReconcileStatementOutput,
)

__all__ = [
    "reconcile_statement",
    "ReconcileStatementInput",
    "ReconcileStatementOutput",
]
