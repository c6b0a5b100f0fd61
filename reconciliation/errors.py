"""Reconciliation error types.

"No match" is never an error: unmatched records end up as discrepancies.
These exceptions cover malformed input and invalid configuration, both of
which are raised before any matching pass runs.
"""

from typing import Optional


class ReconciliationError(Exception):
    """Base class for all reconciliation engine errors."""


class ShapeError(ReconciliationError, ValueError):
    """A raw record cannot be converted into its canonical shape.

    Attributes:
        record_kind: "invoice" or "statement_line"
        record_index: Position of the record in its input batch (if known)
        field: Canonical field that is missing or malformed (if known)
    """

    def __init__(
        self,
        message: str,
        record_kind: Optional[str] = None,
        record_index: Optional[int] = None,
        field: Optional[str] = None,
    ):
        self.record_kind = record_kind
        self.record_index = record_index
        self.field = field
        super().__init__(message)

    def with_index(self, record_index: int) -> "ShapeError":
        """Return a copy of this error tagged with the batch position."""
        prefix = f"{self.record_kind or 'record'}[{record_index}]"
        return ShapeError(
            f"{prefix}: {self}",
            record_kind=self.record_kind,
            record_index=record_index,
            field=self.field,
        )


class ConfigError(ReconciliationError, ValueError):
    """Unknown or out-of-range matching configuration."""

    def __init__(self, message: str, key: Optional[str] = None):
        self.key = key
        super().__init__(message)
