"""Working pool of still-unmatched records for one reconciliation run.

The canonical inputs are held as immutable tuples and never change. What
shrinks is two ordered sets of open indices, one per side. Claiming a pair
removes both indices; a claimed index can never be claimed again, which
makes "consumed once, never reconsidered" an enforced property rather
than a convention of the passes.
"""

from typing import Dict, List, Sequence, Tuple

from core.models import CanonicalInvoice, CanonicalStatementLine
from reconciliation.errors import ReconciliationError


class MatchPool:
    """Open statement lines and invoices, addressed by input position."""

    def __init__(
        self,
        statement_lines: Sequence[CanonicalStatementLine],
        invoices: Sequence[CanonicalInvoice],
    ):
        self.statement_lines: Tuple[CanonicalStatementLine, ...] = tuple(statement_lines)
        self.invoices: Tuple[CanonicalInvoice, ...] = tuple(invoices)

        # dicts keep insertion order, so iteration is always input order
        self._open_lines: Dict[int, None] = dict.fromkeys(range(len(self.statement_lines)))
        self._open_invoices: Dict[int, None] = dict.fromkeys(range(len(self.invoices)))

        self._line_claims: Dict[int, int] = {}
        self._invoice_claims: Dict[int, int] = {}
        self._claim_count = 0

    # =========================================================================
    # Queries
    # =========================================================================

    def open_line_indices(self) -> List[int]:
        """Open line indices in input order (a snapshot, safe to claim while iterating)."""
        return list(self._open_lines)

    def open_invoice_indices(self) -> List[int]:
        """Open invoice indices in input order."""
        return list(self._open_invoices)

    @property
    def remaining_lines(self) -> List[CanonicalStatementLine]:
        return [self.statement_lines[i] for i in self._open_lines]

    @property
    def remaining_invoices(self) -> List[CanonicalInvoice]:
        return [self.invoices[i] for i in self._open_invoices]

    @property
    def claimed_line_indices(self) -> List[int]:
        return sorted(self._line_claims)

    @property
    def claimed_invoice_indices(self) -> List[int]:
        return sorted(self._invoice_claims)

    # =========================================================================
    # Mutation
    # =========================================================================

    def claim(self, line_idx: int, invoice_idx: int) -> None:
        """Consume one line and one invoice as a matched pair.

        Raises:
            ReconciliationError: If either index is already claimed or unknown
        """
        self.claim_group([line_idx], [invoice_idx])

    def claim_group(self, line_indices: Sequence[int], invoice_indices: Sequence[int]) -> None:
        """Consume a set of lines and a set of invoices matched together.

        All-or-nothing: the pool is unchanged if any index is not open.
        """
        if not line_indices or not invoice_indices:
            raise ReconciliationError("A claim needs at least one line and one invoice")

        for idx in line_indices:
            if idx not in self._open_lines:
                raise ReconciliationError(f"Statement line index {idx} is not open")
        for idx in invoice_indices:
            if idx not in self._open_invoices:
                raise ReconciliationError(f"Invoice index {idx} is not open")
        if len(set(line_indices)) != len(line_indices) or len(set(invoice_indices)) != len(invoice_indices):
            raise ReconciliationError("A claim may not name the same index twice")

        self._claim_count += 1
        for idx in line_indices:
            del self._open_lines[idx]
            self._line_claims[idx] = self._claim_count
        for idx in invoice_indices:
            del self._open_invoices[idx]
            self._invoice_claims[idx] = self._claim_count
