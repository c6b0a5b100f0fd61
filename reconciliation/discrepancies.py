"""Discrepancy classifier.

Runs once after the last enabled pass and explains everything still open.
It only reads the pool. Every rule that fires is emitted, so one line can
carry both an amount_mismatch and a date_mismatch.

Statement line rules:
- duplicate_invoice  (critical) doc already listed on an earlier line
- invoice_not_found  (high)     normalized doc matches no invoice at all
- currency_mismatch  (high)     same-doc open invoice in another currency
- amount_mismatch    (medium, high above 10%) same-doc open invoice, amount off
- date_mismatch      (low)      same-doc open invoice, date outside tolerance
- other              (low)      none of the above

Invoice rules:
- missing_soa_item   (medium)   no open line shares the doc number

Output order: lines in input order, then invoices in input order.
"""

from decimal import Decimal
from typing import Dict, List, Optional, Set

from core.models import (
    CanonicalInvoice,
    CanonicalStatementLine,
    Discrepancy,
    DiscrepancyType,
    Severity,
)
from reconciliation.config import MatchConfig
from reconciliation.ids import stable_id
from reconciliation.normalize import (
    amount_difference_pct,
    amounts_within_tolerance,
    date_difference_days,
    dates_within,
    normalize_doc_number,
)
from reconciliation.pool import MatchPool


# Amount deltas above this share of the invoice amount are high severity
AMOUNT_MISMATCH_HIGH_RATIO = Decimal("0.10")


def _discrepancy(
    discrepancy_type: DiscrepancyType,
    severity: Severity,
    description: str,
    line: Optional[CanonicalStatementLine] = None,
    invoice: Optional[CanonicalInvoice] = None,
    **kwargs,
) -> Discrepancy:
    line_id = line.id if line is not None else None
    invoice_id = invoice.id if invoice is not None else None
    return Discrepancy(
        id=stable_id("discrepancy", discrepancy_type.value, line_id, invoice_id),
        type=discrepancy_type,
        severity=severity,
        description=description,
        related_statement_line_id=line_id,
        related_invoice_id=invoice_id,
        **kwargs,
    )


class _DocIndex:
    """Normalized doc numbers of every input record, computed once."""

    def __init__(self, pool: MatchPool):
        self.line_docs = [normalize_doc_number(l.doc_number) for l in pool.statement_lines]
        self.invoice_docs = [normalize_doc_number(i.doc_number) for i in pool.invoices]
        self.all_invoice_docs: Set[str] = {d for d in self.invoice_docs if d}

        # First input line carrying each doc number
        self.first_line_for_doc: Dict[str, int] = {}
        for idx, doc in enumerate(self.line_docs):
            if doc and doc not in self.first_line_for_doc:
                self.first_line_for_doc[doc] = idx


# =============================================================================
# Statement Line Checks
# =============================================================================

def check_duplicate(pool, index, line_idx) -> List[Discrepancy]:
    doc = index.line_docs[line_idx]
    if not doc:
        return []
    first_idx = index.first_line_for_doc[doc]
    if first_idx >= line_idx:
        return []

    line = pool.statement_lines[line_idx]
    first = pool.statement_lines[first_idx]
    return [_discrepancy(
        DiscrepancyType.DUPLICATE_INVOICE,
        Severity.CRITICAL,
        f"Document {line.doc_number} on statement line {line.id} is already "
        f"listed on statement line {first.id}",
        line=line,
        expected_value=first.id,
        actual_value=line.id,
        metadata={"doc_number": line.doc_number, "first_statement_line_id": first.id},
    )]


def check_not_found(pool, index, line_idx) -> List[Discrepancy]:
    line = pool.statement_lines[line_idx]
    doc = index.line_docs[line_idx]

    if not doc:
        return [_discrepancy(
            DiscrepancyType.INVOICE_NOT_FOUND,
            Severity.HIGH,
            f"Statement line {line.id} has no document number to match on",
            line=line,
            actual_value=line.doc_number,
            metadata={"reason": "empty_doc_number"},
        )]

    if doc in index.all_invoice_docs:
        return []

    return [_discrepancy(
        DiscrepancyType.INVOICE_NOT_FOUND,
        Severity.HIGH,
        f"No invoice found for document {line.doc_number} on statement line {line.id}",
        line=line,
        actual_value=line.doc_number,
        metadata={"doc_number": line.doc_number, "normalized_doc_number": doc},
    )]


def check_against_invoice(
    line: CanonicalStatementLine,
    invoice: CanonicalInvoice,
    config: MatchConfig,
) -> List[Discrepancy]:
    """Explain why an open same-doc invoice did not match an open line."""
    if line.currency != invoice.currency:
        return [_discrepancy(
            DiscrepancyType.CURRENCY_MISMATCH,
            Severity.HIGH,
            f"Document {line.doc_number}: statement line {line.id} is in "
            f"{line.currency} but invoice {invoice.id} is in {invoice.currency}",
            line=line,
            invoice=invoice,
            expected_value=invoice.currency,
            actual_value=line.currency,
        )]

    found = []

    if not amounts_within_tolerance(
        line.amount, invoice.total_amount,
        config.amount_tolerance_abs, config.amount_tolerance_pct,
    ):
        delta = line.amount - invoice.total_amount
        severity = Severity.MEDIUM
        if abs(delta) > AMOUNT_MISMATCH_HIGH_RATIO * invoice.total_amount:
            severity = Severity.HIGH
        found.append(_discrepancy(
            DiscrepancyType.AMOUNT_MISMATCH,
            severity,
            f"Document {line.doc_number}: statement shows {line.amount} {line.currency}, "
            f"invoice {invoice.id} totals {invoice.total_amount} (difference {delta})",
            line=line,
            invoice=invoice,
            expected_value=str(invoice.total_amount),
            actual_value=str(line.amount),
            difference_amount=delta,
            difference_percentage=amount_difference_pct(invoice.total_amount, line.amount),
        ))

    if (
        line.date is not None
        and invoice.invoice_date is not None
        and not dates_within(line.date, invoice.invoice_date, config.date_tolerance_days)
    ):
        days = date_difference_days(line.date, invoice.invoice_date)
        found.append(_discrepancy(
            DiscrepancyType.DATE_MISMATCH,
            Severity.LOW,
            f"Document {line.doc_number}: statement date {line.date.isoformat()} is "
            f"{abs(days)} days from invoice date {invoice.invoice_date.isoformat()}",
            line=line,
            invoice=invoice,
            expected_value=invoice.invoice_date.isoformat(),
            actual_value=line.date.isoformat(),
            metadata={
                "date_difference_days": days,
                "date_tolerance_days": config.date_tolerance_days,
            },
        ))

    return found


def check_other(line: CanonicalStatementLine) -> Discrepancy:
    return _discrepancy(
        DiscrepancyType.OTHER,
        Severity.LOW,
        f"Statement line {line.id} ({line.doc_number}, {line.amount} {line.currency}) "
        f"could not be matched to an open invoice",
        line=line,
        actual_value=str(line.amount),
        metadata={"doc_number": line.doc_number},
    )


# =============================================================================
# Invoice Checks
# =============================================================================

def check_missing_soa_item(pool, index, invoice_idx, open_line_docs) -> List[Discrepancy]:
    doc = index.invoice_docs[invoice_idx]
    if doc and doc in open_line_docs:
        return []

    invoice = pool.invoices[invoice_idx]
    return [_discrepancy(
        DiscrepancyType.MISSING_SOA_ITEM,
        Severity.MEDIUM,
        f"Invoice {invoice.id} ({invoice.doc_number or 'no doc number'}, "
        f"{invoice.total_amount} {invoice.currency}) is not on the statement",
        invoice=invoice,
        expected_value=str(invoice.total_amount),
        metadata={"doc_number": invoice.doc_number},
    )]


# =============================================================================
# Classifier
# =============================================================================

def classify_discrepancies(pool: MatchPool, config: MatchConfig) -> List[Discrepancy]:
    """Classify every open line and invoice left in the pool.

    Args:
        pool: Pool after the last enabled pass (not modified)
        config: Config the passes ran with (tolerances decide amount/date rules)

    Returns:
        Discrepancies, lines first then invoices, each in input order
    """
    index = _DocIndex(pool)
    open_lines = pool.open_line_indices()
    open_invoices = pool.open_invoice_indices()

    discrepancies = []

    for line_idx in open_lines:
        line = pool.statement_lines[line_idx]
        doc = index.line_docs[line_idx]

        found = []
        found.extend(check_duplicate(pool, index, line_idx))
        found.extend(check_not_found(pool, index, line_idx))

        if doc:
            for invoice_idx in open_invoices:
                if index.invoice_docs[invoice_idx] == doc:
                    found.extend(check_against_invoice(line, pool.invoices[invoice_idx], config))

        if not found:
            found.append(check_other(line))
        discrepancies.extend(found)

    open_line_docs = {index.line_docs[idx] for idx in open_lines if index.line_docs[idx]}
    for invoice_idx in open_invoices:
        discrepancies.extend(check_missing_soa_item(pool, index, invoice_idx, open_line_docs))

    return discrepancies
