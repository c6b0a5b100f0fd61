"""Result builder.

Turns the final pool, the pass output and the discrepancy list into a
ReconciliationResult, after checking that every input record landed on
exactly one side (matched or unmatched).
"""

from collections import OrderedDict
from decimal import Decimal
from typing import Any, Dict, List, Sequence, Tuple

from pydantic import BaseModel, ConfigDict

from core.models import (
    CanonicalInvoice,
    CanonicalStatementLine,
    Discrepancy,
    DiscrepancyType,
    MatchPair,
    ReconciliationResult,
    RunStatus,
    Severity,
)
from reconciliation.config import MatchConfig
from reconciliation.errors import ReconciliationError
from reconciliation.normalize import round_amount
from reconciliation.pool import MatchPool


PASS_NUMBERS = (1, 2, 3, 4, 5)
BLOCKING_SEVERITIES = {Severity.HIGH, Severity.CRITICAL}


class ReconciliationRun(BaseModel):
    """Inputs, config and result of one reconciliation, as one value."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    statement_lines: Tuple[CanonicalStatementLine, ...]
    invoice_candidates: Tuple[CanonicalInvoice, ...]
    config: MatchConfig
    result: ReconciliationResult


# =============================================================================
# Partition Check
# =============================================================================

def verify_partition(pool: MatchPool, matches: Sequence[MatchPair]) -> None:
    """Every input record must be matched or unmatched, never both or neither.

    Raises:
        ReconciliationError: If the pool and the match list disagree
    """
    for kind, records, claimed, open_ in (
        ("statement line", pool.statement_lines, pool.claimed_line_indices, pool.open_line_indices()),
        ("invoice", pool.invoices, pool.claimed_invoice_indices, pool.open_invoice_indices()),
    ):
        claimed_set = set(claimed)
        open_set = set(open_)
        overlap = claimed_set & open_set
        if overlap:
            raise ReconciliationError(f"{kind} indices both matched and unmatched: {sorted(overlap)}")
        missing = set(range(len(records))) - claimed_set - open_set
        if missing:
            raise ReconciliationError(f"{kind} indices neither matched nor unmatched: {sorted(missing)}")

    claimed_line_ids = {pool.statement_lines[i].id for i in pool.claimed_line_indices}
    claimed_invoice_ids = {pool.invoices[i].id for i in pool.claimed_invoice_indices}
    paired_line_ids = {m.statement_line_id for m in matches}
    paired_invoice_ids = {m.invoice_id for m in matches}

    if paired_line_ids != claimed_line_ids:
        raise ReconciliationError(
            "Matched statement lines disagree with claimed pool entries: "
            f"{sorted(paired_line_ids ^ claimed_line_ids)}"
        )
    if paired_invoice_ids != claimed_invoice_ids:
        raise ReconciliationError(
            "Matched invoices disagree with claimed pool entries: "
            f"{sorted(paired_invoice_ids ^ claimed_invoice_ids)}"
        )

    # Outside group matches each id is used by one pair only
    seen_lines = set()
    seen_invoices = set()
    for match in matches:
        if match.group_id is not None:
            continue
        if match.statement_line_id in seen_lines or match.invoice_id in seen_invoices:
            raise ReconciliationError(
                f"Record matched twice: line {match.statement_line_id}, invoice {match.invoice_id}"
            )
        seen_lines.add(match.statement_line_id)
        seen_invoices.add(match.invoice_id)


# =============================================================================
# Summary
# =============================================================================

def _totals_by_currency(items) -> Dict[str, Decimal]:
    totals: Dict[str, Decimal] = OrderedDict()
    for currency, amount in items:
        totals[currency] = totals.get(currency, Decimal("0")) + amount
    return dict(totals)


def determine_status(discrepancies: Sequence[Discrepancy], has_leftovers: bool) -> RunStatus:
    """PASS when nothing is left over, FAIL on any high/critical, else WARN."""
    if any(d.severity in BLOCKING_SEVERITIES for d in discrepancies):
        return RunStatus.FAIL
    if discrepancies or has_leftovers:
        return RunStatus.WARN
    return RunStatus.PASS


def build_summary(
    pool: MatchPool,
    matches: Sequence[MatchPair],
    discrepancies: Sequence[Discrepancy],
) -> Dict[str, Any]:
    total_lines = len(pool.statement_lines)
    matched_lines = len(pool.claimed_line_indices)
    unmatched_lines = total_lines - matched_lines
    unmatched_invoices = len(pool.open_invoice_indices())

    matches_by_pass = {n: 0 for n in PASS_NUMBERS}
    for match in matches:
        matches_by_pass[match.pass_number] += 1

    by_type = {t.value: 0 for t in DiscrepancyType}
    by_severity = {s.value: 0 for s in Severity}
    for d in discrepancies:
        by_type[d.type.value] += 1
        by_severity[d.severity.value] += 1

    match_rate = Decimal("0")
    if total_lines:
        match_rate = round_amount(Decimal(matched_lines) * 100 / Decimal(total_lines), 2)

    status = determine_status(discrepancies, bool(unmatched_lines or unmatched_invoices))

    return {
        "total_statement_lines": total_lines,
        "total_invoices": len(pool.invoices),
        "matched_lines": matched_lines,
        "matched_invoices": len(pool.claimed_invoice_indices),
        "unmatched_lines": unmatched_lines,
        "unmatched_invoices": unmatched_invoices,
        "match_count": len(matches),
        "group_count": len({m.group_id for m in matches if m.group_id}),
        "matches_by_pass": matches_by_pass,
        "match_rate_pct": match_rate,
        "statement_total_by_currency": _totals_by_currency(
            (line.currency, line.amount) for line in pool.statement_lines
        ),
        "matched_total_by_currency": _totals_by_currency(
            (pool.statement_lines[i].currency, pool.statement_lines[i].amount)
            for i in pool.claimed_line_indices
        ),
        "discrepancy_count": len(discrepancies),
        "discrepancies_by_type": by_type,
        "discrepancies_by_severity": by_severity,
        "status": status.value,
    }


# =============================================================================
# Builder
# =============================================================================

def build_result(
    pool: MatchPool,
    matches: List[MatchPair],
    discrepancies: List[Discrepancy],
) -> ReconciliationResult:
    """Assemble the result from the final pool state.

    Raises:
        ReconciliationError: If the matched/unmatched partition is broken
    """
    verify_partition(pool, matches)

    return ReconciliationResult(
        matches=list(matches),
        unmatched_lines=pool.remaining_lines,
        unmatched_invoices=pool.remaining_invoices,
        discrepancies=list(discrepancies),
        summary=build_summary(pool, matches, discrepancies),
    )
