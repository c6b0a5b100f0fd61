"""Statement reconciliation engine.

Exposes high-level functions:
- run_reconciliation(statement_lines, invoice_candidates, config) -> ReconciliationResult
- reconcile_run(statement_lines, invoice_candidates, config) -> ReconciliationRun

Data flow:
    raw records -> canonicalize -> passes 1..5 over a MatchPool
    -> classify leftovers -> build result

The engine is synchronous and does no I/O. Identical input and config give
an identical result; timings only go to the metrics collector.
"""

import time
from collections.abc import Sized
from typing import Any, Iterable, List, Mapping, Optional, Union

from core.models import CanonicalInvoice, MatchPair, ReconciliationResult
from core.observability import (
    get_logger,
    record_discrepancy,
    record_pass_matches,
    record_processing_time,
    record_run_completed,
    record_run_failed,
    record_run_started,
    with_correlation,
)
from reconciliation.canonicalize import canonicalize_invoices, canonicalize_statement_lines
from reconciliation.config import MatchConfig, resolve_config
from reconciliation.discrepancies import classify_discrepancies
from reconciliation.errors import ConfigError, ReconciliationError, ShapeError
from reconciliation.passes import default_passes
from reconciliation.pool import MatchPool
from reconciliation.result import ReconciliationRun, build_result


logger = get_logger(__name__)

ConfigInput = Union[MatchConfig, Mapping[str, Any], None]


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


def _count(records) -> int:
    return len(records) if isinstance(records, Sized) else 0


def _shared_value(invoices: List[CanonicalInvoice], attr: str) -> Optional[str]:
    """The value of attr when every invoice carries the same one, else None."""
    values = {getattr(inv, attr) for inv in invoices}
    if len(values) == 1:
        return values.pop()
    return None


def reconcile_run(
    statement_lines: Iterable[Any],
    invoice_candidates: Iterable[Any],
    config: ConfigInput = None,
    *,
    run_id: Optional[str] = None,
) -> ReconciliationRun:
    """Reconcile statement lines against invoice candidates.

    Args:
        statement_lines: Raw SOA line records (mappings or Pydantic models)
        invoice_candidates: Raw invoice records
        config: MatchConfig, mapping of config options, or None for defaults
        run_id: Correlation id for logs only; never affects the result

    Returns:
        ReconciliationRun holding canonical inputs, config and result

    Raises:
        ConfigError: Unknown or out-of-range config option
        ShapeError: A record is missing id, amount or currency (or is malformed)
        ReconciliationError: Internal invariant violation (never "no match")
    """
    started = time.perf_counter()
    record_run_started(_count(statement_lines), _count(invoice_candidates))

    with with_correlation(reconciliation_id=run_id, stage="canonicalize"):
        try:
            match_config = resolve_config(config)
            lines = canonicalize_statement_lines(statement_lines)
            invoices = canonicalize_invoices(invoice_candidates)
        except (ConfigError, ShapeError) as exc:
            logger.warning(
                "Reconciliation rejected: %s",
                exc,
                extra_fields={"error_type": type(exc).__name__},
            )
            record_run_failed(type(exc).__name__)
            raise
        record_processing_time("canonicalize", _elapsed_ms(started))

    with with_correlation(
        reconciliation_id=run_id,
        vendor_id=_shared_value(invoices, "vendor_id"),
        company_id=_shared_value(invoices, "company_id"),
    ):
        logger.info(
            "Reconciling %d statement lines against %d invoices",
            len(lines),
            len(invoices),
            extra_fields={
                "allow_partial": match_config.allow_partial,
                "date_tolerance_days": match_config.date_tolerance_days,
                "amount_tolerance_abs": str(match_config.amount_tolerance_abs),
                "amount_tolerance_pct": str(match_config.amount_tolerance_pct),
            },
        )

        try:
            result = _run_passes(MatchPool(lines, invoices), match_config)
        except ReconciliationError as exc:
            logger.exception("Reconciliation aborted: %s", exc)
            record_run_failed(type(exc).__name__)
            raise

        duration_ms = _elapsed_ms(started)
        record_run_completed(duration_ms)

        summary = result.summary
        logger.info(
            "Reconciliation %s: %d/%d lines matched, %d discrepancies",
            summary["status"],
            summary["matched_lines"],
            summary["total_statement_lines"],
            summary["discrepancy_count"],
            extra_fields={
                "matches_by_pass": summary["matches_by_pass"],
                "discrepancies_by_type": {
                    k: v for k, v in summary["discrepancies_by_type"].items() if v
                },
                "duration_ms": round(duration_ms, 2),
            },
        )

    return ReconciliationRun(
        statement_lines=tuple(lines),
        invoice_candidates=tuple(invoices),
        config=match_config,
        result=result,
    )


def _run_passes(pool: MatchPool, config: MatchConfig) -> ReconciliationResult:
    matches: List[MatchPair] = []

    # =========================================================================
    # Matching passes (strictest first, claims are final)
    # =========================================================================
    for match_pass in default_passes(config):
        with with_correlation(pass_number=match_pass.number, stage=match_pass.name):
            pass_started = time.perf_counter()
            pairs = match_pass.run(pool, config)
            matches.extend(pairs)

            record_pass_matches(match_pass.number, len(pairs))
            record_processing_time(f"pass_{match_pass.number}", _elapsed_ms(pass_started))
            logger.debug(
                "Pass %d (%s) matched %d pairs",
                match_pass.number,
                match_pass.name,
                len(pairs),
                extra_fields={
                    "open_lines": len(pool.open_line_indices()),
                    "open_invoices": len(pool.open_invoice_indices()),
                },
            )

    # =========================================================================
    # Discrepancies over whatever is left
    # =========================================================================
    with with_correlation(stage="classify"):
        classify_started = time.perf_counter()
        discrepancies = classify_discrepancies(pool, config)
        record_processing_time("classify", _elapsed_ms(classify_started))

        by_type = {}
        for d in discrepancies:
            by_type[d.type.value] = by_type.get(d.type.value, 0) + 1
        for discrepancy_type, count in by_type.items():
            record_discrepancy(discrepancy_type, count)

        if discrepancies:
            logger.info(
                "%d discrepancies on %d unmatched lines and %d unmatched invoices",
                len(discrepancies),
                len(pool.open_line_indices()),
                len(pool.open_invoice_indices()),
                extra_fields={"discrepancies_by_type": by_type},
            )

    with with_correlation(stage="build"):
        return build_result(pool, matches, discrepancies)


def run_reconciliation(
    statement_lines: Iterable[Any],
    invoice_candidates: Iterable[Any],
    config: ConfigInput = None,
    *,
    run_id: Optional[str] = None,
) -> ReconciliationResult:
    """Run the matching cascade and return the result.

    Example:
        result = run_reconciliation(
            [{"id": "L1", "doc": "INV-001", "amount": "1000.00", "currency": "USD"}],
            [{"id": "I1", "invoice_number": "INV-001", "total_amount": 1000, "currency": "USD"}],
        )
        result.matches[0].pass_number  # 3 (no dates, so passes 1-2 skip it)
    """
    return reconcile_run(statement_lines, invoice_candidates, config, run_id=run_id).result
