"""Reconciliation activity for orchestration callers.

Temporal activity that runs the statement matching engine over records the
workflow has already retrieved, and optionally persists the full result.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from temporalio import activity
from temporalio.exceptions import ApplicationError

from core.models import RunStatus
from core.storage import put_json
from reconciliation.engine import reconcile_run
from reconciliation.errors import ConfigError, ShapeError


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class ReconcileStatementInput:
    """Input for reconcile_statement activity.

    Attributes:
        statement_lines: Raw SOA line records as returned by storage
        invoice_candidates: Raw invoice records as returned by storage
        reconciliation_id: Run id for logs and the report file name
        config: Matching options (allow_partial, tolerances); None for defaults
        output_dir: Directory for the result JSON; nothing is written if None
    """
    statement_lines: List[Dict[str, Any]]
    invoice_candidates: List[Dict[str, Any]]
    reconciliation_id: str
    config: Optional[Dict[str, Any]] = None
    output_dir: Optional[str] = None


@dataclass
class ReconcileStatementOutput:
    """Output from reconcile_statement activity.

    Attributes:
        status: PASS, WARN or FAIL
        matched_lines: Statement lines paired with an invoice
        unmatched_lines: Statement lines left over
        unmatched_invoices: Invoices left over
        discrepancy_count: Total discrepancies emitted
        matches_by_pass: Pair count per pass number (as string keys)
        result_ref: Serialized DataReference to the result JSON (if written)
    """
    status: str
    matched_lines: int
    unmatched_lines: int
    unmatched_invoices: int
    discrepancy_count: int
    matches_by_pass: Dict[str, int] = field(default_factory=dict)
    result_ref: Optional[dict] = None


# =============================================================================
# Activity Definition
# =============================================================================

@activity.defn
async def reconcile_statement(input: ReconcileStatementInput) -> ReconcileStatementOutput:
    """Reconcile statement lines against candidate invoices.

    Malformed records and bad config fail as non-retryable: the engine is
    deterministic, so a retry would fail the same way.

    Args:
        input: ReconcileStatementInput with raw records and config

    Returns:
        ReconcileStatementOutput with counts, status and report reference
    """
    activity.logger.info(
        f"Reconciling {input.reconciliation_id}: {len(input.statement_lines)} lines, "
        f"{len(input.invoice_candidates)} invoices"
    )

    try:
        run = reconcile_run(
            input.statement_lines,
            input.invoice_candidates,
            input.config,
            run_id=input.reconciliation_id,
        )
    except (ShapeError, ConfigError) as exc:
        activity.logger.error(f"Reconciliation {input.reconciliation_id} rejected: {exc}")
        raise ApplicationError(str(exc), type=type(exc).__name__, non_retryable=True) from exc

    result = run.result
    summary = result.summary

    result_ref = None
    if input.output_dir:
        report_path = Path(input.output_dir) / f"{input.reconciliation_id}_reconciliation.json"
        result_ref = put_json(run, report_path).model_dump(mode="json")

    if result.status == RunStatus.PASS:
        activity.logger.info(f"✓ {input.reconciliation_id} reconciliation: PASS")
    elif result.status == RunStatus.WARN:
        activity.logger.warning(
            f"⚠ {input.reconciliation_id} reconciliation: WARN ({summary['discrepancy_count']} discrepancies)"
        )
    else:
        activity.logger.error(
            f"✗ {input.reconciliation_id} reconciliation: FAIL ({summary['discrepancy_count']} discrepancies)"
        )

    return ReconcileStatementOutput(
        status=result.status.value,
        matched_lines=summary["matched_lines"],
        unmatched_lines=summary["unmatched_lines"],
        unmatched_invoices=summary["unmatched_invoices"],
        discrepancy_count=summary["discrepancy_count"],
        matches_by_pass={str(k): v for k, v in summary["matches_by_pass"].items()},
        result_ref=result_ref,
    )
