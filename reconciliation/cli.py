"""Command-line statement reconciliation.

Usage:
    soa-reconcile --statement lines.json --invoices invoices.json
    soa-reconcile --statement lines.json --invoices invoices.json --allow-partial --output report.json

Input files hold either a JSON list of records or an object wrapping one
({"lines": [...]} for the statement, {"invoices": [...]} for invoices).

Config comes from SOA_RECON_* environment variables (and an optional .env
file); command-line flags override them.

Exit codes: 0 on PASS/WARN, 1 on FAIL, 2 on bad input or config.
"""

import argparse
import json
import logging
import sys
from decimal import Decimal
from pathlib import Path
from typing import Any, List, Optional

from core.models import ReconciliationResult, RunStatus, Severity
from core.observability import configure_logging
from core.storage import put_json
from reconciliation.config import MatchConfig, load_config_from_env
from reconciliation.engine import reconcile_run
from reconciliation.errors import ConfigError, ShapeError


EXIT_OK = 0
EXIT_FAIL = 1
EXIT_INPUT_ERROR = 2


def load_records(path: Path, key: str) -> List[Any]:
    """Read a JSON list of records, or the list under `key` of a JSON object."""
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        if key not in data:
            raise ShapeError(f"{path}: expected a list or an object with '{key}'")
        data = data[key]
    if not isinstance(data, list):
        raise ShapeError(f"{path}: expected a list of records, got {type(data).__name__}")
    return data


def build_config(args: argparse.Namespace) -> MatchConfig:
    """Environment config with command-line overrides applied."""
    base = load_config_from_env(env_file=args.env_file)

    overrides = {
        "allow_partial": args.allow_partial,
        "date_tolerance_days": args.date_tolerance_days,
        "amount_tolerance_abs": args.amount_tolerance_abs,
        "amount_tolerance_pct": args.amount_tolerance_pct,
    }
    values = base.model_dump()
    values.update({k: v for k, v in overrides.items() if v is not None})
    return MatchConfig.from_mapping(values)


def print_result(result: ReconciliationResult) -> None:
    """Print reconciliation result in a readable format."""
    status_emoji = {"PASS": "✅", "WARN": "⚠️", "FAIL": "❌"}
    summary = result.summary

    print(f"\nStatus: {status_emoji.get(result.status.value, '')} {result.status.value}")
    print(
        f"Statement lines: {summary['matched_lines']}/{summary['total_statement_lines']} matched "
        f"({summary['match_rate_pct']}%)"
    )
    print(f"Invoices: {summary['matched_invoices']}/{summary['total_invoices']} matched")

    by_pass = ", ".join(f"pass {n}: {c}" for n, c in summary["matches_by_pass"].items() if c)
    if by_pass:
        print(f"Matches by pass: {by_pass}")

    for currency, total in summary["statement_total_by_currency"].items():
        matched = summary["matched_total_by_currency"].get(currency, Decimal("0"))
        print(f"Statement total {currency}: {total} (matched {matched})")

    blocking = [d for d in result.discrepancies if d.severity in (Severity.HIGH, Severity.CRITICAL)]
    warnings = [d for d in result.discrepancies if d.severity not in (Severity.HIGH, Severity.CRITICAL)]

    if blocking:
        print(f"\n❌ BLOCKING DISCREPANCIES ({len(blocking)}):")
        for d in blocking:
            print(f"  - [{d.type.value}/{d.severity.value}] {d.description}")

    if warnings:
        print(f"\n⚠️ WARNINGS ({len(warnings)}):")
        for d in warnings:
            print(f"  - [{d.type.value}/{d.severity.value}] {d.description}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="soa-reconcile",
        description="Reconcile statement of account lines against invoices",
    )
    parser.add_argument("--statement", type=Path, required=True, help="JSON file of statement lines")
    parser.add_argument("--invoices", type=Path, required=True, help="JSON file of candidate invoices")
    parser.add_argument(
        "--allow-partial", action="store_true", default=None,
        help="Enable Pass 5 group matching (off by default)",
    )
    parser.add_argument("--date-tolerance-days", type=int, help="Pass 2 date window in days")
    parser.add_argument("--amount-tolerance-abs", type=Decimal, help="Pass 4 absolute tolerance")
    parser.add_argument("--amount-tolerance-pct", type=Decimal, help="Pass 4 relative tolerance (0.005 = 0.5%%)")
    parser.add_argument("--env-file", type=Path, default=Path(".env"), help="Optional .env file with SOA_RECON_* settings")
    parser.add_argument("--output", type=Path, help="Output JSON file for the full result")
    parser.add_argument("--run-id", help="Correlation id for log lines")
    parser.add_argument("--json-logs", action="store_true", help="Log as JSON lines")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log per-pass detail")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    configure_logging(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        json_format=args.json_logs,
        force=True,
    )

    try:
        config = build_config(args)
        lines = load_records(args.statement, "lines")
        invoices = load_records(args.invoices, "invoices")
        run = reconcile_run(lines, invoices, config, run_id=args.run_id)
    except (ConfigError, ShapeError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_INPUT_ERROR
    except (OSError, json.JSONDecodeError) as exc:
        print(f"Error reading input: {exc}", file=sys.stderr)
        return EXIT_INPUT_ERROR

    print_result(run.result)

    if args.output:
        ref = put_json(run.result, args.output)
        print(f"\nResults written to {args.output} (sha256 {ref.content_hash[:12]})")

    return EXIT_FAIL if run.result.status == RunStatus.FAIL else EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
