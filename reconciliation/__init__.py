"""Statement of account (SOA) reconciliation engine.

Pairs statement lines with candidate invoices through five ordered matching
passes and explains every leftover as a typed, severity-ranked discrepancy.
"""

from reconciliation.config import MatchConfig, load_config_from_env
from reconciliation.engine import reconcile_run, run_reconciliation
from reconciliation.errors import ConfigError, ReconciliationError, ShapeError
from reconciliation.result import ReconciliationRun

__all__ = [
    "run_reconciliation",
    "reconcile_run",
    "ReconciliationRun",
    "MatchConfig",
    "load_config_from_env",
    "ReconciliationError",
    "ShapeError",
    "ConfigError",
]
