"""
Observability Module for Statement Reconciliation

Provides:
- Structured logging with correlation IDs
- Metrics collection (runs, matches per pass, discrepancies, processing times)
"""

from core.observability.metrics import (
    MetricsCollector,
    get_metrics,
    record_run_started,
    record_run_completed,
    record_run_failed,
    record_pass_matches,
    record_discrepancy,
    record_processing_time,
)

from core.observability.logging import (
    configure_logging,
    get_logger,
    CorrelationContext,
    with_correlation,
)

__all__ = [
    # Metrics
    "MetricsCollector",
    "get_metrics",
    "record_run_started",
    "record_run_completed",
    "record_run_failed",
    "record_pass_matches",
    "record_discrepancy",
    "record_processing_time",
    # Logging
    "configure_logging",
    "get_logger",
    "CorrelationContext",
    "with_correlation",
]
