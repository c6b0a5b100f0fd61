"""
Metrics Collection for Statement Reconciliation

Collects in-memory metrics for:
- Reconciliation runs (started, completed, failed)
- Matches produced per pass
- Discrepancies emitted per type
- Processing times (average, p95) per stage

Metrics are observational only: the matching engine writes to the
collector but never reads from it, so results never depend on it.
"""

import statistics
from collections import defaultdict
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Dict, List, Optional


# =============================================================================
# Metric Data Classes
# =============================================================================

@dataclass
class RunMetrics:
    """Metrics for reconciliation runs."""
    started: int = 0
    completed: int = 0
    failed: int = 0
    in_progress: int = 0

    # Failures by error class (ShapeError, ConfigError, ...)
    failures_by_error: Dict[str, int] = field(default_factory=lambda: defaultdict(int))


@dataclass
class MatchMetrics:
    """Matches and discrepancies produced across runs."""
    by_pass: Dict[int, int] = field(default_factory=lambda: defaultdict(int))
    discrepancies_by_type: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    lines_seen: int = 0
    invoices_seen: int = 0


@dataclass
class TimingMetrics:
    """Processing time metrics."""
    # Raw timing samples (keep last N for percentile calculations)
    samples: List[float] = field(default_factory=list)
    max_samples: int = 1000

    # By stage
    by_stage: Dict[str, List[float]] = field(default_factory=lambda: defaultdict(list))

    def add_sample(self, duration_ms: float, stage: str = None):
        """Add a timing sample."""
        self.samples.append(duration_ms)
        if len(self.samples) > self.max_samples:
            self.samples = self.samples[-self.max_samples:]

        if stage:
            self.by_stage[stage].append(duration_ms)
            if len(self.by_stage[stage]) > self.max_samples:
                self.by_stage[stage] = self.by_stage[stage][-self.max_samples:]

    def get_average(self, stage: str = None) -> float:
        """Get average processing time."""
        samples = self.by_stage.get(stage, []) if stage else self.samples
        return statistics.mean(samples) if samples else 0.0

    def get_p95(self, stage: str = None) -> float:
        """Get 95th percentile processing time."""
        samples = self.by_stage.get(stage, []) if stage else self.samples
        if not samples:
            return 0.0
        sorted_samples = sorted(samples)
        idx = int(len(sorted_samples) * 0.95)
        return sorted_samples[min(idx, len(sorted_samples) - 1)]


# =============================================================================
# Metrics Collector (Singleton)
# =============================================================================

class MetricsCollector:
    """
    Thread-safe metrics collector for reconciliation runs.

    Usage:
        metrics = MetricsCollector.instance()
        metrics.record_run_started(line_count=12, invoice_count=10)
        metrics.record_pass_matches(1, 8)
        metrics.record_run_completed(duration_ms=4.2)
    """

    _instance: Optional["MetricsCollector"] = None
    _lock = Lock()

    def __init__(self):
        self.runs = RunMetrics()
        self.matches = MatchMetrics()
        self.timings = TimingMetrics()
        self._lock = Lock()

    @classmethod
    def instance(cls) -> "MetricsCollector":
        """Get singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def reset(self):
        """Drop every collected value."""
        with self._lock:
            self.runs = RunMetrics()
            self.matches = MatchMetrics()
            self.timings = TimingMetrics()

    # =========================================================================
    # Run Metrics
    # =========================================================================

    def record_run_started(self, line_count: int = 0, invoice_count: int = 0):
        """Record the start of a reconciliation run."""
        with self._lock:
            self.runs.started += 1
            self.runs.in_progress += 1
            self.matches.lines_seen += line_count
            self.matches.invoices_seen += invoice_count

    def record_run_completed(self, duration_ms: float = None):
        """Record a successful run."""
        with self._lock:
            self.runs.completed += 1
            self.runs.in_progress = max(0, self.runs.in_progress - 1)

            if duration_ms is not None:
                self.timings.add_sample(duration_ms, "run")

    def record_run_failed(self, error: str = None):
        """Record a run rejected before or during matching."""
        with self._lock:
            self.runs.failed += 1
            self.runs.in_progress = max(0, self.runs.in_progress - 1)
            self.runs.failures_by_error[error or "unknown"] += 1

    # =========================================================================
    # Match Metrics
    # =========================================================================

    def record_pass_matches(self, pass_number: int, count: int):
        """Record how many pairs a pass produced."""
        with self._lock:
            self.matches.by_pass[pass_number] += count

    def record_discrepancy(self, discrepancy_type: str, count: int = 1):
        """Record emitted discrepancies of one type."""
        with self._lock:
            self.matches.discrepancies_by_type[discrepancy_type] += count

    # =========================================================================
    # Timing Metrics
    # =========================================================================

    def record_processing_time(self, stage: str, duration_ms: float):
        """Record a processing time sample."""
        with self._lock:
            self.timings.add_sample(duration_ms, stage)

    def get_timing_stats(self, stage: str = None) -> Dict[str, float]:
        """Get timing statistics for a stage."""
        with self._lock:
            return {
                "average_ms": self.timings.get_average(stage),
                "p95_ms": self.timings.get_p95(stage),
                "sample_count": len(self.timings.by_stage.get(stage, []) if stage else self.timings.samples),
            }

    # =========================================================================
    # Summary
    # =========================================================================

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of all metrics."""
        with self._lock:
            return {
                "runs": {
                    "started": self.runs.started,
                    "completed": self.runs.completed,
                    "failed": self.runs.failed,
                    "in_progress": self.runs.in_progress,
                    "failures_by_error": dict(self.runs.failures_by_error),
                },
                "matches": {
                    "by_pass": dict(self.matches.by_pass),
                    "discrepancies_by_type": dict(self.matches.discrepancies_by_type),
                    "lines_seen": self.matches.lines_seen,
                    "invoices_seen": self.matches.invoices_seen,
                },
                "timings": {
                    "overall": {
                        "average_ms": self.timings.get_average(),
                        "p95_ms": self.timings.get_p95(),
                    },
                    "by_stage": {
                        stage: {
                            "average_ms": self.timings.get_average(stage),
                            "p95_ms": self.timings.get_p95(stage),
                        }
                        for stage in self.timings.by_stage.keys()
                    },
                },
            }


# =============================================================================
# Module-level convenience functions
# =============================================================================

def get_metrics() -> MetricsCollector:
    """Get the global metrics collector."""
    return MetricsCollector.instance()


def record_run_started(line_count: int = 0, invoice_count: int = 0):
    """Record the start of a reconciliation run."""
    get_metrics().record_run_started(line_count, invoice_count)


def record_run_completed(duration_ms: float = None):
    """Record a successful run."""
    get_metrics().record_run_completed(duration_ms)


def record_run_failed(error: str = None):
    """Record a failed run."""
    get_metrics().record_run_failed(error)


def record_pass_matches(pass_number: int, count: int):
    """Record how many pairs a pass produced."""
    get_metrics().record_pass_matches(pass_number, count)


def record_discrepancy(discrepancy_type: str, count: int = 1):
    """Record emitted discrepancies of one type."""
    get_metrics().record_discrepancy(discrepancy_type, count)


def record_processing_time(stage: str, duration_ms: float):
    """Record a processing time sample."""
    get_metrics().record_processing_time(stage, duration_ms)
