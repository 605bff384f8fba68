"""Metrics collection for trending recompute."""

from dataclasses import dataclass
from typing import ClassVar


@dataclass
class TrendingMetrics:
    """Metrics for trending recompute batches.

    Attributes:
        recompute_runs_total: Completed recompute batches.
        recompute_rejected_total: Recomputes refused because one was running.
        items_scored_total: Items scored across all batches.
        items_failed_total: Items that failed to score.
        last_duration_ms: Duration of the most recent batch.
    """

    recompute_runs_total: int = 0
    recompute_rejected_total: int = 0
    items_scored_total: int = 0
    items_failed_total: int = 0
    last_duration_ms: float = 0.0

    _instance: ClassVar["TrendingMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "TrendingMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def record_run(self, scored: int, failed: int, duration_ms: float) -> None:
        """Record a finished batch."""
        self.recompute_runs_total += 1
        self.items_scored_total += scored
        self.items_failed_total += failed
        self.last_duration_ms = duration_ms

    def record_rejected(self) -> None:
        """Record a recompute refused by the job lease."""
        self.recompute_rejected_total += 1

    def to_dict(self) -> dict[str, float | int]:
        """Convert metrics to dictionary."""
        return {
            "recompute_runs_total": self.recompute_runs_total,
            "recompute_rejected_total": self.recompute_rejected_total,
            "items_scored_total": self.items_scored_total,
            "items_failed_total": self.items_failed_total,
            "last_duration_ms": self.last_duration_ms,
        }
