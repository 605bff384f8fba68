"""Metrics collection for search execution."""

from dataclasses import dataclass, field
from typing import ClassVar


@dataclass
class SearchMetrics:
    """Metrics for search operations.

    Attributes:
        searches_total: Searches executed.
        source_failures: Failed retrievals per source.
        source_timeouts: Timed out retrievals per source.
        search_duration_ms: Cumulative search duration.
        history_failures_total: History writes that failed.
    """

    searches_total: int = 0
    source_failures: dict[str, int] = field(default_factory=dict)
    source_timeouts: dict[str, int] = field(default_factory=dict)
    search_duration_ms: float = 0.0
    history_failures_total: int = 0

    _instance: ClassVar["SearchMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "SearchMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def record_search(self, duration_ms: float) -> None:
        """Record a completed search.

        Args:
            duration_ms: Duration in milliseconds.
        """
        self.searches_total += 1
        self.search_duration_ms += duration_ms

    def record_source_failure(self, source: str) -> None:
        """Record a failed retrieval."""
        self.source_failures[source] = self.source_failures.get(source, 0) + 1

    def record_source_timeout(self, source: str) -> None:
        """Record a timed out retrieval."""
        self.source_timeouts[source] = self.source_timeouts.get(source, 0) + 1

    def record_history_failure(self) -> None:
        """Record a failed history write."""
        self.history_failures_total += 1

    def to_dict(self) -> dict[str, object]:
        """Convert metrics to dictionary."""
        return {
            "searches_total": self.searches_total,
            "source_failures": dict(self.source_failures),
            "source_timeouts": dict(self.source_timeouts),
            "search_duration_ms": self.search_duration_ms,
            "history_failures_total": self.history_failures_total,
        }
