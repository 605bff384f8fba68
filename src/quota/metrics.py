"""Metrics collection for quota admission."""

from dataclasses import dataclass
from typing import ClassVar

from src.quota.models import QuotaReason


@dataclass
class QuotaMetrics:
    """Metrics for quota checks.

    Attributes:
        admitted_total: Calls admitted.
        denied_hourly_total: Calls denied by the hourly limit.
        denied_daily_total: Calls denied by the daily limit.
        fallback_tier_total: Resolutions that fell back to the built-in tier.
    """

    admitted_total: int = 0
    denied_hourly_total: int = 0
    denied_daily_total: int = 0
    fallback_tier_total: int = 0

    _instance: ClassVar["QuotaMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "QuotaMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def record_admitted(self) -> None:
        """Record an admitted call."""
        self.admitted_total += 1

    def record_denied(self, reason: QuotaReason) -> None:
        """Record a denied call.

        Args:
            reason: Breached window.
        """
        if reason == QuotaReason.HOURLY:
            self.denied_hourly_total += 1
        else:
            self.denied_daily_total += 1

    def record_fallback_tier(self) -> None:
        """Record use of the built-in fallback tier."""
        self.fallback_tier_total += 1

    def to_dict(self) -> dict[str, int]:
        """Convert metrics to dictionary."""
        return {
            "admitted_total": self.admitted_total,
            "denied_hourly_total": self.denied_hourly_total,
            "denied_daily_total": self.denied_daily_total,
            "fallback_tier_total": self.fallback_tier_total,
        }
