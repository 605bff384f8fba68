"""Quota-based rate limiting.

Resolves each caller's subscription tier and tracks per-hour usage
buckets against the tier's hourly and daily limits.
"""

from src.quota.metrics import QuotaMetrics
from src.quota.models import QuotaDecision, QuotaReason, UsageRecord, UsageStats
from src.quota.tiers import FALLBACK_TIER, TierResolver
from src.quota.tracker import QuotaTracker, bucket_key, next_hour, next_midnight


__all__ = [
    "FALLBACK_TIER",
    "QuotaDecision",
    "QuotaMetrics",
    "QuotaReason",
    "QuotaTracker",
    "TierResolver",
    "UsageRecord",
    "UsageStats",
    "bucket_key",
    "next_hour",
    "next_midnight",
]
