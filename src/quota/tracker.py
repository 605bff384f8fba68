"""Per-caller quota tracking over hourly buckets.

Counters live in ``rate_limit_buckets`` keyed by caller, UTC date and UTC
hour. ``hourly_count`` restarts with each new hour bucket while
``daily_count`` is carried forward from the previous bucket of the same
date, so the latest bucket of a day always holds the day's total.

``check_quota`` followed by ``record_usage`` is not atomic: two concurrent
calls can both pass the check before either records. ``admit`` performs
the check and the increment under one write lock and is what request
handling uses.
"""

from datetime import UTC, date, datetime, timedelta

import structlog

from src.config.schemas import QuotaConfig
from src.quota.metrics import QuotaMetrics
from src.quota.models import QuotaDecision, QuotaReason, UsageRecord, UsageStats
from src.quota.tiers import TierResolver
from src.store import RateLimitBucket, SearchStore, SubscriptionTier
from src.store.models import utc_now


logger = structlog.get_logger()


def _as_utc(now: datetime) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=UTC)
    return now.astimezone(UTC)


def bucket_key(now: datetime) -> tuple[date, int]:
    """UTC date and hour of day for a timestamp."""
    utc = _as_utc(now)
    return utc.date(), utc.hour


def next_hour(now: datetime) -> datetime:
    """Start of the hour after ``now`` (UTC)."""
    utc = _as_utc(now)
    return utc.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)


def next_midnight(now: datetime) -> datetime:
    """Start of the UTC day after ``now``."""
    utc = _as_utc(now)
    return utc.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1)


class QuotaTracker:
    """Answers admission checks and records consumption."""

    def __init__(
        self,
        store: SearchStore,
        tiers: TierResolver | None = None,
        config: QuotaConfig | None = None,
    ) -> None:
        """Initialize the tracker.

        Args:
            store: Store holding buckets and usage logs.
            tiers: Tier resolver (built from the store if omitted).
            config: Quota configuration.
        """
        self._store = store
        self._config = config or QuotaConfig()
        self._tiers = tiers or TierResolver(store, self._config.default_tier)
        self._metrics = QuotaMetrics.get_instance()
        self._log = logger.bind(component="quota", subcomponent="tracker")

    def check_quota(self, caller_id: str, now: datetime | None = None) -> QuotaDecision:
        """Decide whether a call would be admitted, without consuming quota.

        Args:
            caller_id: Caller identity.
            now: Evaluation time (defaults to now).

        Returns:
            The admission decision.
        """
        now = now or utc_now()
        tier = self._tiers.resolve(caller_id, now)
        hourly, daily = self._current_usage(caller_id, now)
        return self._decide(tier, hourly, daily, now)

    def record_usage(
        self, caller_id: str, now: datetime | None = None
    ) -> RateLimitBucket:
        """Count one call against the caller's current bucket.

        Args:
            caller_id: Caller identity.
            now: Time of the call (defaults to now).

        Returns:
            The bucket after the increment.
        """
        now = now or utc_now()
        bucket_date, hour = bucket_key(now)
        return self._store.increment_bucket(caller_id, bucket_date, hour, now)

    def admit(self, caller_id: str, now: datetime | None = None) -> QuotaDecision:
        """Atomically check the quota and consume one call if allowed.

        The reported ``remaining`` already accounts for the admitted call.

        Args:
            caller_id: Caller identity.
            now: Time of the call (defaults to now).

        Returns:
            The admission decision.
        """
        now = now or utc_now()
        bucket_date, hour = bucket_key(now)

        with self._store.atomic("admit"):
            tier = self._tiers.resolve(caller_id, now)
            hourly, daily = self._current_usage(caller_id, now)
            decision = self._decide(tier, hourly, daily, now)
            if decision.allowed:
                bucket = self._store.increment_bucket(caller_id, bucket_date, hour, now)
                decision = decision.model_copy(
                    update={
                        "remaining": max(
                            0,
                            min(
                                tier.hourly_limit - bucket.hourly_count,
                                tier.daily_limit - bucket.daily_count,
                            ),
                        )
                    }
                )

        if decision.allowed:
            self._metrics.record_admitted()
            self._log.debug(
                "quota_admitted",
                caller_id=caller_id,
                tier=tier.name,
                remaining=decision.remaining,
            )
        elif decision.reason is not None:
            self._metrics.record_denied(decision.reason)
            self._log.info(
                "quota_denied",
                caller_id=caller_id,
                tier=tier.name,
                reason=decision.reason.value,
                limit=decision.limit,
            )
        return decision

    def log_usage(  # noqa: PLR0913
        self,
        caller_id: str,
        endpoint: str,
        method: str,
        response_status: int,
        remaining: int,
        now: datetime | None = None,
    ) -> None:
        """Append a usage log entry."""
        self._store.insert_usage_log(
            caller_id, endpoint, method, response_status, remaining, now or utc_now()
        )

    def usage_stats(self, caller_id: str, now: datetime | None = None) -> UsageStats:
        """Summarize the caller's tier, current usage and recent calls.

        Args:
            caller_id: Caller identity.
            now: Evaluation time (defaults to now).

        Returns:
            Usage summary.
        """
        now = now or utc_now()
        tier = self._tiers.resolve(caller_id, now)
        hourly, daily = self._current_usage(caller_id, now)
        logs = self._store.recent_usage_logs(
            caller_id, self._config.recent_usage_entries
        )
        return UsageStats(
            caller_id=caller_id,
            tier=tier.name,
            hourly_limit=tier.hourly_limit,
            daily_limit=tier.daily_limit,
            hourly_used=hourly,
            daily_used=daily,
            features=tier.features,
            recent_usage=[
                UsageRecord(
                    endpoint=entry.endpoint,
                    method=entry.method,
                    response_status=entry.response_status,
                    rate_limit_remaining=entry.rate_limit_remaining,
                    created_at=entry.created_at,
                )
                for entry in logs
            ],
        )

    def _current_usage(self, caller_id: str, now: datetime) -> tuple[int, int]:
        """Hourly and daily counts as of ``now``.

        Without a bucket for the current hour the hourly count is zero and
        the daily count comes from the latest earlier bucket of the date.
        """
        bucket_date, hour = bucket_key(now)
        bucket = self._store.get_bucket(caller_id, bucket_date, hour)
        if bucket is not None:
            return bucket.hourly_count, bucket.daily_count
        prior = self._store.get_latest_bucket_before(caller_id, bucket_date, hour)
        return 0, prior.daily_count if prior is not None else 0

    def _decide(
        self, tier: SubscriptionTier, hourly: int, daily: int, now: datetime
    ) -> QuotaDecision:
        if hourly >= tier.hourly_limit:
            return QuotaDecision(
                allowed=False,
                remaining=0,
                limit=tier.hourly_limit,
                reset_at=next_hour(now),
                reason=QuotaReason.HOURLY,
                message=(
                    f"Hourly rate limit exceeded. Limit: {tier.hourly_limit} "
                    "requests/hour"
                ),
            )
        if daily >= tier.daily_limit:
            return QuotaDecision(
                allowed=False,
                remaining=0,
                limit=tier.daily_limit,
                reset_at=next_midnight(now),
                reason=QuotaReason.DAILY,
                message=(
                    f"Daily rate limit exceeded. Limit: {tier.daily_limit} requests/day"
                ),
            )
        return QuotaDecision(
            allowed=True,
            remaining=min(tier.hourly_limit - hourly, tier.daily_limit - daily),
            limit=tier.hourly_limit,
            reset_at=next_hour(now),
        )
