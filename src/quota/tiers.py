"""Resolve the subscription tier in effect for a caller."""

from datetime import datetime

import structlog

from src.quota.metrics import QuotaMetrics
from src.store import SearchStore, SubscriptionTier
from src.store.models import utc_now


logger = structlog.get_logger()

# Used only when the default tier row itself is missing from the store
FALLBACK_TIER = SubscriptionTier(
    name="free",
    hourly_limit=10,
    daily_limit=100,
    price_monthly=0.0,
    features={
        "trends_access": True,
        "github_access": True,
        "email_notifications": False,
        "api_access": False,
        "priority_refresh": False,
        "advanced_analytics": False,
    },
)


class TierResolver:
    """Maps a caller to exactly one effective tier.

    Absent data never raises: a caller without an active subscription, or
    whose subscription points at a deleted tier, gets the default tier.
    """

    def __init__(self, store: SearchStore, default_tier: str = "free") -> None:
        """Initialize the resolver.

        Args:
            store: Store holding tiers and subscriptions.
            default_tier: Name of the tier applied by default.
        """
        self._store = store
        self._default_tier = default_tier
        self._metrics = QuotaMetrics.get_instance()
        self._log = logger.bind(component="quota", subcomponent="tiers")

    def resolve(self, caller_id: str, now: datetime | None = None) -> SubscriptionTier:
        """Get the tier in effect for a caller.

        Args:
            caller_id: Caller identity.
            now: Evaluation time (defaults to now).

        Returns:
            The subscribed tier, or the default tier.
        """
        active = self._store.get_active_subscription(caller_id, now or utc_now())
        if active is not None:
            subscription, tier = active
            if tier is not None:
                return tier
            self._log.warning(
                "subscription_tier_missing",
                caller_id=caller_id,
                tier_id=subscription.tier_id,
            )
        return self.default_tier()

    def default_tier(self) -> SubscriptionTier:
        """Get the default tier, falling back to built-in limits."""
        tier = self._store.get_tier_by_name(self._default_tier)
        if tier is not None:
            return tier
        self._metrics.record_fallback_tier()
        self._log.warning("default_tier_missing", tier=self._default_tier)
        return FALLBACK_TIER
