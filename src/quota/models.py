"""Data models for quota decisions and usage reporting."""

from datetime import datetime
from enum import Enum

from pydantic import Field

from src.data_model import WireModel


class QuotaReason(str, Enum):
    """Which limit caused a denial."""

    HOURLY = "hourly"
    DAILY = "daily"


class QuotaDecision(WireModel):
    """Outcome of an admission check.

    A denial is a normal outcome, not an error.

    Attributes:
        allowed: Whether the call may proceed.
        remaining: Calls left before the nearest limit is hit.
        limit: Hourly limit when allowed, the breached limit when denied.
        reset_at: When the relevant window rolls over.
        reason: Breached window, set only on denial.
        message: Human-readable denial message.
    """

    allowed: bool
    remaining: int = Field(ge=0)
    limit: int = Field(ge=0)
    reset_at: datetime
    reason: QuotaReason | None = None
    message: str | None = None


class UsageRecord(WireModel):
    """One usage log entry as reported to the caller."""

    endpoint: str
    method: str
    response_status: int
    rate_limit_remaining: int
    created_at: datetime


class UsageStats(WireModel):
    """Current usage summary for a caller."""

    caller_id: str
    tier: str
    hourly_limit: int
    daily_limit: int
    hourly_used: int
    daily_used: int
    features: dict[str, object] = Field(default_factory=dict)
    recent_usage: list[UsageRecord] = Field(default_factory=list)
