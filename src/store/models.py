"""Data models for the SQLite search store."""

import json
import uuid
from datetime import UTC, date, datetime
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def to_db_timestamp(value: datetime) -> str:
    """Render a timestamp in the fixed-width UTC form used by every table.

    A fixed width keeps lexical and chronological order identical.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def from_db_timestamp(value: str) -> datetime:
    """Parse a stored timestamp back into an aware UTC datetime."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _new_id() -> str:
    return str(uuid.uuid4())


class ItemType(str, Enum):
    """Source family an item belongs to.

    Item ids are unique within one type only.
    """

    TREND = "trend"
    REPO = "repo"
    KNOWLEDGE_ENTRY = "knowledge_entry"


# Fixed merge order of the source families
ITEM_TYPE_ORDER: tuple[ItemType, ...] = (
    ItemType.TREND,
    ItemType.REPO,
    ItemType.KNOWLEDGE_ENTRY,
)


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class Trend(_Record):
    """A trending topic row."""

    id: str = Field(default_factory=_new_id)
    trend_name: Annotated[str, Field(min_length=1)]
    tweet_count: Annotated[int, Field(ge=0)] = 0
    url: str | None = None
    category: str = "general"
    fetched_at: datetime = Field(default_factory=utc_now)
    created_at: datetime = Field(default_factory=utc_now)


class Repo(_Record):
    """A trending repository row."""

    id: str = Field(default_factory=_new_id)
    repo_name: Annotated[str, Field(min_length=1)]
    description: str | None = None
    stars: Annotated[int, Field(ge=0)] = 0
    language: str | None = None
    url: Annotated[str, Field(min_length=1)]
    topics: list[str] = Field(default_factory=list)
    fetched_at: datetime = Field(default_factory=utc_now)
    created_at: datetime = Field(default_factory=utc_now)


class KnowledgeEntry(_Record):
    """A curated knowledge entry row."""

    id: str = Field(default_factory=_new_id)
    title: Annotated[str, Field(min_length=1)]
    content: str
    source: Annotated[str, Field(min_length=1)]
    source_url: str | None = None
    category: str = "general"
    tags: list[str] = Field(default_factory=list)
    relevance_score: Annotated[int, Field(ge=0, le=100)] = 50
    verified: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


ContentRecord = Trend | Repo | KnowledgeEntry


class TrendingScore(_Record):
    """Cached ranking signals for one item."""

    item_type: ItemType
    item_id: Annotated[str, Field(min_length=1)]
    trending_score: float = 0.0
    velocity_score: float = 0.0
    engagement_score: float = 0.0
    recency_score: float = 0.0
    calculated_at: datetime = Field(default_factory=utc_now)
    metadata: dict[str, Any] = Field(default_factory=dict)


class SubscriptionTier(_Record):
    """Named quota and feature profile."""

    name: Annotated[str, Field(min_length=1)]
    hourly_limit: Annotated[int, Field(ge=0)]
    daily_limit: Annotated[int, Field(ge=0)]
    price_monthly: float = 0.0
    features: dict[str, Any] = Field(default_factory=dict)


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle state."""

    ACTIVE = "active"
    CANCELED = "canceled"
    EXPIRED = "expired"
    PAST_DUE = "past_due"


class Subscription(_Record):
    """Binding of a caller to a tier."""

    id: int
    caller_id: str
    tier_id: int
    status: SubscriptionStatus
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None


class RateLimitBucket(_Record):
    """Per-caller counter for one UTC hour.

    daily_count carries the day's running total forward across the hour
    buckets of the same date.
    """

    caller_id: str
    date: date
    hour: Annotated[int, Field(ge=0, le=23)]
    hourly_count: Annotated[int, Field(ge=0)] = 0
    daily_count: Annotated[int, Field(ge=0)] = 0


class UsageLogEntry(_Record):
    """One append-only API usage record."""

    id: int
    caller_id: str
    endpoint: str
    method: str
    response_status: int
    rate_limit_remaining: int
    created_at: datetime


class SearchType(str, Enum):
    """Scope a recorded search ran against."""

    TRENDS = "trends"
    REPOS = "repos"
    KNOWLEDGE = "knowledge"
    UNIFIED = "unified"


class SearchHistoryEntry(_Record):
    """One executed query."""

    id: int
    caller_id: str | None
    search_query: str
    filters: dict[str, Any] = Field(default_factory=dict)
    results_count: int = 0
    search_type: SearchType = SearchType.UNIFIED
    created_at: datetime


class SuggestionType(str, Enum):
    """Kind of autocomplete suggestion."""

    QUERY = "query"
    TAG = "tag"
    CATEGORY = "category"
    SOURCE = "source"


class SearchSuggestion(_Record):
    """An autocomplete candidate ranked by usage."""

    suggestion_text: str
    suggestion_type: SuggestionType = SuggestionType.QUERY
    usage_count: int = 0
    last_used_at: datetime


class SavedSearch(_Record):
    """A named search stored for a caller."""

    id: int
    caller_id: str
    name: str
    search_query: str
    filters: dict[str, Any] = Field(default_factory=dict)
    search_type: SearchType = SearchType.UNIFIED
    is_active: bool = True
    notification_enabled: bool = False
    created_at: datetime


class ChangeEvent(_Record):
    """A published content change."""

    seq: int
    topic: str
    item_type: ItemType
    item_id: str
    created_at: datetime

    @field_validator("item_type", mode="before")
    @classmethod
    def coerce_item_type(cls, v: Any) -> ItemType:
        """Coerce string to ItemType enum."""
        if isinstance(v, ItemType):
            return v
        return ItemType(str(v))


def dump_json(value: Any) -> str:
    """Serialize a JSON column value with stable key order."""
    return json.dumps(value, sort_keys=True, default=str)


def load_json(value: str | None, default: Any) -> Any:
    """Deserialize a JSON column value, tolerating NULL."""
    if value is None or value == "":
        return default
    return json.loads(value)
