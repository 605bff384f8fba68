"""Engine configuration schema."""

from typing import Annotated

from pydantic import Field, model_validator

from src.data_model import StrictBaseModel


class SearchConfig(StrictBaseModel):
    """Search execution configuration.

    Attributes:
        max_limit: Upper bound accepted for a page size, at most the
            request model's own cap of 100.
        default_limit: Page size used when the caller omits one.
        per_source_cap: Maximum items a single retriever may return.
        retriever_timeout_seconds: Deadline for each retriever.
        max_workers: Thread pool size for parallel retrieval.
    """

    max_limit: Annotated[int, Field(ge=1, le=100)] = 100
    default_limit: Annotated[int, Field(ge=1, le=100)] = 50
    per_source_cap: Annotated[int, Field(ge=1, le=10000)] = 100
    retriever_timeout_seconds: Annotated[float, Field(gt=0.0, le=120.0)] = 5.0
    max_workers: Annotated[int, Field(ge=1, le=16)] = 3

    @model_validator(mode="after")
    def validate_default_within_max(self) -> "SearchConfig":
        """Ensure the default page size does not exceed the maximum."""
        if self.default_limit > self.max_limit:
            msg = "default_limit must not exceed max_limit"
            raise ValueError(msg)
        return self


class FacetsConfig(StrictBaseModel):
    """Facet truncation limits.

    A limit of None keeps every entry.
    """

    categories: int | None = Field(default=10, ge=1)
    tags: int | None = Field(default=20, ge=1)
    languages: int | None = Field(default=15, ge=1)
    sources: int | None = Field(default=None, ge=1)


class TrendingConfig(StrictBaseModel):
    """Trending score recompute configuration.

    Attributes:
        trend_retention_days: Scoring window for trends.
        repo_retention_days: Scoring window for repositories.
        trend_scale: Normalization constant for trend engagement and velocity.
        repo_scale: Normalization constant for repository stars and velocity.
        engagement_weight: Weight of normalized engagement.
        recency_weight: Weight of recency.
        velocity_weight: Weight of normalized velocity.
        lock_ttl_seconds: Lifetime of the recompute job lease.
    """

    trend_retention_days: Annotated[int, Field(ge=1, le=365)] = 7
    repo_retention_days: Annotated[int, Field(ge=1, le=365)] = 30
    trend_scale: Annotated[float, Field(gt=0.0)] = 10000.0
    repo_scale: Annotated[float, Field(gt=0.0)] = 1000.0
    engagement_weight: Annotated[float, Field(ge=0.0, le=1.0)] = 0.4
    recency_weight: Annotated[float, Field(ge=0.0, le=1.0)] = 0.3
    velocity_weight: Annotated[float, Field(ge=0.0, le=1.0)] = 0.3
    lock_ttl_seconds: Annotated[int, Field(ge=1, le=86400)] = 900


class QuotaConfig(StrictBaseModel):
    """Quota configuration.

    Attributes:
        default_tier: Tier applied to callers without an active subscription.
        recent_usage_entries: Usage log entries returned by usage stats.
    """

    default_tier: Annotated[str, Field(min_length=1, max_length=50)] = "free"
    recent_usage_entries: Annotated[int, Field(ge=1, le=100)] = 10


class HistoryConfig(StrictBaseModel):
    """Search history and suggestion configuration."""

    trending_window_hours: Annotated[int, Field(ge=1, le=720)] = 24
    default_suggestion_limit: Annotated[int, Field(ge=1, le=100)] = 10


class EngineConfig(StrictBaseModel):
    """Root engine configuration."""

    search: SearchConfig = Field(default_factory=SearchConfig)
    facets: FacetsConfig = Field(default_factory=FacetsConfig)
    trending: TrendingConfig = Field(default_factory=TrendingConfig)
    quota: QuotaConfig = Field(default_factory=QuotaConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
