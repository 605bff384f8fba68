"""Request and response models for unified search."""

import re
from collections.abc import Mapping
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import pydantic
from pydantic import Field, field_validator, model_validator

from src.data_model import StrictBaseModel, WireModel
from src.search.errors import ValidationError
from src.store import ITEM_TYPE_ORDER, ItemType


# Upper bound on a page size; keeps merge cost bounded
MAX_LIMIT = 100
DEFAULT_LIMIT = 50

SourceType = ItemType

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class SortKey(str, Enum):
    """Result ordering strategy."""

    RELEVANCE = "relevance"
    TRENDING = "trending"
    RECENT = "recent"
    POPULAR = "popular"
    VELOCITY = "velocity"


class SearchFilters(WireModel):
    """Filter set accepted by the search engine.

    Empty allow-lists mean "no restriction". An empty ``sources`` list
    selects every source.
    """

    query: str | None = None
    categories: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    languages: list[str] = Field(default_factory=list)
    sources: list[SourceType] = Field(default_factory=list)
    date_from: datetime | None = None
    date_to: datetime | None = None
    min_engagement: int | None = Field(default=None, ge=0)
    sort_by: SortKey = SortKey.RELEVANCE
    limit: int = Field(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT)
    offset: int = Field(default=0, ge=0)

    @field_validator("date_from", "date_to", mode="before")
    @classmethod
    def expand_date_only(cls, v: Any) -> Any:
        """Accept plain dates as midnight UTC."""
        if isinstance(v, str) and _DATE_ONLY.match(v):
            return f"{v}T00:00:00+00:00"
        return v

    @field_validator("date_from", "date_to")
    @classmethod
    def assume_utc(cls, v: datetime | None) -> datetime | None:
        """Treat naive timestamps as UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    @field_validator("categories", "tags", "languages")
    @classmethod
    def drop_blank(cls, v: list[str]) -> list[str]:
        """Strip entries and drop blank ones."""
        return [s.strip() for s in v if s and s.strip()]

    @model_validator(mode="after")
    def validate_date_range(self) -> "SearchFilters":
        """Ensure the date range is not inverted."""
        if self.date_from and self.date_to and self.date_from > self.date_to:
            msg = "dateFrom must not be after dateTo"
            raise ValueError(msg)
        return self

    @property
    def selected_sources(self) -> list[SourceType]:
        """Selected sources in fixed merge order."""
        if not self.sources:
            return list(ITEM_TYPE_ORDER)
        return [s for s in ITEM_TYPE_ORDER if s in self.sources]

    @property
    def query_text(self) -> str:
        """Query text trimmed, empty when absent."""
        return (self.query or "").strip()


def parse_filters(data: Mapping[str, Any]) -> SearchFilters:
    """Validate raw request data into filters.

    Args:
        data: Request payload using wire (camelCase) or Python names.

    Returns:
        Validated filters.

    Raises:
        ValidationError: With the wire name of the first failing field.
    """
    try:
        return SearchFilters.model_validate(dict(data))
    except pydantic.ValidationError as e:
        raise validation_error_from_pydantic(e) from e


def validation_error_from_pydantic(error: pydantic.ValidationError) -> ValidationError:
    """Convert a pydantic error into the engine's ValidationError."""
    first = error.errors()[0]
    loc = [str(part) for part in first.get("loc", ()) if not isinstance(part, int)]
    field = loc[-1] if loc else None
    message = first.get("msg", "Invalid request")
    if field:
        message = f"{field}: {message}"
    return ValidationError(message, field=field)


class SearchableItem(StrictBaseModel):
    """Common projection of one item from any source."""

    id: str
    source_type: SourceType
    title: str
    description: str
    url: str | None = None
    category: str | None = None
    tags: list[str] = Field(default_factory=list)
    language: str | None = None
    engagement: int = 0
    timestamp: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)


class SearchResult(WireModel):
    """One item in a search response."""

    id: str
    item_type: SourceType = Field(alias="type")
    title: str
    description: str
    url: str | None = None
    category: str | None = None
    tags: list[str] = Field(default_factory=list)
    language: str | None = None
    engagement: int = 0
    trending_score: float | None = None
    velocity_score: float | None = None
    timestamp: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_item(
        cls,
        item: SearchableItem,
        trending_score: float | None = None,
        velocity_score: float | None = None,
    ) -> "SearchResult":
        """Build a result from a projected item and its cached scores."""
        return cls(
            id=item.id,
            item_type=item.source_type,
            title=item.title,
            description=item.description,
            url=item.url,
            category=item.category,
            tags=list(item.tags),
            language=item.language,
            engagement=item.engagement,
            trending_score=trending_score,
            velocity_score=velocity_score,
            timestamp=item.timestamp,
            metadata=dict(item.metadata),
        )


class Facet(WireModel):
    """Count of results sharing one value."""

    name: str
    count: int


class Facets(WireModel):
    """Facet tallies per dimension."""

    categories: list[Facet] = Field(default_factory=list)
    tags: list[Facet] = Field(default_factory=list)
    languages: list[Facet] = Field(default_factory=list)
    sources: list[Facet] = Field(default_factory=list)


class SourceError(WireModel):
    """A source that failed and was degraded to no results."""

    source: SourceType
    error_type: str
    message: str


class SearchResponse(WireModel):
    """Result of a unified search."""

    results: list[SearchResult]
    total: int
    facets: Facets
    search_id: str
    has_more: bool
    source_errors: list[SourceError] = Field(default_factory=list)


class Suggestion(WireModel):
    """An autocomplete suggestion."""

    text: str
    suggestion_type: str
    usage_count: int


class TrendingQuery(WireModel):
    """A query and how often it ran in the trending window."""

    query: str
    count: int


class HistoryItem(WireModel):
    """One recorded search as returned to its caller."""

    id: int
    query: str
    filters: dict[str, Any] = Field(default_factory=dict)
    results_count: int
    search_type: str
    created_at: datetime


class SavedSearchItem(WireModel):
    """A saved search as returned to its owner."""

    id: int
    name: str
    query: str
    filters: dict[str, Any] = Field(default_factory=dict)
    search_type: str
    notification_enabled: bool
    created_at: datetime
