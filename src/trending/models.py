"""Data models for trending score recompute."""

from dataclasses import dataclass
from datetime import datetime

from pydantic import Field

from src.data_model import WireModel
from src.store import ItemType


@dataclass(frozen=True)
class ScoreComponents:
    """Ranking signals computed for one item.

    Attributes:
        trending_score: Weighted combination of the other signals.
        velocity_score: Engagement per hour of age.
        engagement_score: Raw engagement metric.
        recency_score: 100 minus age in hours, clamped to [0, 100].
    """

    trending_score: float
    velocity_score: float
    engagement_score: float
    recency_score: float


class RecomputeFailure(WireModel):
    """An item whose score could not be written."""

    item_type: ItemType
    item_id: str
    error: str


class RecomputeResult(WireModel):
    """Outcome of one recompute batch."""

    calculated_at: datetime
    trends_scored: int = 0
    repos_scored: int = 0
    failed: int = 0
    failures: list[RecomputeFailure] = Field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def scored(self) -> int:
        """Total number of items scored."""
        return self.trends_scored + self.repos_scored
