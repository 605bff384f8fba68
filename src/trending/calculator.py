"""Batch trending score computation.

Scores are computed per source family over a retention window and cached
in ``trending_scores``. Recompute is explicit, so cached scores can lag
the live items between runs.

Formula, with ``age`` in hours and ``scale`` the source's normalization
constant::

    velocity = engagement / max(age, 1)
    recency  = clamp(100 - age, 0, 100)
    trending = 100 * (0.4 * engagement / scale
                      + 0.3 * recency / 100
                      + 0.3 * velocity / scale)
"""

import time
import uuid
from datetime import datetime, timedelta

import structlog

from src.config.schemas import TrendingConfig
from src.search.errors import RecomputeInProgressError
from src.search.models import SearchResult
from src.search.retrievers import SourceRetriever, default_retrievers
from src.store import (
    Gte,
    ItemType,
    QuerySpec,
    Repo,
    SearchStore,
    Trend,
    TrendingScore,
)
from src.store.models import utc_now
from src.trending.metrics import TrendingMetrics
from src.trending.models import RecomputeFailure, RecomputeResult, ScoreComponents


logger = structlog.get_logger()

RECOMPUTE_JOB = "trending_recompute"


def compute_scores(
    engagement: float,
    timestamp: datetime,
    now: datetime,
    scale: float,
    config: TrendingConfig,
) -> ScoreComponents:
    """Compute the ranking signals of one item.

    Args:
        engagement: Raw engagement metric (posts or stars).
        timestamp: When the item was observed.
        now: Evaluation time.
        scale: Normalization constant of the item's source family.
        config: Weights of the combined score.

    Returns:
        The score components.
    """
    age_hours = (now - timestamp).total_seconds() / 3600.0
    velocity = engagement / max(age_hours, 1.0)
    recency = min(max(100.0 - age_hours, 0.0), 100.0)
    trending = 100.0 * (
        config.engagement_weight * (engagement / scale)
        + config.recency_weight * (recency / 100.0)
        + config.velocity_weight * (velocity / scale)
    )
    return ScoreComponents(
        trending_score=trending,
        velocity_score=velocity,
        engagement_score=float(engagement),
        recency_score=recency,
    )


class TrendingCalculator:
    """Recomputes cached trending scores and serves the top items."""

    def __init__(
        self,
        store: SearchStore,
        config: TrendingConfig | None = None,
        retrievers: dict[ItemType, SourceRetriever] | None = None,
    ) -> None:
        """Initialize the calculator.

        Args:
            store: Store holding items and scores.
            config: Recompute configuration.
            retrievers: Retrievers used to project top items.
        """
        self._store = store
        self._config = config or TrendingConfig()
        self._retrievers = retrievers or default_retrievers(store)
        self._metrics = TrendingMetrics.get_instance()
        self._log = logger.bind(component="trending", subcomponent="calculator")

    def recompute(self, now: datetime | None = None) -> RecomputeResult:
        """Score every eligible trend and repository.

        Only one recompute runs at a time across processes sharing the
        store. Failures of single items are recorded and the batch goes on.

        Args:
            now: Evaluation time (defaults to now).

        Returns:
            Counts of scored and failed items.

        Raises:
            RecomputeInProgressError: If another recompute holds the lease.
        """
        now = now or utc_now()
        owner = str(uuid.uuid4())
        if not self._store.acquire_job_lock(
            RECOMPUTE_JOB, owner, now, self._config.lock_ttl_seconds
        ):
            self._metrics.record_rejected()
            self._log.info("recompute_rejected", reason="lease_held")
            raise RecomputeInProgressError("Trending recompute already in progress")

        start_ns = time.perf_counter_ns()
        log = self._log.bind(recompute_id=owner)
        log.info("recompute_started", calculated_at=now.isoformat())
        try:
            failures: list[RecomputeFailure] = []
            trends_scored = self._score_trends(now, failures)
            repos_scored = self._score_repos(now, failures)
        finally:
            self._store.release_job_lock(RECOMPUTE_JOB, owner)

        duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
        self._metrics.record_run(trends_scored + repos_scored, len(failures), duration_ms)
        log.info(
            "recompute_complete",
            trends_scored=trends_scored,
            repos_scored=repos_scored,
            failed=len(failures),
            duration_ms=round(duration_ms, 2),
        )
        return RecomputeResult(
            calculated_at=now,
            trends_scored=trends_scored,
            repos_scored=repos_scored,
            failed=len(failures),
            failures=failures,
            duration_ms=duration_ms,
        )

    def trending_items(
        self, item_type: ItemType | None = None, limit: int = 20
    ) -> list[SearchResult]:
        """Highest scored live items, best first.

        Args:
            item_type: Restrict to one source (all scored sources if None).
            limit: Maximum number of items.

        Returns:
            Projected items carrying their cached scores.
        """
        results: list[SearchResult] = []
        for score in self._store.top_trending_scores(item_type, limit):
            record = self._store.get_item(score.item_type, score.item_id)
            if record is None:
                continue
            item = self._retrievers[score.item_type].project(record)
            results.append(
                SearchResult.from_item(
                    item,
                    trending_score=score.trending_score,
                    velocity_score=score.velocity_score,
                )
            )
        return results

    def _eligible(self, table: str, days: int, now: datetime) -> list:
        spec = QuerySpec(table=table).where(
            Gte("fetched_at", now - timedelta(days=days))
        )
        return list(self._store.iter_records(spec))

    def _score_trends(self, now: datetime, failures: list[RecomputeFailure]) -> int:
        scored = 0
        trends: list[Trend] = self._eligible(
            "trends", self._config.trend_retention_days, now
        )
        for trend in trends:
            if self._write_score(
                ItemType.TREND,
                trend.id,
                trend.tweet_count,
                trend.fetched_at,
                self._config.trend_scale,
                {"category": trend.category, "url": trend.url},
                now,
                failures,
            ):
                scored += 1
        return scored

    def _score_repos(self, now: datetime, failures: list[RecomputeFailure]) -> int:
        scored = 0
        repos: list[Repo] = self._eligible(
            "repos", self._config.repo_retention_days, now
        )
        for repo in repos:
            if self._write_score(
                ItemType.REPO,
                repo.id,
                repo.stars,
                repo.fetched_at,
                self._config.repo_scale,
                {"language": repo.language, "topics": repo.topics, "url": repo.url},
                now,
                failures,
            ):
                scored += 1
        return scored

    def _write_score(  # noqa: PLR0913
        self,
        item_type: ItemType,
        item_id: str,
        engagement: int,
        timestamp: datetime,
        scale: float,
        metadata: dict,
        now: datetime,
        failures: list[RecomputeFailure],
    ) -> bool:
        try:
            components = compute_scores(engagement, timestamp, now, scale, self._config)
            self._store.upsert_trending_score(
                TrendingScore(
                    item_type=item_type,
                    item_id=item_id,
                    trending_score=components.trending_score,
                    velocity_score=components.velocity_score,
                    engagement_score=components.engagement_score,
                    recency_score=components.recency_score,
                    calculated_at=now,
                    metadata=metadata,
                )
            )
        except Exception as e:  # noqa: BLE001
            failures.append(
                RecomputeFailure(item_type=item_type, item_id=item_id, error=str(e))
            )
            self._log.warning(
                "score_write_failed",
                item_type=item_type.value,
                item_id=item_id,
                error=str(e),
            )
            return False
        return True
