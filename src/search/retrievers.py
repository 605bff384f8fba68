"""Per-source retrievers.

Each retriever turns ``SearchFilters`` into a store-agnostic ``QuerySpec``
for its table, applies free-text matching over the weighted fields of
the returned rows and projects the survivors into ``SearchableItem``.
"""

from abc import ABC, abstractmethod
from contextlib import closing
from typing import Generic, TypeVar

import structlog

from src.search.models import SearchableItem, SearchFilters, SourceType
from src.search.query import (
    WEIGHT_A,
    WEIGHT_B,
    WEIGHT_C,
    ParsedQuery,
    WeightedField,
    match_query,
    parse_query,
)
from src.store import (
    Eq,
    Gte,
    In,
    KnowledgeEntry,
    Lte,
    Overlaps,
    QuerySpec,
    Repo,
    SearchStore,
    Trend,
)


logger = structlog.get_logger()

DEFAULT_PER_SOURCE_CAP = 100

# Category every repository projects to
REPO_CATEGORY = "technology"
REPO_NO_DESCRIPTION = "No description available"
KNOWLEDGE_DESCRIPTION_CHARS = 200

R = TypeVar("R", Trend, Repo, KnowledgeEntry)


class SourceRetriever(ABC, Generic[R]):
    """Base class for one source's retrieval."""

    source_type: SourceType
    table: str

    def __init__(
        self, store: SearchStore, per_source_cap: int = DEFAULT_PER_SOURCE_CAP
    ) -> None:
        """Initialize the retriever.

        Args:
            store: Store to read from.
            per_source_cap: Maximum number of items returned.
        """
        self._store = store
        self._cap = per_source_cap
        self._log = logger.bind(
            component="search",
            subcomponent="retriever",
            source=self.source_type.value,
        )

    def retrieve(
        self, filters: SearchFilters, parsed: ParsedQuery | None = None
    ) -> list[SearchableItem]:
        """Retrieve matching items in this source's ranking order.

        Without a text query the order is the source's natural order. With
        one, the first ``per_source_cap`` matches in natural order are
        re-ordered by text score, ties keeping natural order.

        Args:
            filters: Search filters.
            parsed: Pre-parsed query (parsed from filters when omitted).

        Returns:
            Up to ``per_source_cap`` projected items.
        """
        if parsed is None:
            parsed = parse_query(filters.query)
        spec = self.build_spec(filters)

        if parsed.is_empty:
            spec.limit = self._cap
            items = [self.project(record) for record in self._store.iter_records(spec)]
            self._log.debug("retrieval_complete", items=len(items), text_query=False)
            return items

        matches: list[tuple[float, R]] = []
        with closing(self._store.iter_records(spec)) as records:
            for record in records:
                score = match_query(parsed, self.weighted_fields(record))
                if score is None:
                    continue
                matches.append((score, record))
                if len(matches) >= self._cap:
                    break

        # sort is stable, so equal scores keep natural order
        matches.sort(key=lambda m: m[0], reverse=True)
        self._log.debug("retrieval_complete", items=len(matches), text_query=True)
        return [self.project(record) for _, record in matches]

    def build_spec(self, filters: SearchFilters) -> QuerySpec:
        """Build the structured part of the query for this source."""
        spec = QuerySpec(table=self.table)
        self.apply_filters(spec, filters)
        return spec

    @abstractmethod
    def apply_filters(self, spec: QuerySpec, filters: SearchFilters) -> None:
        """Add predicates and ordering for the given filters."""

    @abstractmethod
    def weighted_fields(self, record: R) -> list[WeightedField]:
        """Weighted text fields of a record."""

    @abstractmethod
    def project(self, record: R) -> SearchableItem:
        """Project a record into the common item shape."""

    def related_terms(self, record: R) -> list[str]:
        """Terms describing a record, used to find related items."""
        return []

    @staticmethod
    def _apply_date_range(spec: QuerySpec, column: str, filters: SearchFilters) -> None:
        if filters.date_from is not None:
            spec.where(Gte(column, filters.date_from))
        if filters.date_to is not None:
            spec.where(Lte(column, filters.date_to))


class TrendRetriever(SourceRetriever[Trend]):
    """Retriever for trending topics."""

    source_type = SourceType.TREND
    table = "trends"

    def apply_filters(self, spec: QuerySpec, filters: SearchFilters) -> None:
        # A trend's only tag is its category
        if filters.categories:
            spec.where(In("category", tuple(filters.categories)))
        if filters.tags:
            spec.where(In("category", tuple(filters.tags)))
        self._apply_date_range(spec, "fetched_at", filters)
        if filters.min_engagement is not None:
            spec.where(Gte("tweet_count", filters.min_engagement))
        spec.order("fetched_at")

    def weighted_fields(self, record: Trend) -> list[WeightedField]:
        return [
            WeightedField(WEIGHT_A, record.trend_name),
            WeightedField(WEIGHT_B, record.category),
        ]

    def project(self, record: Trend) -> SearchableItem:
        return SearchableItem(
            id=record.id,
            source_type=self.source_type,
            title=record.trend_name,
            description=f"Trending with {record.tweet_count:,} posts",
            url=record.url,
            category=record.category,
            tags=[record.category],
            engagement=record.tweet_count,
            timestamp=record.fetched_at,
            metadata={"tweet_count": record.tweet_count},
        )

    def related_terms(self, record: Trend) -> list[str]:
        return [record.trend_name, record.category]


class RepoRetriever(SourceRetriever[Repo]):
    """Retriever for trending repositories."""

    source_type = SourceType.REPO
    table = "repos"

    def apply_filters(self, spec: QuerySpec, filters: SearchFilters) -> None:
        if filters.categories and REPO_CATEGORY not in {
            c.lower() for c in filters.categories
        }:
            spec.match_nothing()
            return
        if filters.languages:
            spec.where(In("language", tuple(filters.languages)))
        if filters.tags:
            spec.where(Overlaps("topics", tuple(filters.tags)))
        self._apply_date_range(spec, "fetched_at", filters)
        if filters.min_engagement is not None:
            spec.where(Gte("stars", filters.min_engagement))
        spec.order("stars")

    def weighted_fields(self, record: Repo) -> list[WeightedField]:
        return [
            WeightedField(WEIGHT_A, record.repo_name),
            WeightedField(WEIGHT_B, record.description or ""),
            WeightedField(
                WEIGHT_C, " ".join([record.language or "", *record.topics])
            ),
        ]

    def project(self, record: Repo) -> SearchableItem:
        return SearchableItem(
            id=record.id,
            source_type=self.source_type,
            title=record.repo_name,
            description=record.description or REPO_NO_DESCRIPTION,
            url=record.url,
            category=REPO_CATEGORY,
            tags=list(record.topics),
            language=record.language,
            engagement=record.stars,
            timestamp=record.fetched_at,
            metadata={"stars": record.stars, "language": record.language},
        )

    def related_terms(self, record: Repo) -> list[str]:
        terms = [record.language] if record.language else []
        return terms + record.topics[:2]


class KnowledgeRetriever(SourceRetriever[KnowledgeEntry]):
    """Retriever for verified knowledge entries."""

    source_type = SourceType.KNOWLEDGE_ENTRY
    table = "knowledge_entries"

    def apply_filters(self, spec: QuerySpec, filters: SearchFilters) -> None:
        spec.where(Eq("verified", True))
        if filters.categories:
            spec.where(In("category", tuple(filters.categories)))
        if filters.tags:
            spec.where(Overlaps("tags", tuple(filters.tags)))
        self._apply_date_range(spec, "created_at", filters)
        if filters.min_engagement is not None:
            spec.where(Gte("relevance_score", filters.min_engagement))
        spec.order("relevance_score")

    def weighted_fields(self, record: KnowledgeEntry) -> list[WeightedField]:
        return [
            WeightedField(WEIGHT_A, record.title),
            WeightedField(WEIGHT_B, record.content),
            WeightedField(WEIGHT_C, " ".join([record.category, *record.tags])),
        ]

    def project(self, record: KnowledgeEntry) -> SearchableItem:
        description = record.content[:KNOWLEDGE_DESCRIPTION_CHARS]
        if len(record.content) > KNOWLEDGE_DESCRIPTION_CHARS:
            description += "..."
        return SearchableItem(
            id=record.id,
            source_type=self.source_type,
            title=record.title,
            description=description,
            url=record.source_url,
            category=record.category,
            tags=list(record.tags),
            engagement=record.relevance_score,
            timestamp=record.created_at,
            metadata={"source": record.source, "verified": record.verified},
        )

    def related_terms(self, record: KnowledgeEntry) -> list[str]:
        return [record.category, *record.tags[:2]]


def default_retrievers(
    store: SearchStore, per_source_cap: int = DEFAULT_PER_SOURCE_CAP
) -> dict[SourceType, SourceRetriever]:
    """One retriever per source type, keyed by type."""
    retrievers: list[SourceRetriever] = [
        TrendRetriever(store, per_source_cap),
        RepoRetriever(store, per_source_cap),
        KnowledgeRetriever(store, per_source_cap),
    ]
    return {r.source_type: r for r in retrievers}
