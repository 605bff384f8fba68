"""Search history, autocomplete suggestions and trending queries."""

from collections import Counter
from datetime import datetime, timedelta

import structlog

from src.config.schemas import HistoryConfig
from src.search.models import (
    HistoryItem,
    SearchFilters,
    SourceType,
    Suggestion,
    TrendingQuery,
)
from src.store import SearchStore, SearchType
from src.store.models import utc_now


logger = structlog.get_logger()

_SEARCH_TYPE_FOR_SOURCE = {
    SourceType.TREND: SearchType.TRENDS,
    SourceType.REPO: SearchType.REPOS,
    SourceType.KNOWLEDGE_ENTRY: SearchType.KNOWLEDGE,
}


def search_type_for(filters: SearchFilters) -> SearchType:
    """History scope of a search: one source, or unified."""
    selected = filters.selected_sources
    if len(selected) == 1:
        return _SEARCH_TYPE_FOR_SOURCE[selected[0]]
    return SearchType.UNIFIED


class SearchHistoryTracker:
    """Records executed searches and serves aggregates over them."""

    def __init__(self, store: SearchStore, config: HistoryConfig | None = None) -> None:
        """Initialize the tracker.

        Args:
            store: Store holding history and suggestions.
            config: History configuration.
        """
        self._store = store
        self._config = config or HistoryConfig()
        self._log = logger.bind(component="search", subcomponent="history")

    def record(
        self,
        filters: SearchFilters,
        results_count: int,
        caller_id: str | None = None,
        now: datetime | None = None,
    ) -> None:
        """Append a search to history and bump its suggestion.

        Anonymous searches are recorded with no caller. Only non-empty
        query text touches the suggestion table, keyed by exact text.

        Args:
            filters: Filters the search ran with.
            results_count: Total results found.
            caller_id: Identified caller, if any.
            now: Time of the search (defaults to now).
        """
        now = now or utc_now()
        text = filters.query_text
        payload = filters.to_wire()
        payload.pop("query", None)

        with self._store.atomic("record_search"):
            self._store.insert_search_history(
                caller_id,
                text,
                payload,
                results_count,
                search_type_for(filters).value,
                now,
            )
            if text:
                self._store.increment_suggestion(text, now)

    def suggestions(self, prefix: str, limit: int | None = None) -> list[Suggestion]:
        """Suggestions starting with a prefix, most used first.

        Matching ignores ASCII case; equal usage counts order by text.
        """
        rows = self._store.search_suggestions(
            prefix.strip(), limit or self._config.default_suggestion_limit
        )
        return [
            Suggestion(
                text=row.suggestion_text,
                suggestion_type=row.suggestion_type.value,
                usage_count=row.usage_count,
            )
            for row in rows
        ]

    def trending_queries(
        self, limit: int = 10, now: datetime | None = None
    ) -> list[TrendingQuery]:
        """Most frequent queries of the trailing window.

        Queries are grouped after trimming and lower-casing; blank queries
        are skipped. Equal counts order by query text.
        """
        now = now or utc_now()
        cutoff = now - timedelta(hours=self._config.trending_window_hours)
        counts: Counter[str] = Counter()
        for raw in self._store.history_queries_since(cutoff):
            normalized = raw.strip().lower()
            if normalized:
                counts[normalized] += 1

        ordered = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[:limit]
        return [TrendingQuery(query=q, count=c) for q, c in ordered]

    def history(self, caller_id: str | None = None, limit: int = 20) -> list[HistoryItem]:
        """The caller's own searches, or anonymous ones, newest first."""
        return [
            HistoryItem(
                id=entry.id,
                query=entry.search_query,
                filters=entry.filters,
                results_count=entry.results_count,
                search_type=entry.search_type.value,
                created_at=entry.created_at,
            )
            for entry in self._store.list_search_history(caller_id, limit)
        ]
