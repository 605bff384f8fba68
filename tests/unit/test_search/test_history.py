"""Tests for search history, suggestions and trending queries."""

import tempfile
from collections.abc import Generator
from datetime import timedelta
from pathlib import Path

import pytest

from src.config.schemas import HistoryConfig
from src.search.history import SearchHistoryTracker, search_type_for
from src.search.models import parse_filters
from src.store import SearchStore, SearchType, StoreMetrics
from tests.helpers.time import FIXED_NOW


@pytest.fixture
def store() -> Generator[SearchStore]:
    """Create a connected store in a temporary directory."""
    StoreMetrics.reset()
    with tempfile.TemporaryDirectory() as tmpdir:
        store = SearchStore(Path(tmpdir) / "history.sqlite")
        store.connect()
        yield store
        store.close()


@pytest.fixture
def tracker(store: SearchStore) -> SearchHistoryTracker:
    """History tracker over the store."""
    return SearchHistoryTracker(store)


def _record(
    tracker: SearchHistoryTracker,
    query: str,
    caller_id: str | None = None,
    hours_ago: float = 0,
) -> None:
    tracker.record(
        parse_filters({"query": query}),
        results_count=3,
        caller_id=caller_id,
        now=FIXED_NOW - timedelta(hours=hours_ago),
    )


class TestSearchTypeFor:
    """Tests for search_type_for."""

    @pytest.mark.parametrize(
        ("sources", "expected"),
        [
            ([], SearchType.UNIFIED),
            (["trend"], SearchType.TRENDS),
            (["repo"], SearchType.REPOS),
            (["knowledge_entry"], SearchType.KNOWLEDGE),
            (["trend", "repo"], SearchType.UNIFIED),
        ],
    )
    def test_scope(self, sources: list[str], expected: SearchType) -> None:
        """Test a single selected source narrows the recorded scope."""
        assert search_type_for(parse_filters({"sources": sources})) is expected


class TestRecord:
    """Tests for SearchHistoryTracker.record."""

    def test_repeated_query_bumps_suggestion(
        self, tracker: SearchHistoryTracker, store: SearchStore
    ) -> None:
        """Test each recorded query increments its suggestion."""
        _record(tracker, "vector databases")
        _record(tracker, "vector databases")
        suggestion = store.get_suggestion("vector databases")
        assert suggestion is not None
        assert suggestion.usage_count == 2

    def test_seeded_suggestion_incremented(
        self, tracker: SearchHistoryTracker, store: SearchStore
    ) -> None:
        """Test recording a seeded suggestion adds to its count."""
        _record(tracker, "ai")
        suggestion = store.get_suggestion("ai")
        assert suggestion is not None
        assert suggestion.usage_count == 201

    def test_blank_query_records_history_only(
        self, tracker: SearchHistoryTracker, store: SearchStore
    ) -> None:
        """Test blank queries are logged without a suggestion."""
        _record(tracker, "   ")
        assert len(store.list_search_history(None, 10)) == 1
        assert store.get_suggestion("") is None


class TestSuggestions:
    """Tests for SearchHistoryTracker.suggestions."""

    def test_prefix_case_insensitive(self, tracker: SearchHistoryTracker) -> None:
        """Test prefixes match regardless of ASCII case."""
        _record(tracker, "Rustacean")
        texts = [s.text for s in tracker.suggestions("RUST")]
        assert texts == ["Rustacean"]

    def test_ordered_by_usage(self, tracker: SearchHistoryTracker) -> None:
        """Test more used suggestions come first, ties by text."""
        _record(tracker, "zig lang")
        _record(tracker, "zig build")
        _record(tracker, "zig build")
        _record(tracker, "zig async")
        suggestions = tracker.suggestions("zig")
        assert [(s.text, s.usage_count) for s in suggestions] == [
            ("zig build", 2),
            ("zig async", 1),
            ("zig lang", 1),
        ]

    def test_seeded_types_reported(self, tracker: SearchHistoryTracker) -> None:
        """Test seeded suggestions keep their type."""
        suggestions = tracker.suggestions("tech")
        assert [(s.text, s.suggestion_type) for s in suggestions] == [
            ("technology", "category")
        ]

    def test_limit(self, tracker: SearchHistoryTracker) -> None:
        """Test the limit caps the suggestions returned."""
        for i in range(5):
            _record(tracker, f"kotlin {i}")
        assert len(tracker.suggestions("kotlin", limit=2)) == 2

    def test_default_limit_from_config(self, store: SearchStore) -> None:
        """Test the configured default limit applies when none is given."""
        tracker = SearchHistoryTracker(store, HistoryConfig(default_suggestion_limit=1))
        assert len(tracker.suggestions("")) == 1


class TestTrendingQueries:
    """Tests for SearchHistoryTracker.trending_queries."""

    def test_grouped_and_windowed(self, tracker: SearchHistoryTracker) -> None:
        """Test queries group case-insensitively within the window."""
        _record(tracker, "Rust", hours_ago=1)
        _record(tracker, " rust ", hours_ago=2)
        _record(tracker, "Go", hours_ago=3)
        _record(tracker, "Rust", hours_ago=30)

        trending = tracker.trending_queries(now=FIXED_NOW)
        assert [(t.query, t.count) for t in trending] == [("rust", 2), ("go", 1)]

    def test_blank_queries_skipped(self, tracker: SearchHistoryTracker) -> None:
        """Test browsing searches do not count as trending queries."""
        _record(tracker, "")
        assert tracker.trending_queries(now=FIXED_NOW) == []

    def test_ties_by_text(self, tracker: SearchHistoryTracker) -> None:
        """Test equal counts are ordered by query text."""
        _record(tracker, "beta")
        _record(tracker, "alpha")
        trending = tracker.trending_queries(limit=1, now=FIXED_NOW)
        assert [t.query for t in trending] == ["alpha"]


class TestHistory:
    """Tests for SearchHistoryTracker.history."""

    def test_callers_isolated(self, tracker: SearchHistoryTracker) -> None:
        """Test callers see only their own history, newest first."""
        _record(tracker, "first", caller_id="alice", hours_ago=2)
        _record(tracker, "second", caller_id="alice", hours_ago=1)
        _record(tracker, "other", caller_id="bob")
        _record(tracker, "anon")

        assert [h.query for h in tracker.history("alice")] == ["second", "first"]
        assert [h.query for h in tracker.history("bob")] == ["other"]
        assert [h.query for h in tracker.history(None)] == ["anon"]

    def test_history_item_fields(self, tracker: SearchHistoryTracker) -> None:
        """Test history items carry totals, scope and filters."""
        tracker.record(
            parse_filters({"query": "llm", "sources": ["repo"], "limit": 5}),
            results_count=9,
            caller_id="alice",
            now=FIXED_NOW,
        )
        item = tracker.history("alice")[0]
        assert item.results_count == 9
        assert item.search_type == "repos"
        assert item.filters["limit"] == 5
        assert item.filters["sources"] == ["repo"]
        assert item.created_at == FIXED_NOW
