"""Tests for result ordering and pagination."""

from datetime import timedelta

import pytest

from src.search.models import SearchResult, SortKey, SourceType
from src.search.ranking import paginate, sort_results
from tests.helpers.time import FIXED_NOW


def _result(
    item_id: str,
    engagement: int = 0,
    trending: float | None = None,
    velocity: float | None = None,
    hours_ago: int = 0,
) -> SearchResult:
    return SearchResult(
        id=item_id,
        item_type=SourceType.REPO,
        title=item_id,
        description="",
        engagement=engagement,
        trending_score=trending,
        velocity_score=velocity,
        timestamp=FIXED_NOW - timedelta(hours=hours_ago),
    )


@pytest.fixture
def results() -> list[SearchResult]:
    """Results in merge order."""
    return [
        _result("a", engagement=10, trending=None, velocity=2.0, hours_ago=3),
        _result("b", engagement=50, trending=5.0, velocity=None, hours_ago=1),
        _result("c", engagement=10, trending=9.0, velocity=1.0, hours_ago=2),
    ]


class TestSortResults:
    """Tests for sort_results."""

    def test_relevance_keeps_merge_order(self, results: list[SearchResult]) -> None:
        """Test relevance leaves the merged order untouched."""
        assert [r.id for r in sort_results(results, SortKey.RELEVANCE)] == [
            "a",
            "b",
            "c",
        ]

    def test_trending_missing_as_zero(self, results: list[SearchResult]) -> None:
        """Test trending sorts descending with a missing score last."""
        assert [r.id for r in sort_results(results, SortKey.TRENDING)] == [
            "c",
            "b",
            "a",
        ]

    def test_velocity(self, results: list[SearchResult]) -> None:
        """Test velocity sorts descending."""
        assert [r.id for r in sort_results(results, SortKey.VELOCITY)] == [
            "a",
            "c",
            "b",
        ]

    def test_recent(self, results: list[SearchResult]) -> None:
        """Test recent sorts newest first."""
        ordered = sort_results(results, SortKey.RECENT)
        assert [r.id for r in ordered] == ["b", "c", "a"]
        stamps = [r.timestamp for r in ordered]
        assert stamps == sorted(stamps, reverse=True)

    def test_popular_ties_keep_merge_order(self, results: list[SearchResult]) -> None:
        """Test equal engagement keeps merge order."""
        assert [r.id for r in sort_results(results, SortKey.POPULAR)] == [
            "b",
            "a",
            "c",
        ]

    def test_input_not_mutated(self, results: list[SearchResult]) -> None:
        """Test sorting returns a new list."""
        sort_results(results, SortKey.POPULAR)
        assert [r.id for r in results] == ["a", "b", "c"]


class TestPaginate:
    """Tests for paginate."""

    def test_first_page(self) -> None:
        """Test a full page reports has_more."""
        page = paginate(list(range(10)), limit=3, offset=0)
        assert page.items == [0, 1, 2]
        assert page.total == 10
        assert page.has_more

    def test_partial_last_page(self) -> None:
        """Test a short page reports no more."""
        page = paginate(list(range(10)), limit=4, offset=8)
        assert page.items == [8, 9]
        assert not page.has_more

    def test_exact_last_page_reports_more(self) -> None:
        """Test a full last page still reports has_more."""
        page = paginate(list(range(6)), limit=3, offset=3)
        assert page.items == [3, 4, 5]
        assert page.has_more

    def test_offset_past_end(self) -> None:
        """Test an offset beyond the set gives an empty page with the total."""
        page = paginate(list(range(3)), limit=5, offset=10)
        assert page.items == []
        assert page.total == 3
        assert not page.has_more
