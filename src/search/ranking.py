"""Result ordering and pagination."""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

from src.search.models import SearchResult, SortKey


T = TypeVar("T")

_SORT_KEYS: dict[SortKey, Callable[[SearchResult], float]] = {
    SortKey.TRENDING: lambda r: r.trending_score or 0.0,
    SortKey.RECENT: lambda r: r.timestamp.timestamp(),
    SortKey.POPULAR: lambda r: float(r.engagement),
    SortKey.VELOCITY: lambda r: r.velocity_score or 0.0,
}


def sort_results(results: Sequence[SearchResult], sort_by: SortKey) -> list[SearchResult]:
    """Order results by a sort strategy.

    ``relevance`` keeps merge order. Every other key sorts descending and
    treats a missing score as 0. Sorting is stable, so ties keep merge
    order.
    """
    if sort_by == SortKey.RELEVANCE:
        return list(results)
    return sorted(results, key=_SORT_KEYS[sort_by], reverse=True)


@dataclass(frozen=True)
class Page(Generic[T]):
    """One slice of a sorted result set.

    Attributes:
        items: Items of the page.
        total: Size of the full set before slicing.
        has_more: True when the page is full.
    """

    items: list[T]
    total: int
    has_more: bool


def paginate(items: Sequence[T], limit: int, offset: int) -> Page[T]:
    """Slice a page out of a sorted sequence.

    ``has_more`` is True exactly when the page holds ``limit`` items, so
    a full last page also reports True.
    """
    page = list(items[offset : offset + limit])
    return Page(items=page, total=len(items), has_more=len(page) == limit)
