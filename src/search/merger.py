"""Merge per-source results and tally facets."""

from collections import Counter
from collections.abc import Iterable, Mapping, Sequence

from src.config.schemas import FacetsConfig
from src.search.models import Facet, Facets, SearchResult, SourceType
from src.store import ITEM_TYPE_ORDER


def merge_results(
    by_source: Mapping[SourceType, Sequence[SearchResult]],
) -> list[SearchResult]:
    """Concatenate per-source results in the fixed source order.

    The order does not depend on which retriever finished first.
    """
    merged: list[SearchResult] = []
    for source in ITEM_TYPE_ORDER:
        merged.extend(by_source.get(source, ()))
    return merged


def _top(counter: Counter[str], limit: int | None, total: int) -> list[Facet]:
    """Ordered facet entries whose displayed counts sum to at most ``total``.

    Entries are taken in order until the next one would push the sum past
    ``total``. Only multi-valued dimensions (tags) can reach that bound.
    """
    # count descending, then name ascending for equal counts
    ordered = sorted(counter.items(), key=lambda kv: (-kv[1], kv[0]))
    if limit is not None:
        ordered = ordered[:limit]
    facets: list[Facet] = []
    shown = 0
    for name, count in ordered:
        if shown + count > total:
            break
        shown += count
        facets.append(Facet(name=name, count=count))
    return facets


def compute_facets(
    results: Iterable[SearchResult], config: FacetsConfig | None = None
) -> Facets:
    """Tally facets over the full merged result set.

    Items lacking a dimension do not contribute to it. A tag repeated on
    one item counts once for that item. For every dimension the displayed
    counts sum to at most the number of results, so the tag list stops
    before the first tag that would exceed it.

    Args:
        results: Merged results, before pagination.
        config: Truncation limits per dimension.

    Returns:
        Facet lists sorted by count descending, ties by name.
    """
    config = config or FacetsConfig()
    categories: Counter[str] = Counter()
    tags: Counter[str] = Counter()
    languages: Counter[str] = Counter()
    sources: Counter[str] = Counter()
    total = 0

    for result in results:
        total += 1
        if result.category:
            categories[result.category] += 1
        for tag in {t for t in result.tags if t}:
            tags[tag] += 1
        if result.language:
            languages[result.language] += 1
        sources[result.item_type.value] += 1

    return Facets(
        categories=_top(categories, config.categories, total),
        tags=_top(tags, config.tags, total),
        languages=_top(languages, config.languages, total),
        sources=_top(sources, config.sources, total),
    )
