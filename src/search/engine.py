"""Unified search over all content sources."""

import time
import uuid
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import datetime

import structlog

from src.config.schemas import EngineConfig
from src.search.errors import SourceRetrievalError, ValidationError
from src.search.history import SearchHistoryTracker
from src.search.merger import compute_facets, merge_results
from src.search.metrics import SearchMetrics
from src.search.models import (
    MAX_LIMIT,
    SearchableItem,
    SearchFilters,
    SearchResponse,
    SearchResult,
    SourceError,
    SourceType,
)
from src.search.query import ParsedQuery, parse_query
from src.search.ranking import paginate, sort_results
from src.search.retrievers import SourceRetriever, default_retrievers
from src.store import SearchStore


logger = structlog.get_logger()

TIMEOUT_ERROR_TYPE = "timeout"


def _quote_term(term: str) -> str:
    cleaned = term.replace('"', " ").strip()
    return f'"{cleaned}"' if " " in cleaned else cleaned


class SearchEngine:
    """Runs retrievers, merges, ranks and paginates results.

    Retrievers run concurrently, each bounded by the configured deadline.
    A failed or timed out retriever degrades to an empty result for its
    source and is reported in ``source_errors``.
    """

    def __init__(
        self,
        store: SearchStore,
        config: EngineConfig | None = None,
        retrievers: Mapping[SourceType, SourceRetriever] | None = None,
        history: SearchHistoryTracker | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            store: Store used for score lookups and by default retrievers.
            config: Engine configuration.
            retrievers: Retrievers keyed by source (defaults to one per source).
            history: History tracker (defaults to one over the store).
        """
        self._store = store
        self._config = config or EngineConfig()
        self._retrievers = dict(
            retrievers
            or default_retrievers(store, self._config.search.per_source_cap)
        )
        self._history = history or SearchHistoryTracker(store, self._config.history)
        self._metrics = SearchMetrics.get_instance()
        self._log = logger.bind(component="search", subcomponent="engine")

    def retriever_for(self, source: SourceType) -> SourceRetriever:
        """Get the retriever of a source."""
        return self._retrievers[source]

    def search(
        self,
        filters: SearchFilters,
        caller_id: str | None = None,
        now: datetime | None = None,
    ) -> SearchResponse:
        """Run a unified search.

        Args:
            filters: Validated search filters.
            caller_id: Identified caller, None for anonymous.
            now: Time recorded in history (defaults to now).

        Returns:
            The page of results with totals, facets and source errors.

        Raises:
            ValidationError: If the page size exceeds the configured maximum.
        """
        if filters.limit > self._config.search.max_limit:
            raise ValidationError(
                f"limit must be at most {self._config.search.max_limit}", field="limit"
            )

        start_ns = time.perf_counter_ns()
        search_id = str(uuid.uuid4())
        log = self._log.bind(search_id=search_id)

        merged, source_errors = self._collect(filters, parse_query(filters.query))
        ranked = sort_results(merged, filters.sort_by)
        facets = compute_facets(ranked, self._config.facets)
        page = paginate(ranked, filters.limit, filters.offset)

        try:
            self._history.record(filters, page.total, caller_id=caller_id, now=now)
        except Exception as e:  # noqa: BLE001
            self._metrics.record_history_failure()
            log.warning("history_record_failed", error=str(e))

        duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
        self._metrics.record_search(duration_ms)
        log.info(
            "search_complete",
            sources=[s.value for s in filters.selected_sources],
            sort_by=filters.sort_by.value,
            total=page.total,
            returned=len(page.items),
            source_errors=len(source_errors),
            duration_ms=round(duration_ms, 2),
        )

        return SearchResponse(
            results=page.items,
            total=page.total,
            facets=facets,
            search_id=search_id,
            has_more=page.has_more,
            source_errors=source_errors,
        )

    def related_items(
        self, item_type: SourceType, item_id: str, limit: int = 5
    ) -> list[SearchResult]:
        """Items sharing terms with a given item, excluding the item itself.

        Returns an empty list when the item does not exist or has no
        descriptive terms. Related lookups are not recorded in history.
        """
        record = self._store.get_item(item_type, item_id)
        if record is None:
            return []
        terms = [t for t in self._retrievers[item_type].related_terms(record) if t]
        if not terms:
            return []

        filters = SearchFilters(
            query=" OR ".join(_quote_term(t) for t in terms),
            limit=min(limit + 5, MAX_LIMIT),
        )
        merged, _ = self._collect(filters, parse_query(filters.query))
        related = [
            r for r in merged if not (r.item_type == item_type and r.id == item_id)
        ]
        return related[:limit]

    def _collect(
        self, filters: SearchFilters, parsed: ParsedQuery
    ) -> tuple[list[SearchResult], list[SourceError]]:
        """Run the selected retrievers and merge their scored results."""
        selected = [s for s in filters.selected_sources if s in self._retrievers]
        items: dict[SourceType, list[SearchableItem]] = {}
        errors: list[SourceError] = []

        if self._config.search.max_workers <= 1:
            for source in selected:
                try:
                    items[source] = self._retrievers[source].retrieve(filters, parsed)
                except Exception as e:  # noqa: BLE001
                    errors.append(self._source_failed(source, e))
        else:
            executor = ThreadPoolExecutor(
                max_workers=min(self._config.search.max_workers, max(len(selected), 1)),
                thread_name_prefix="retriever",
            )
            try:
                futures = {
                    executor.submit(self._retrievers[s].retrieve, filters, parsed): s
                    for s in selected
                }
                _, not_done = wait(
                    futures, timeout=self._config.search.retriever_timeout_seconds
                )
                # iterate in submission order so errors are reported deterministically
                for future, source in futures.items():
                    if future in not_done:
                        future.cancel()
                        errors.append(self._source_timed_out(source))
                        continue
                    try:
                        items[source] = future.result()
                    except Exception as e:  # noqa: BLE001
                        errors.append(self._source_failed(source, e))
            finally:
                executor.shutdown(wait=False, cancel_futures=True)

        scored = {source: self._attach_scores(source, found) for source, found in items.items()}
        return merge_results(scored), errors

    def _attach_scores(
        self, source: SourceType, items: list[SearchableItem]
    ) -> list[SearchResult]:
        if not items:
            return []
        scores = self._store.get_trending_scores(source, [i.id for i in items])
        results = []
        for item in items:
            score = scores.get(item.id)
            results.append(
                SearchResult.from_item(
                    item,
                    trending_score=score.trending_score if score else None,
                    velocity_score=score.velocity_score if score else None,
                )
            )
        return results

    def _source_failed(self, source: SourceType, error: Exception) -> SourceError:
        failure = SourceRetrievalError(
            source.value, type(error).__name__, str(error) or type(error).__name__
        )
        self._metrics.record_source_failure(source.value)
        self._log.warning(
            "retriever_failed",
            source=source.value,
            error_type=failure.error_type,
            error=failure.message,
        )
        return SourceError(
            source=source, error_type=failure.error_type, message=failure.message
        )

    def _source_timed_out(self, source: SourceType) -> SourceError:
        timeout = self._config.search.retriever_timeout_seconds
        self._metrics.record_source_timeout(source.value)
        self._log.warning("retriever_timeout", source=source.value, timeout_s=timeout)
        return SourceError(
            source=source,
            error_type=TIMEOUT_ERROR_TYPE,
            message=f"Retriever exceeded {timeout}s deadline",
        )

