"""HTTP routes."""

from typing import Any

from fastapi import APIRouter, Body, Depends, Query, Request
from starlette.datastructures import QueryParams

from src.api.schemas import EventItem, SavedSearchRequest
from src.config.schemas import EngineConfig
from src.events import StoreEventChannel
from src.quota import QuotaTracker
from src.search import (
    SavedSearchService,
    SearchEngine,
    SearchFilters,
    SearchHistoryTracker,
    parse_filters,
)
from src.search.errors import NotFoundError
from src.store import ItemType, SearchStore
from src.trending import TrendingCalculator


router = APIRouter(prefix="/api")

# Query parameters carrying comma separated lists
_LIST_PARAMS = frozenset({"categories", "tags", "languages", "sources"})


def get_store(request: Request) -> SearchStore:
    return request.state.store


def get_caller(request: Request) -> str:
    return request.state.caller_id


def get_config(request: Request) -> EngineConfig:
    return request.app.state.config


def get_engine(
    store: SearchStore = Depends(get_store),
    config: EngineConfig = Depends(get_config),
) -> SearchEngine:
    return SearchEngine(store, config)


def get_history(
    store: SearchStore = Depends(get_store),
    config: EngineConfig = Depends(get_config),
) -> SearchHistoryTracker:
    return SearchHistoryTracker(store, config.history)


def _filters_from_params(params: QueryParams, default_limit: int) -> SearchFilters:
    data: dict[str, Any] = {}
    for key, value in params.items():
        if key in _LIST_PARAMS:
            data[key] = [part for part in value.split(",") if part.strip()]
        else:
            data[key] = value
    data.setdefault("limit", default_limit)
    return parse_filters(data)


@router.post("/search")
def search_post(
    payload: dict[str, Any] | None = Body(default=None),
    engine: SearchEngine = Depends(get_engine),
    config: EngineConfig = Depends(get_config),
    caller_id: str = Depends(get_caller),
) -> dict[str, Any]:
    data = dict(payload or {})
    data.setdefault("limit", config.search.default_limit)
    return engine.search(parse_filters(data), caller_id=caller_id).to_wire()


@router.get("/search")
def search_get(
    request: Request,
    engine: SearchEngine = Depends(get_engine),
    config: EngineConfig = Depends(get_config),
    caller_id: str = Depends(get_caller),
) -> dict[str, Any]:
    filters = _filters_from_params(request.query_params, config.search.default_limit)
    return engine.search(filters, caller_id=caller_id).to_wire()


@router.get("/search/suggestions")
def search_suggestions(
    query: str = Query(default=""),
    limit: int = Query(default=10, ge=1, le=100),
    history: SearchHistoryTracker = Depends(get_history),
) -> dict[str, Any]:
    suggestions = history.suggestions(query, limit)
    return {"suggestions": [s.to_wire() for s in suggestions]}


@router.get("/search/trending-queries")
def trending_queries(
    limit: int = Query(default=10, ge=1, le=100),
    history: SearchHistoryTracker = Depends(get_history),
) -> dict[str, Any]:
    queries = history.trending_queries(limit)
    return {"trendingQueries": [q.to_wire() for q in queries]}


@router.get("/search/trending-items")
def trending_items(
    item_type: ItemType | None = Query(default=None, alias="type"),
    limit: int = Query(default=20, ge=1, le=100),
    store: SearchStore = Depends(get_store),
    config: EngineConfig = Depends(get_config),
) -> dict[str, Any]:
    calculator = TrendingCalculator(store, config.trending)
    items = calculator.trending_items(item_type, limit)
    return {"trendingItems": [i.to_wire() for i in items]}


@router.get("/search/related")
def related_items(
    item_id: str = Query(alias="itemId", min_length=1),
    item_type: ItemType = Query(alias="type"),
    limit: int = Query(default=5, ge=1, le=50),
    engine: SearchEngine = Depends(get_engine),
) -> dict[str, Any]:
    items = engine.related_items(item_type, item_id, limit)
    return {"relatedItems": [i.to_wire() for i in items]}


@router.get("/search/history")
def search_history(
    limit: int = Query(default=20, ge=1, le=100),
    history: SearchHistoryTracker = Depends(get_history),
    caller_id: str = Depends(get_caller),
) -> dict[str, Any]:
    entries = history.history(caller_id, limit)
    return {"history": [e.to_wire() for e in entries]}


@router.post("/trending/recompute")
def recompute_trending(
    store: SearchStore = Depends(get_store),
    config: EngineConfig = Depends(get_config),
) -> dict[str, Any]:
    result = TrendingCalculator(store, config.trending).recompute()
    return result.to_wire()


@router.get("/usage")
def usage(
    store: SearchStore = Depends(get_store),
    config: EngineConfig = Depends(get_config),
    caller_id: str = Depends(get_caller),
) -> dict[str, Any]:
    return QuotaTracker(store, config=config.quota).usage_stats(caller_id).to_wire()


@router.get("/saved-searches")
def list_saved_searches(
    store: SearchStore = Depends(get_store),
    caller_id: str = Depends(get_caller),
) -> dict[str, Any]:
    searches = SavedSearchService(store).list_searches(caller_id)
    return {"savedSearches": [s.to_wire() for s in searches]}


@router.post("/saved-searches", status_code=201)
def create_saved_search(
    body: SavedSearchRequest,
    store: SearchStore = Depends(get_store),
    caller_id: str = Depends(get_caller),
) -> dict[str, Any]:
    filters = parse_filters(body.filters)
    saved = SavedSearchService(store).save(
        caller_id, body.name, filters, body.notification_enabled
    )
    return saved.to_wire()


@router.delete("/saved-searches/{search_id}")
def delete_saved_search(
    search_id: int,
    store: SearchStore = Depends(get_store),
    caller_id: str = Depends(get_caller),
) -> dict[str, Any]:
    if not SavedSearchService(store).delete(caller_id, search_id):
        raise NotFoundError(f"Saved search {search_id} not found")
    return {"deleted": True, "id": search_id}


@router.get("/events")
def poll_events(
    since: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    store: SearchStore = Depends(get_store),
) -> dict[str, Any]:
    events = StoreEventChannel(store).poll(since, limit)
    last_seq = events[-1].seq if events else since
    return {
        "events": [EventItem.from_event(e).to_wire() for e in events],
        "lastSeq": last_seq,
    }


@router.get("/health")
def health(store: SearchStore = Depends(get_store)) -> dict[str, Any]:
    return {
        "status": "ok",
        "schemaVersion": store.get_schema_version(),
        "items": store.get_stats(),
    }
