"""Unified search across trends, repositories and knowledge entries."""

from src.search.engine import SearchEngine
from src.search.errors import (
    AuthError,
    NotFoundError,
    RecomputeInProgressError,
    SearchEngineError,
    SourceRetrievalError,
    ValidationError,
)
from src.search.history import SearchHistoryTracker
from src.search.merger import compute_facets, merge_results
from src.search.metrics import SearchMetrics
from src.search.models import (
    MAX_LIMIT,
    Facet,
    Facets,
    SearchableItem,
    SearchFilters,
    SearchResponse,
    SearchResult,
    SortKey,
    SourceError,
    SourceType,
    parse_filters,
)
from src.search.query import ParsedQuery, match_query, parse_query
from src.search.ranking import Page, paginate, sort_results
from src.search.retrievers import (
    KnowledgeRetriever,
    RepoRetriever,
    SourceRetriever,
    TrendRetriever,
    default_retrievers,
)
from src.search.saved import SavedSearchService


__all__ = [
    # Engine
    "SearchEngine",
    "SearchHistoryTracker",
    "SavedSearchService",
    "SearchMetrics",
    # Errors
    "AuthError",
    "NotFoundError",
    "RecomputeInProgressError",
    "SearchEngineError",
    "SourceRetrievalError",
    "ValidationError",
    # Models
    "MAX_LIMIT",
    "Facet",
    "Facets",
    "SearchableItem",
    "SearchFilters",
    "SearchResponse",
    "SearchResult",
    "SortKey",
    "SourceError",
    "SourceType",
    "parse_filters",
    # Query
    "ParsedQuery",
    "match_query",
    "parse_query",
    # Ranking and merging
    "Page",
    "compute_facets",
    "merge_results",
    "paginate",
    "sort_results",
    # Retrievers
    "KnowledgeRetriever",
    "RepoRetriever",
    "SourceRetriever",
    "TrendRetriever",
    "default_retrievers",
]
