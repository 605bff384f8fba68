"""SQLite store for search content, trending scores, quotas and history.

This module provides persistent storage for:
- Trend, repo and knowledge entry rows written by ingestion
- Cached trending scores keyed by (item type, item id)
- Subscription tiers, rate limit buckets, usage logs and API keys
- Search history, suggestions, saved searches and change events
"""

from src.store.compiler import SqlCompiler
from src.store.errors import (
    ConnectionError,
    MigrationError,
    QueryCompileError,
    StateStoreError,
    StoreUnavailableError,
)
from src.store.metrics import StoreMetrics
from src.store.models import (
    ITEM_TYPE_ORDER,
    ChangeEvent,
    ContentRecord,
    ItemType,
    KnowledgeEntry,
    RateLimitBucket,
    Repo,
    SavedSearch,
    SearchHistoryEntry,
    SearchSuggestion,
    SearchType,
    Subscription,
    SubscriptionStatus,
    SubscriptionTier,
    Trend,
    TrendingScore,
    UsageLogEntry,
)
from src.store.query import Eq, Gte, In, Lte, OrderBy, Overlaps, QuerySpec
from src.store.store import SearchStore


__all__ = [
    # Errors
    "ConnectionError",
    "MigrationError",
    "QueryCompileError",
    "StateStoreError",
    "StoreUnavailableError",
    # Metrics
    "StoreMetrics",
    # Models
    "ITEM_TYPE_ORDER",
    "ChangeEvent",
    "ContentRecord",
    "ItemType",
    "KnowledgeEntry",
    "RateLimitBucket",
    "Repo",
    "SavedSearch",
    "SearchHistoryEntry",
    "SearchSuggestion",
    "SearchType",
    "Subscription",
    "SubscriptionStatus",
    "SubscriptionTier",
    "Trend",
    "TrendingScore",
    "UsageLogEntry",
    # Query description
    "Eq",
    "Gte",
    "In",
    "Lte",
    "OrderBy",
    "Overlaps",
    "QuerySpec",
    "SqlCompiler",
    # Store
    "SearchStore",
]
