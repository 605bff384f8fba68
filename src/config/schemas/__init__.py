"""Configuration schema definitions."""

from src.config.schemas.engine import (
    EngineConfig,
    FacetsConfig,
    HistoryConfig,
    QuotaConfig,
    SearchConfig,
    TrendingConfig,
)


__all__ = [
    "EngineConfig",
    "FacetsConfig",
    "HistoryConfig",
    "QuotaConfig",
    "SearchConfig",
    "TrendingConfig",
]
