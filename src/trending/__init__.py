"""Trending score computation."""

from src.trending.calculator import RECOMPUTE_JOB, TrendingCalculator, compute_scores
from src.trending.metrics import TrendingMetrics
from src.trending.models import RecomputeFailure, RecomputeResult, ScoreComponents


__all__ = [
    "RECOMPUTE_JOB",
    "RecomputeFailure",
    "RecomputeResult",
    "ScoreComponents",
    "TrendingCalculator",
    "TrendingMetrics",
    "compute_scores",
]
