"""Unit tests for engine configuration schemas."""

import pytest
from pydantic import ValidationError

from src.config.schemas import (
    EngineConfig,
    FacetsConfig,
    QuotaConfig,
    SearchConfig,
    TrendingConfig,
)
from src.search.models import MAX_LIMIT


class TestSearchConfig:
    """Tests for SearchConfig."""

    @pytest.mark.unit
    def test_defaults(self) -> None:
        """Test default search limits."""
        config = SearchConfig()
        assert config.max_limit == 100
        assert config.default_limit == 50
        assert config.per_source_cap == 100
        assert config.retriever_timeout_seconds == 5.0

    @pytest.mark.unit
    def test_default_above_max_rejected(self) -> None:
        """Test the default page size may not exceed the maximum."""
        with pytest.raises(ValidationError, match="default_limit"):
            SearchConfig(max_limit=10, default_limit=20)

    @pytest.mark.unit
    def test_max_limit_matches_request_cap(self) -> None:
        """Test the configured maximum cannot exceed what a request may carry."""
        assert SearchConfig(max_limit=MAX_LIMIT).max_limit == MAX_LIMIT
        with pytest.raises(ValidationError, match="max_limit"):
            SearchConfig(max_limit=MAX_LIMIT + 1)

    @pytest.mark.unit
    def test_default_limit_bounded(self) -> None:
        """Test the default page size is bounded by the request cap."""
        with pytest.raises(ValidationError, match="default_limit"):
            SearchConfig(default_limit=MAX_LIMIT + 1)

    @pytest.mark.unit
    @pytest.mark.parametrize("timeout", [0.0, -1.0, 121.0])
    def test_timeout_bounds(self, timeout: float) -> None:
        """Test the retriever deadline must be positive and bounded."""
        with pytest.raises(ValidationError):
            SearchConfig(retriever_timeout_seconds=timeout)


class TestTrendingConfig:
    """Tests for TrendingConfig."""

    @pytest.mark.unit
    def test_defaults(self) -> None:
        """Test default retention, scales and weights."""
        config = TrendingConfig()
        assert (config.trend_retention_days, config.repo_retention_days) == (7, 30)
        assert (config.trend_scale, config.repo_scale) == (10000.0, 1000.0)
        assert (
            config.engagement_weight,
            config.recency_weight,
            config.velocity_weight,
        ) == (0.4, 0.3, 0.3)

    @pytest.mark.unit
    def test_scale_must_be_positive(self) -> None:
        """Test zero scales are rejected."""
        with pytest.raises(ValidationError):
            TrendingConfig(repo_scale=0)


class TestEngineConfig:
    """Tests for the root EngineConfig."""

    @pytest.mark.unit
    def test_sections_default(self) -> None:
        """Test every section is populated by default."""
        config = EngineConfig()
        assert config.quota == QuotaConfig()
        assert config.facets == FacetsConfig()
        assert config.facets.sources is None

    @pytest.mark.unit
    def test_extra_keys_forbidden(self) -> None:
        """Test unknown keys are rejected."""
        with pytest.raises(ValidationError):
            EngineConfig.model_validate({"search": {"max_limt": 10}})

    @pytest.mark.unit
    def test_frozen(self) -> None:
        """Test configuration is immutable."""
        config = EngineConfig()
        with pytest.raises(ValidationError):
            config.search = SearchConfig()  # type: ignore[misc]
