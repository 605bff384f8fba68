"""Unit tests for store models and timestamp helpers."""

from datetime import UTC, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from src.store.models import (
    ITEM_TYPE_ORDER,
    ChangeEvent,
    ItemType,
    KnowledgeEntry,
    Repo,
    Trend,
    from_db_timestamp,
    load_json,
    to_db_timestamp,
)


class TestTimestamps:
    """Tests for the stored timestamp format."""

    def test_fixed_width(self) -> None:
        """Test timestamps always carry microseconds and a UTC offset."""
        value = to_db_timestamp(datetime(2025, 1, 2, 3, 4, 5, tzinfo=UTC))
        assert value == "2025-01-02T03:04:05.000000+00:00"

    def test_naive_treated_as_utc(self) -> None:
        """Test naive datetimes are stored as UTC."""
        assert to_db_timestamp(datetime(2025, 1, 2)) == "2025-01-02T00:00:00.000000+00:00"

    def test_offset_converted_to_utc(self) -> None:
        """Test aware datetimes are normalized to UTC."""
        plus_two = timezone(timedelta(hours=2))
        value = to_db_timestamp(datetime(2025, 1, 2, 2, 0, tzinfo=plus_two))
        assert value == "2025-01-02T00:00:00.000000+00:00"

    def test_round_trip(self) -> None:
        """Test a stored timestamp parses back to the same instant."""
        original = datetime(2025, 6, 1, 12, 0, 0, 123456, tzinfo=UTC)
        assert from_db_timestamp(to_db_timestamp(original)) == original

    def test_lexical_order_matches_chronological(self) -> None:
        """Test string comparison of stored values follows time order."""
        earlier = to_db_timestamp(datetime(2025, 1, 1, 9, 59, 59, 999999, tzinfo=UTC))
        later = to_db_timestamp(datetime(2025, 1, 1, 10, 0, tzinfo=UTC))
        assert earlier < later


class TestContentModels:
    """Tests for content record validation."""

    def test_trend_defaults(self) -> None:
        """Test trends get an id and the general category."""
        trend = Trend(trend_name="AI")
        assert trend.id
        assert trend.category == "general"
        assert trend.tweet_count == 0

    def test_negative_engagement_rejected(self) -> None:
        """Test engagement metrics cannot be negative."""
        with pytest.raises(ValidationError):
            Repo(repo_name="x", url="https://example.com", stars=-1)

    def test_relevance_score_bounds(self) -> None:
        """Test relevance score is limited to 0-100."""
        with pytest.raises(ValidationError):
            KnowledgeEntry(title="t", content="c", source="s", relevance_score=101)

    def test_records_are_frozen(self) -> None:
        """Test records cannot be mutated."""
        trend = Trend(trend_name="AI")
        with pytest.raises(ValidationError):
            trend.trend_name = "Other"  # type: ignore[misc]


class TestItemType:
    """Tests for ItemType."""

    def test_merge_order(self) -> None:
        """Test the fixed merge order."""
        assert ITEM_TYPE_ORDER == (
            ItemType.TREND,
            ItemType.REPO,
            ItemType.KNOWLEDGE_ENTRY,
        )

    def test_change_event_coerces_item_type(self) -> None:
        """Test change events accept the stored string value."""
        event = ChangeEvent(
            seq=1,
            topic="repo.created",
            item_type="repo",
            item_id="r1",
            created_at=datetime(2025, 1, 1, tzinfo=UTC),
        )
        assert event.item_type is ItemType.REPO


class TestLoadJson:
    """Tests for load_json."""

    @pytest.mark.parametrize("value", [None, ""])
    def test_empty_returns_default(self, value: str | None) -> None:
        """Test NULL and empty strings yield the default."""
        assert load_json(value, []) == []

    def test_parses_value(self) -> None:
        """Test JSON text is parsed."""
        assert load_json('["a", "b"]', []) == ["a", "b"]
