"""Integration tests for the search store."""

import tempfile
from collections.abc import Generator
from datetime import date, timedelta
from pathlib import Path

import pytest

from src.store import (
    Gte,
    ItemType,
    QuerySpec,
    SearchStore,
    StoreMetrics,
    StoreUnavailableError,
    SubscriptionStatus,
    SubscriptionTier,
    TrendingScore,
)
from tests.helpers.factories import make_entry, make_repo, make_trend
from tests.helpers.time import FIXED_NOW


@pytest.fixture
def temp_db_path() -> Generator[Path]:
    """Create a temporary database path."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test_search.sqlite"


@pytest.fixture
def store(temp_db_path: Path) -> Generator[SearchStore]:
    """Create a connected store."""
    StoreMetrics.reset()
    store = SearchStore(temp_db_path, run_id="test-run-001")
    store.connect()
    yield store
    store.close()


class TestConnection:
    """Tests for store connection and setup."""

    @pytest.mark.integration
    def test_connect_creates_database(self, temp_db_path: Path) -> None:
        """Test connecting creates the database file."""
        store = SearchStore(temp_db_path)
        assert not temp_db_path.exists()
        store.connect()
        assert temp_db_path.exists()
        store.close()

    @pytest.mark.integration
    def test_context_manager(self, temp_db_path: Path) -> None:
        """Test store works as context manager."""
        with SearchStore(temp_db_path) as store:
            assert store.is_connected
            assert store.get_schema_version() > 0
        assert not store.is_connected

    @pytest.mark.integration
    def test_wal_mode_enabled(self, store: SearchStore) -> None:
        """Test WAL mode is enabled."""
        mode = store._ensure_connected().execute("PRAGMA journal_mode").fetchone()[0]
        assert mode.lower() == "wal"

    @pytest.mark.integration
    def test_unopenable_database_raises_unavailable(self, temp_db_path: Path) -> None:
        """Test a path that cannot hold a database maps to StoreUnavailableError."""
        temp_db_path.mkdir()
        with pytest.raises(StoreUnavailableError) as exc_info:
            SearchStore(temp_db_path).connect()
        assert str(exc_info.value) == "Storage is temporarily unavailable"


class TestContent:
    """Tests for content writes and reads."""

    @pytest.mark.integration
    def test_insert_and_get_each_type(self, store: SearchStore) -> None:
        """Test rows round-trip through the store."""
        trend = store.insert_trend(make_trend("AI"))
        repo = store.insert_repo(make_repo("tool", topics=["cli", "dev"]))
        entry = store.insert_knowledge_entry(make_entry("Guide", tags=["a"]))

        assert store.get_item(ItemType.TREND, trend.id) == trend
        assert store.get_item(ItemType.REPO, repo.id) == repo
        assert store.get_item(ItemType.KNOWLEDGE_ENTRY, entry.id) == entry

    @pytest.mark.integration
    def test_ids_scoped_per_type(self, store: SearchStore) -> None:
        """Test the same id may exist in different tables."""
        store.insert_trend(make_trend("AI").model_copy(update={"id": "shared"}))
        store.insert_repo(make_repo("ai").model_copy(update={"id": "shared"}))

        assert store.get_item(ItemType.TREND, "shared") is not None
        assert store.get_item(ItemType.REPO, "shared") is not None
        assert store.get_item(ItemType.KNOWLEDGE_ENTRY, "shared") is None

    @pytest.mark.integration
    def test_writes_publish_events(self, store: SearchStore) -> None:
        """Test inserts and deletes append change events in order."""
        trend = store.insert_trend(make_trend("AI"))
        repo = store.insert_repo(make_repo("tool"))
        store.delete_item(ItemType.TREND, trend.id)

        events = store.events_since(0, 10)
        assert [e.topic for e in events] == ["trend.created", "repo.created", "trend.deleted"]
        assert [e.item_id for e in events] == [trend.id, repo.id, trend.id]
        assert events[0].seq < events[1].seq < events[2].seq
        assert [e.seq for e in store.events_since(events[0].seq, 10)] == [
            events[1].seq,
            events[2].seq,
        ]

    @pytest.mark.integration
    def test_delete_missing_item(self, store: SearchStore) -> None:
        """Test deleting a missing row reports False and publishes nothing."""
        assert store.delete_item(ItemType.REPO, "missing") is False
        assert store.events_since(0, 10) == []

    @pytest.mark.integration
    def test_iter_records_applies_spec(self, store: SearchStore) -> None:
        """Test iter_records filters and orders through the compiler."""
        store.insert_repo(make_repo("small", stars=5))
        store.insert_repo(make_repo("big", stars=500))
        store.insert_repo(make_repo("mid", stars=50))

        spec = QuerySpec(table="repos").where(Gte("stars", 10)).order("stars")
        names = [r.repo_name for r in store.iter_records(spec)]
        assert names == ["big", "mid"]

    @pytest.mark.integration
    def test_iter_records_empty_spec(self, store: SearchStore) -> None:
        """Test a spec marked empty yields nothing."""
        store.insert_repo(make_repo("any"))
        spec = QuerySpec(table="repos").match_nothing()
        assert list(store.iter_records(spec)) == []


class TestTrendingScores:
    """Tests for cached trending scores."""

    @pytest.mark.integration
    def test_upsert_replaces_by_key(self, store: SearchStore) -> None:
        """Test a second upsert for the same item replaces the first."""
        trend = store.insert_trend(make_trend("AI"))
        store.upsert_trending_score(
            TrendingScore(item_type=ItemType.TREND, item_id=trend.id, trending_score=1.0)
        )
        store.upsert_trending_score(
            TrendingScore(item_type=ItemType.TREND, item_id=trend.id, trending_score=2.0)
        )

        score = store.get_trending_score(ItemType.TREND, trend.id)
        assert score is not None
        assert score.trending_score == 2.0
        assert store.get_stats()["trending_scores"] == 1

    @pytest.mark.integration
    def test_top_scores_skip_orphans(self, store: SearchStore) -> None:
        """Test scores of deleted items are ignored by reads."""
        live = store.insert_trend(make_trend("Live"))
        gone = store.insert_trend(make_trend("Gone"))
        for item, value in ((live, 1.0), (gone, 9.0)):
            store.upsert_trending_score(
                TrendingScore(
                    item_type=ItemType.TREND, item_id=item.id, trending_score=value
                )
            )
        store.delete_item(ItemType.TREND, gone.id)

        top = store.top_trending_scores(None, 10)
        assert [s.item_id for s in top] == [live.id]
        # the orphaned row is kept, not eagerly deleted
        assert store.get_trending_score(ItemType.TREND, gone.id) is not None

    @pytest.mark.integration
    def test_get_trending_scores_batch(self, store: SearchStore) -> None:
        """Test batch lookup returns only scored ids."""
        repo = store.insert_repo(make_repo("tool"))
        store.upsert_trending_score(
            TrendingScore(item_type=ItemType.REPO, item_id=repo.id, velocity_score=3.0)
        )
        scores = store.get_trending_scores(ItemType.REPO, [repo.id, "other"])
        assert list(scores) == [repo.id]
        assert scores[repo.id].velocity_score == 3.0


class TestJobLocks:
    """Tests for job leases."""

    @pytest.mark.integration
    def test_lease_excludes_other_owner(self, store: SearchStore) -> None:
        """Test a held lease blocks another owner until released."""
        assert store.acquire_job_lock("job", "a", FIXED_NOW, 60)
        assert not store.acquire_job_lock("job", "b", FIXED_NOW, 60)
        assert store.release_job_lock("job", "a")
        assert store.acquire_job_lock("job", "b", FIXED_NOW, 60)

    @pytest.mark.integration
    def test_expired_lease_can_be_taken(self, store: SearchStore) -> None:
        """Test leases expire after their TTL."""
        assert store.acquire_job_lock("job", "a", FIXED_NOW, 60)
        later = FIXED_NOW + timedelta(seconds=61)
        assert store.acquire_job_lock("job", "b", later, 60)

    @pytest.mark.integration
    def test_release_by_non_owner_is_noop(self, store: SearchStore) -> None:
        """Test only the owner can release a lease."""
        store.acquire_job_lock("job", "a", FIXED_NOW, 60)
        assert not store.release_job_lock("job", "b")


class TestTiersAndSubscriptions:
    """Tests for tiers and subscriptions."""

    @pytest.mark.integration
    def test_seeded_tier_lookup(self, store: SearchStore) -> None:
        """Test seeded tiers are available by name."""
        tier = store.get_tier_by_name("pro")
        assert tier is not None
        assert (tier.hourly_limit, tier.daily_limit) == (100, 1000)
        assert tier.features["api_access"] is True

    @pytest.mark.integration
    def test_upsert_tier(self, store: SearchStore) -> None:
        """Test tiers can be created and updated by name."""
        store.upsert_tier(SubscriptionTier(name="tiny", hourly_limit=1, daily_limit=2))
        store.upsert_tier(SubscriptionTier(name="tiny", hourly_limit=3, daily_limit=4))
        tier = store.get_tier_by_name("tiny")
        assert tier is not None
        assert (tier.hourly_limit, tier.daily_limit) == (3, 4)

    @pytest.mark.integration
    def test_active_subscription(self, store: SearchStore) -> None:
        """Test the newest active subscription is returned with its tier."""
        store.create_subscription("caller", "pro")
        active = store.get_active_subscription("caller", FIXED_NOW)
        assert active is not None
        subscription, tier = active
        assert subscription.status is SubscriptionStatus.ACTIVE
        assert tier is not None
        assert tier.name == "pro"

    @pytest.mark.integration
    def test_inactive_and_expired_ignored(self, store: SearchStore) -> None:
        """Test canceled and ended subscriptions do not count."""
        store.create_subscription("c1", "pro", status=SubscriptionStatus.CANCELED)
        store.create_subscription(
            "c2", "pro", period_end=FIXED_NOW - timedelta(days=1)
        )
        assert store.get_active_subscription("c1", FIXED_NOW) is None
        assert store.get_active_subscription("c2", FIXED_NOW) is None

    @pytest.mark.integration
    def test_unknown_tier_rejected(self, store: SearchStore) -> None:
        """Test subscribing to a missing tier raises KeyError."""
        with pytest.raises(KeyError):
            store.create_subscription("caller", "platinum")


class TestBuckets:
    """Tests for rate limit buckets."""

    @pytest.mark.integration
    def test_increment_creates_then_updates(self, store: SearchStore) -> None:
        """Test the first call creates the bucket and later calls add to it."""
        day = date(2025, 11, 5)
        first = store.increment_bucket("c", day, 12, FIXED_NOW)
        second = store.increment_bucket("c", day, 12, FIXED_NOW)
        assert (first.hourly_count, first.daily_count) == (1, 1)
        assert (second.hourly_count, second.daily_count) == (2, 2)

    @pytest.mark.integration
    def test_daily_count_carried_forward(self, store: SearchStore) -> None:
        """Test a new hour bucket starts from the day's running total."""
        day = date(2025, 11, 5)
        for _ in range(3):
            store.increment_bucket("c", day, 9, FIXED_NOW)
        bucket = store.increment_bucket("c", day, 11, FIXED_NOW)
        assert (bucket.hourly_count, bucket.daily_count) == (1, 4)
        assert [b.hour for b in store.list_buckets("c", day)] == [9, 11]

    @pytest.mark.integration
    def test_new_day_starts_fresh(self, store: SearchStore) -> None:
        """Test buckets of another date are not carried forward."""
        store.increment_bucket("c", date(2025, 11, 4), 23, FIXED_NOW)
        bucket = store.increment_bucket("c", date(2025, 11, 5), 0, FIXED_NOW)
        assert bucket.daily_count == 1


class TestApiKeys:
    """Tests for hashed API keys."""

    @pytest.mark.integration
    def test_lookup_and_revoke(self, store: SearchStore) -> None:
        """Test keys resolve to callers until revoked."""
        store.insert_api_key("hash-1", "caller", "laptop")
        assert store.get_caller_for_key("hash-1") == "caller"
        assert store.revoke_api_key("hash-1")
        assert store.get_caller_for_key("hash-1") is None


class TestHistoryAndSuggestions:
    """Tests for search history and suggestions."""

    @pytest.mark.integration
    def test_anonymous_history_separate(self, store: SearchStore) -> None:
        """Test anonymous entries are distinguished from identified ones."""
        store.insert_search_history(None, "anon", {}, 1, "unified", FIXED_NOW)
        store.insert_search_history("c", "mine", {"limit": 5}, 2, "repos", FIXED_NOW)

        anonymous = store.list_search_history(None, 10)
        mine = store.list_search_history("c", 10)
        assert [h.search_query for h in anonymous] == ["anon"]
        assert [h.search_query for h in mine] == ["mine"]
        assert mine[0].filters == {"limit": 5}

    @pytest.mark.integration
    def test_increment_suggestion_is_case_sensitive(self, store: SearchStore) -> None:
        """Test suggestions are keyed by exact text."""
        assert store.increment_suggestion("Rust", FIXED_NOW) == 1
        assert store.increment_suggestion("Rust", FIXED_NOW) == 2
        assert store.increment_suggestion("rust", FIXED_NOW) == 1

    @pytest.mark.integration
    def test_prefix_escapes_wildcards(self, store: SearchStore) -> None:
        """Test LIKE wildcards in the prefix match literally."""
        store.increment_suggestion("100% rust", FIXED_NOW)
        store.increment_suggestion("100 rust", FIXED_NOW)
        found = store.search_suggestions("100%", 10)
        assert [s.suggestion_text for s in found] == ["100% rust"]


class TestSavedSearches:
    """Tests for saved search rows."""

    @pytest.mark.integration
    def test_deactivate_is_owner_scoped(self, store: SearchStore) -> None:
        """Test only the owner can deactivate a saved search."""
        saved = store.insert_saved_search(
            "owner", "Mine", "rust", {}, "unified", False, FIXED_NOW
        )
        assert not store.deactivate_saved_search("other", saved.id, FIXED_NOW)
        assert store.deactivate_saved_search("owner", saved.id, FIXED_NOW)
        assert store.list_saved_searches("owner") == []
        assert not store.deactivate_saved_search("owner", saved.id, FIXED_NOW)


class TestStoreMetrics:
    """Tests for store metrics."""

    @pytest.mark.integration
    def test_transactions_counted(self, store: SearchStore) -> None:
        """Test committed transactions are counted."""
        before = StoreMetrics.get_instance().db_tx_count
        store.insert_trend(make_trend("AI"))
        assert StoreMetrics.get_instance().db_tx_count == before + 1
