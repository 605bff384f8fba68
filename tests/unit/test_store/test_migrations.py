"""Unit tests for schema migrations."""

import sqlite3
from collections.abc import Generator

import pytest

from src.store.migrations import (
    CURRENT_VERSION,
    MIGRATIONS,
    MigrationManager,
    get_migrations_to_apply,
)


def _table_exists(conn: sqlite3.Connection, name: str) -> bool:
    cursor = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (name,)
    )
    return cursor.fetchone() is not None


class TestMigrationConstants:
    """Tests for migration constants."""

    def test_current_version_positive(self) -> None:
        """Test current version is positive."""
        assert CURRENT_VERSION > 0

    def test_migrations_in_order(self) -> None:
        """Test migrations are in ascending version order."""
        versions = [m.version for m in MIGRATIONS]
        assert versions == sorted(versions)
        assert len(set(versions)) == len(versions)

    def test_migrations_have_up_and_down(self) -> None:
        """Test all migrations have up and down SQL."""
        for migration in MIGRATIONS:
            assert migration.up_sql.strip()
            assert migration.down_sql.strip()

    def test_current_version_matches_latest_migration(self) -> None:
        """Test current version matches the latest migration."""
        assert MIGRATIONS[-1].version == CURRENT_VERSION


class TestGetMigrationsToApply:
    """Tests for get_migrations_to_apply function."""

    def test_from_zero(self) -> None:
        """Test getting all migrations from version 0."""
        assert len(get_migrations_to_apply(0)) == len(MIGRATIONS)

    def test_from_current(self) -> None:
        """Test no migrations when at current version."""
        assert get_migrations_to_apply(CURRENT_VERSION) == []

    def test_from_intermediate(self) -> None:
        """Test migrations from intermediate version."""
        pending = get_migrations_to_apply(1)
        assert [m.version for m in pending] == [m.version for m in MIGRATIONS[1:]]


class TestMigrationManager:
    """Tests for MigrationManager."""

    @pytest.fixture
    def temp_db(self) -> Generator[sqlite3.Connection]:
        """Create a temporary in-memory database."""
        conn = sqlite3.connect(":memory:")
        yield conn
        conn.close()

    def test_get_current_version_zero_when_empty(
        self, temp_db: sqlite3.Connection
    ) -> None:
        """Test version is 0 when no migrations applied."""
        assert MigrationManager(temp_db).get_current_version() == 0

    def test_apply_migrations(self, temp_db: sqlite3.Connection) -> None:
        """Test applying all migrations."""
        manager = MigrationManager(temp_db)
        applied = manager.apply_migrations()

        assert applied == [m.version for m in MIGRATIONS]
        assert manager.get_current_version() == CURRENT_VERSION

    def test_apply_migrations_idempotent(self, temp_db: sqlite3.Connection) -> None:
        """Test applying migrations twice is idempotent."""
        manager = MigrationManager(temp_db)
        manager.apply_migrations()

        assert manager.apply_migrations() == []
        assert manager.get_current_version() == CURRENT_VERSION

    def test_applied_migrations_recorded(self, temp_db: sqlite3.Connection) -> None:
        """Test applied migrations are recorded in schema_version."""
        manager = MigrationManager(temp_db)
        manager.apply_migrations()

        applied = manager.get_applied_migrations()
        assert len(applied) == len(MIGRATIONS)
        for i, record in enumerate(applied):
            assert record["version"] == MIGRATIONS[i].version
            assert record["description"] == MIGRATIONS[i].description
            assert record["applied_at"] is not None

    @pytest.mark.parametrize(
        "table",
        [
            "trends",
            "repos",
            "knowledge_entries",
            "trending_scores",
            "subscription_tiers",
            "subscriptions",
            "rate_limit_buckets",
            "api_usage_logs",
            "api_keys",
            "search_history",
            "search_suggestions",
            "saved_searches",
            "job_locks",
            "change_events",
        ],
    )
    def test_tables_created_after_migration(
        self, temp_db: sqlite3.Connection, table: str
    ) -> None:
        """Test required tables exist after migration."""
        MigrationManager(temp_db).apply_migrations()
        assert _table_exists(temp_db, table)

    def test_rollback_to_zero(self, temp_db: sqlite3.Connection) -> None:
        """Test rolling back all migrations."""
        manager = MigrationManager(temp_db)
        manager.apply_migrations()

        rolled_back = manager.rollback_to(0)
        assert rolled_back == [m.version for m in reversed(MIGRATIONS)]
        assert manager.get_current_version() == 0
        assert not _table_exists(temp_db, "trends")
        assert not _table_exists(temp_db, "rate_limit_buckets")

    def test_rollback_partial(self, temp_db: sqlite3.Connection) -> None:
        """Test partial rollback keeps earlier tables."""
        manager = MigrationManager(temp_db)
        manager.apply_migrations()

        rolled_back = manager.rollback_to(1)
        assert len(rolled_back) == len(MIGRATIONS) - 1
        assert manager.get_current_version() == 1
        assert _table_exists(temp_db, "trends")
        assert not _table_exists(temp_db, "search_history")

    def test_rollback_invalid_version_raises(self, temp_db: sqlite3.Connection) -> None:
        """Test rollback to invalid version raises error."""
        manager = MigrationManager(temp_db)
        manager.apply_migrations()

        with pytest.raises(ValueError, match="Invalid target version"):
            manager.rollback_to(-1)


class TestSeedData:
    """Tests for rows seeded by migrations."""

    @pytest.fixture
    def migrated_db(self) -> Generator[sqlite3.Connection]:
        """Create a migrated in-memory database."""
        conn = sqlite3.connect(":memory:")
        MigrationManager(conn).apply_migrations()
        yield conn
        conn.close()

    def test_default_tiers_seeded(self, migrated_db: sqlite3.Connection) -> None:
        """Test free, pro and enterprise tiers exist with their limits."""
        rows = migrated_db.execute(
            "SELECT tier_name, hourly_limit, daily_limit FROM subscription_tiers "
            "ORDER BY hourly_limit"
        ).fetchall()
        assert rows == [("free", 10, 100), ("pro", 100, 1000), ("enterprise", 500, 5000)]

    def test_suggestions_seeded(self, migrated_db: sqlite3.Connection) -> None:
        """Test initial suggestions exist."""
        row = migrated_db.execute(
            "SELECT usage_count FROM search_suggestions WHERE suggestion_text = 'ai'"
        ).fetchone()
        assert row == (200,)

    def test_trending_scores_unique_per_item(
        self, migrated_db: sqlite3.Connection
    ) -> None:
        """Test a second score row for the same item is rejected."""
        insert = (
            "INSERT INTO trending_scores (item_type, item_id, calculated_at) "
            "VALUES ('trend', 't1', '2025-01-01T00:00:00.000000+00:00')"
        )
        migrated_db.execute(insert)
        with pytest.raises(sqlite3.IntegrityError):
            migrated_db.execute(insert)

    def test_bucket_unique_per_caller_hour(self, migrated_db: sqlite3.Connection) -> None:
        """Test one bucket per caller, date and hour."""
        insert = (
            "INSERT INTO rate_limit_buckets (caller_id, date, hour, updated_at) "
            "VALUES ('c1', '2025-01-01', 3, 'x')"
        )
        migrated_db.execute(insert)
        with pytest.raises(sqlite3.IntegrityError):
            migrated_db.execute(insert)
