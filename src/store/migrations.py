"""Schema migrations for the search store.

Migrations are applied in ascending version order and recorded in the
``schema_version`` table. Each migration carries its own rollback SQL.
"""

import sqlite3
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog

from src.store.errors import MigrationError


logger = structlog.get_logger()

# SQLite expression producing the same fixed-width UTC format as to_db_timestamp
_NOW_SQL = "strftime('%Y-%m-%dT%H:%M:%f000+00:00', 'now')"


@dataclass(frozen=True)
class Migration:
    """A single schema migration.

    Attributes:
        version: Monotonically increasing version number.
        description: Short human-readable description.
        up_sql: SQL script applying the migration.
        down_sql: SQL script reverting it.
    """

    version: int
    description: str
    up_sql: str
    down_sql: str


MIGRATIONS: list[Migration] = [
    Migration(
        version=1,
        description="Content tables and trending scores",
        up_sql="""
        CREATE TABLE IF NOT EXISTS trends (
            id TEXT PRIMARY KEY,
            trend_name TEXT NOT NULL,
            tweet_count INTEGER NOT NULL DEFAULT 0,
            url TEXT,
            category TEXT NOT NULL DEFAULT 'general',
            fetched_at TEXT NOT NULL,
            created_at TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_trends_fetched_at ON trends(fetched_at DESC);
        CREATE INDEX IF NOT EXISTS idx_trends_category ON trends(category);

        CREATE TABLE IF NOT EXISTS repos (
            id TEXT PRIMARY KEY,
            repo_name TEXT NOT NULL,
            description TEXT,
            stars INTEGER NOT NULL DEFAULT 0,
            language TEXT,
            url TEXT NOT NULL,
            topics TEXT NOT NULL DEFAULT '[]',
            fetched_at TEXT NOT NULL,
            created_at TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_repos_stars ON repos(stars DESC);
        CREATE INDEX IF NOT EXISTS idx_repos_language ON repos(language);

        CREATE TABLE IF NOT EXISTS knowledge_entries (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            content TEXT NOT NULL,
            source TEXT NOT NULL,
            source_url TEXT,
            category TEXT NOT NULL DEFAULT 'general',
            tags TEXT NOT NULL DEFAULT '[]',
            relevance_score INTEGER NOT NULL DEFAULT 50,
            verified INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_knowledge_relevance
            ON knowledge_entries(relevance_score DESC);
        CREATE INDEX IF NOT EXISTS idx_knowledge_category ON knowledge_entries(category);

        CREATE TABLE IF NOT EXISTS trending_scores (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            item_type TEXT NOT NULL
                CHECK (item_type IN ('trend', 'repo', 'knowledge_entry')),
            item_id TEXT NOT NULL,
            trending_score REAL NOT NULL DEFAULT 0,
            velocity_score REAL NOT NULL DEFAULT 0,
            engagement_score REAL NOT NULL DEFAULT 0,
            recency_score REAL NOT NULL DEFAULT 0,
            calculated_at TEXT NOT NULL,
            metadata TEXT NOT NULL DEFAULT '{}',
            UNIQUE (item_type, item_id)
        );
        CREATE INDEX IF NOT EXISTS idx_trending_scores_score
            ON trending_scores(trending_score DESC);
        """,
        down_sql="""
        DROP TABLE IF EXISTS trending_scores;
        DROP TABLE IF EXISTS knowledge_entries;
        DROP TABLE IF EXISTS repos;
        DROP TABLE IF EXISTS trends;
        """,
    ),
    Migration(
        version=2,
        description="Subscription tiers, rate limit buckets, usage logs, API keys",
        up_sql=f"""
        CREATE TABLE IF NOT EXISTS subscription_tiers (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            tier_name TEXT NOT NULL UNIQUE,
            hourly_limit INTEGER NOT NULL,
            daily_limit INTEGER NOT NULL,
            price_monthly REAL NOT NULL DEFAULT 0,
            features TEXT NOT NULL DEFAULT '{{}}',
            created_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS subscriptions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            caller_id TEXT NOT NULL,
            tier_id INTEGER NOT NULL,
            status TEXT NOT NULL DEFAULT 'active'
                CHECK (status IN ('active', 'canceled', 'expired', 'past_due')),
            current_period_start TEXT,
            current_period_end TEXT,
            created_at TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_subscriptions_caller ON subscriptions(caller_id);

        CREATE TABLE IF NOT EXISTS rate_limit_buckets (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            caller_id TEXT NOT NULL,
            date TEXT NOT NULL,
            hour INTEGER NOT NULL CHECK (hour >= 0 AND hour <= 23),
            hourly_count INTEGER NOT NULL DEFAULT 0,
            daily_count INTEGER NOT NULL DEFAULT 0,
            updated_at TEXT NOT NULL,
            UNIQUE (caller_id, date, hour)
        );

        CREATE TABLE IF NOT EXISTS api_usage_logs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            caller_id TEXT NOT NULL,
            endpoint TEXT NOT NULL,
            method TEXT NOT NULL,
            response_status INTEGER NOT NULL,
            rate_limit_remaining INTEGER NOT NULL,
            created_at TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_usage_logs_caller
            ON api_usage_logs(caller_id, created_at DESC);

        CREATE TABLE IF NOT EXISTS api_keys (
            key_hash TEXT PRIMARY KEY,
            caller_id TEXT NOT NULL,
            label TEXT,
            revoked INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL
        );

        INSERT OR IGNORE INTO subscription_tiers
            (tier_name, hourly_limit, daily_limit, price_monthly, features, created_at)
        VALUES
            ('free', 10, 100, 0,
             '{{"trends_access": true, "github_access": true, "email_notifications": false, "api_access": false, "priority_refresh": false, "advanced_analytics": false, "description": "Perfect for trying out the platform"}}',
             {_NOW_SQL}),
            ('pro', 100, 1000, 19.99,
             '{{"trends_access": true, "github_access": true, "email_notifications": true, "api_access": true, "priority_refresh": false, "advanced_analytics": true, "description": "For developers and power users"}}',
             {_NOW_SQL}),
            ('enterprise', 500, 5000, 99.99,
             '{{"trends_access": true, "github_access": true, "email_notifications": true, "api_access": true, "priority_refresh": true, "advanced_analytics": true, "custom_integrations": true, "dedicated_support": true, "description": "For teams and organizations"}}',
             {_NOW_SQL});
        """,
        down_sql="""
        DROP TABLE IF EXISTS api_keys;
        DROP TABLE IF EXISTS api_usage_logs;
        DROP TABLE IF EXISTS rate_limit_buckets;
        DROP TABLE IF EXISTS subscriptions;
        DROP TABLE IF EXISTS subscription_tiers;
        """,
    ),
    Migration(
        version=3,
        description="Search history, suggestions and saved searches",
        up_sql=f"""
        CREATE TABLE IF NOT EXISTS search_history (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            caller_id TEXT,
            search_query TEXT NOT NULL,
            filters TEXT NOT NULL DEFAULT '{{}}',
            results_count INTEGER NOT NULL DEFAULT 0,
            search_type TEXT NOT NULL DEFAULT 'unified'
                CHECK (search_type IN ('trends', 'repos', 'knowledge', 'unified')),
            created_at TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_search_history_created
            ON search_history(created_at DESC);
        CREATE INDEX IF NOT EXISTS idx_search_history_caller ON search_history(caller_id);

        CREATE TABLE IF NOT EXISTS search_suggestions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            suggestion_text TEXT NOT NULL UNIQUE,
            suggestion_type TEXT NOT NULL DEFAULT 'query'
                CHECK (suggestion_type IN ('query', 'tag', 'category', 'source')),
            usage_count INTEGER NOT NULL DEFAULT 0,
            last_used_at TEXT NOT NULL,
            created_at TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_search_suggestions_usage
            ON search_suggestions(usage_count DESC);

        CREATE TABLE IF NOT EXISTS saved_searches (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            caller_id TEXT NOT NULL,
            name TEXT NOT NULL,
            search_query TEXT NOT NULL,
            filters TEXT NOT NULL DEFAULT '{{}}',
            search_type TEXT NOT NULL DEFAULT 'unified'
                CHECK (search_type IN ('trends', 'repos', 'knowledge', 'unified')),
            is_active INTEGER NOT NULL DEFAULT 1,
            notification_enabled INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_saved_searches_caller ON saved_searches(caller_id);

        INSERT OR IGNORE INTO search_suggestions
            (suggestion_text, suggestion_type, usage_count, last_used_at, created_at)
        VALUES
            ('trending', 'query', 100, {_NOW_SQL}, {_NOW_SQL}),
            ('popular', 'query', 80, {_NOW_SQL}, {_NOW_SQL}),
            ('javascript', 'tag', 150, {_NOW_SQL}, {_NOW_SQL}),
            ('python', 'tag', 140, {_NOW_SQL}, {_NOW_SQL}),
            ('react', 'tag', 130, {_NOW_SQL}, {_NOW_SQL}),
            ('ai', 'tag', 200, {_NOW_SQL}, {_NOW_SQL}),
            ('machine learning', 'tag', 180, {_NOW_SQL}, {_NOW_SQL}),
            ('web development', 'tag', 120, {_NOW_SQL}, {_NOW_SQL}),
            ('technology', 'category', 90, {_NOW_SQL}, {_NOW_SQL}),
            ('general', 'category', 60, {_NOW_SQL}, {_NOW_SQL});
        """,
        down_sql="""
        DROP TABLE IF EXISTS saved_searches;
        DROP TABLE IF EXISTS search_suggestions;
        DROP TABLE IF EXISTS search_history;
        """,
    ),
    Migration(
        version=4,
        description="Job leases and change events",
        up_sql="""
        CREATE TABLE IF NOT EXISTS job_locks (
            job_name TEXT PRIMARY KEY,
            owner TEXT NOT NULL,
            acquired_at TEXT NOT NULL,
            expires_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS change_events (
            seq INTEGER PRIMARY KEY AUTOINCREMENT,
            topic TEXT NOT NULL,
            item_type TEXT NOT NULL,
            item_id TEXT NOT NULL,
            created_at TEXT NOT NULL
        );
        """,
        down_sql="""
        DROP TABLE IF EXISTS change_events;
        DROP TABLE IF EXISTS job_locks;
        """,
    ),
]

CURRENT_VERSION = MIGRATIONS[-1].version


def get_migrations_to_apply(current_version: int) -> list[Migration]:
    """Get the migrations newer than a version.

    Args:
        current_version: Version currently recorded in the database.

    Returns:
        Pending migrations in ascending order.
    """
    return [m for m in MIGRATIONS if m.version > current_version]


class MigrationManager:
    """Applies and rolls back schema migrations on a connection."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialize the manager.

        Args:
            conn: Open SQLite connection.
        """
        self._conn = conn
        self._log = logger.bind(component="store", subcomponent="migrations")

    def ensure_version_table(self) -> None:
        """Create the schema_version table if it does not exist."""
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                description TEXT NOT NULL,
                applied_at TEXT NOT NULL
            );
            """
        )

    def get_current_version(self) -> int:
        """Get the highest applied version, 0 if none."""
        self.ensure_version_table()
        row = self._conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return int(row[0]) if row and row[0] is not None else 0

    def get_applied_migrations(self) -> list[dict[str, object]]:
        """List applied migrations in version order."""
        self.ensure_version_table()
        cursor = self._conn.execute(
            "SELECT version, description, applied_at FROM schema_version ORDER BY version"
        )
        return [
            {"version": row[0], "description": row[1], "applied_at": row[2]}
            for row in cursor.fetchall()
        ]

    def apply_migrations(self) -> list[int]:
        """Apply all pending migrations.

        Returns:
            Versions applied by this call.

        Raises:
            MigrationError: If a migration script fails.
        """
        applied: list[int] = []
        for migration in get_migrations_to_apply(self.get_current_version()):
            try:
                self._conn.executescript(migration.up_sql)
                self._conn.execute(
                    "INSERT INTO schema_version (version, description, applied_at) "
                    "VALUES (?, ?, ?)",
                    (
                        migration.version,
                        migration.description,
                        datetime.now(UTC).isoformat(),
                    ),
                )
                self._conn.commit()
            except sqlite3.Error as e:
                self._log.error(
                    "migration_failed", version=migration.version, error=str(e)
                )
                raise MigrationError(migration.version, str(e)) from e

            self._log.info(
                "migration_applied",
                version=migration.version,
                description=migration.description,
            )
            applied.append(migration.version)
        return applied

    def rollback_to(self, target_version: int) -> list[int]:
        """Roll back migrations newer than a target version.

        Args:
            target_version: Version to end up at (0 removes everything).

        Returns:
            Versions rolled back, newest first.

        Raises:
            ValueError: If the target version is negative or unknown.
            MigrationError: If a rollback script fails.
        """
        known = {0} | {m.version for m in MIGRATIONS}
        if target_version < 0 or target_version not in known:
            msg = f"Invalid target version: {target_version}"
            raise ValueError(msg)

        current = self.get_current_version()
        rolled_back: list[int] = []
        for migration in reversed(MIGRATIONS):
            if migration.version <= target_version or migration.version > current:
                continue
            try:
                self._conn.executescript(migration.down_sql)
                self._conn.execute(
                    "DELETE FROM schema_version WHERE version = ?",
                    (migration.version,),
                )
                self._conn.commit()
            except sqlite3.Error as e:
                raise MigrationError(migration.version, str(e)) from e

            self._log.info("migration_rolled_back", version=migration.version)
            rolled_back.append(migration.version)
        return rolled_back
