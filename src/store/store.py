"""SQLite search store implementation."""

import sqlite3
import time
import uuid
from collections.abc import Generator, Iterator, Sequence
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any

import structlog

from src.store.compiler import SqlCompiler
from src.store.errors import (
    ConnectionError as StoreConnectionError,
    StoreUnavailableError,
)
from src.store.metrics import StoreMetrics, TransactionContext
from src.store.migrations import CURRENT_VERSION, MigrationManager
from src.store.models import (
    ChangeEvent,
    ContentRecord,
    ItemType,
    KnowledgeEntry,
    RateLimitBucket,
    Repo,
    SavedSearch,
    SearchHistoryEntry,
    SearchSuggestion,
    Subscription,
    SubscriptionStatus,
    SubscriptionTier,
    Trend,
    TrendingScore,
    UsageLogEntry,
    dump_json,
    from_db_timestamp,
    load_json,
    to_db_timestamp,
    utc_now,
)
from src.store.query import QuerySpec


logger = structlog.get_logger()

# Seconds a writer waits for the database lock before failing
BUSY_TIMEOUT_SECONDS = 10.0

# SQLite host parameter chunk size for IN (...) lookups
_IN_CHUNK = 500

TABLE_FOR_TYPE: dict[ItemType, str] = {
    ItemType.TREND: "trends",
    ItemType.REPO: "repos",
    ItemType.KNOWLEDGE_ENTRY: "knowledge_entries",
}


def _row_to_trend(row: sqlite3.Row) -> Trend:
    return Trend(
        id=row["id"],
        trend_name=row["trend_name"],
        tweet_count=row["tweet_count"],
        url=row["url"],
        category=row["category"],
        fetched_at=from_db_timestamp(row["fetched_at"]),
        created_at=from_db_timestamp(row["created_at"]),
    )


def _row_to_repo(row: sqlite3.Row) -> Repo:
    return Repo(
        id=row["id"],
        repo_name=row["repo_name"],
        description=row["description"],
        stars=row["stars"],
        language=row["language"],
        url=row["url"],
        topics=load_json(row["topics"], []),
        fetched_at=from_db_timestamp(row["fetched_at"]),
        created_at=from_db_timestamp(row["created_at"]),
    )


def _row_to_knowledge(row: sqlite3.Row) -> KnowledgeEntry:
    return KnowledgeEntry(
        id=row["id"],
        title=row["title"],
        content=row["content"],
        source=row["source"],
        source_url=row["source_url"],
        category=row["category"],
        tags=load_json(row["tags"], []),
        relevance_score=row["relevance_score"],
        verified=bool(row["verified"]),
        created_at=from_db_timestamp(row["created_at"]),
        updated_at=from_db_timestamp(row["updated_at"]),
    )


_ROW_CONVERTERS = {
    "trends": _row_to_trend,
    "repos": _row_to_repo,
    "knowledge_entries": _row_to_knowledge,
}


def _row_to_score(row: sqlite3.Row) -> TrendingScore:
    return TrendingScore(
        item_type=ItemType(row["item_type"]),
        item_id=row["item_id"],
        trending_score=row["trending_score"],
        velocity_score=row["velocity_score"],
        engagement_score=row["engagement_score"],
        recency_score=row["recency_score"],
        calculated_at=from_db_timestamp(row["calculated_at"]),
        metadata=load_json(row["metadata"], {}),
    )


def _row_to_bucket(row: sqlite3.Row) -> RateLimitBucket:
    return RateLimitBucket(
        caller_id=row["caller_id"],
        date=date.fromisoformat(row["date"]),
        hour=row["hour"],
        hourly_count=row["hourly_count"],
        daily_count=row["daily_count"],
    )


def _row_to_tier(row: sqlite3.Row) -> SubscriptionTier:
    return SubscriptionTier(
        name=row["tier_name"],
        hourly_limit=row["hourly_limit"],
        daily_limit=row["daily_limit"],
        price_monthly=row["price_monthly"],
        features=load_json(row["features"], {}),
    )


def _row_to_saved_search(row: sqlite3.Row) -> SavedSearch:
    return SavedSearch(
        id=row["id"],
        caller_id=row["caller_id"],
        name=row["name"],
        search_query=row["search_query"],
        filters=load_json(row["filters"], {}),
        search_type=row["search_type"],
        is_active=bool(row["is_active"]),
        notification_enabled=bool(row["notification_enabled"]),
        created_at=from_db_timestamp(row["created_at"]),
    )


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _optional_ts(value: datetime | None) -> str | None:
    return to_db_timestamp(value) if value is not None else None


class SearchStore:
    """SQLite store backing search, trending scores and quotas.

    One instance owns one connection. The connection runs in autocommit
    mode and every write goes through ``_transaction``, which opens a
    ``BEGIN IMMEDIATE`` transaction so that read-decide-write sequences
    are serialized across processes. Retrieval queries issued from worker
    threads use their own short-lived read connections.
    """

    def __init__(
        self,
        db_path: Path | str,
        run_id: str | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file.
            run_id: Optional identifier for logging context.
        """
        self._db_path = Path(db_path) if isinstance(db_path, str) else db_path
        self._run_id = run_id or str(uuid.uuid4())
        self._conn: sqlite3.Connection | None = None
        self._compiler = SqlCompiler()
        self._metrics = StoreMetrics.get_instance()
        self._log = logger.bind(
            component="store",
            run_id=self._run_id,
            db_path=str(self._db_path),
        )

    @property
    def db_path(self) -> Path:
        """Get the database path."""
        return self._db_path

    @property
    def run_id(self) -> str:
        """Get the logging run ID."""
        return self._run_id

    @property
    def is_connected(self) -> bool:
        """Check if connected to database."""
        return self._conn is not None

    def connect(self) -> None:
        """Open the connection and apply migrations.

        Creates the database file and parent directories if they don't exist.

        Raises:
            StoreUnavailableError: If the database cannot be opened.
        """
        if self._conn is not None:
            return

        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._log.debug("connecting_to_database")

        try:
            conn = self._open_connection()
            migration_mgr = MigrationManager(conn)
            old_version = migration_mgr.get_current_version()
            applied = migration_mgr.apply_migrations()
        except sqlite3.Error as e:
            self._log.error("database_unavailable", error=str(e))
            raise StoreUnavailableError() from e

        self._conn = conn
        self._log.debug(
            "database_connected",
            old_version=old_version,
            new_version=CURRENT_VERSION,
            migrations_applied=applied,
        )

    def _open_connection(self) -> sqlite3.Connection:
        # check_same_thread is off because an API request hands the
        # connection from the middleware to the route worker thread; use
        # stays sequential.
        conn = sqlite3.connect(
            str(self._db_path),
            timeout=BUSY_TIMEOUT_SECONDS,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            self._log.debug("database_closed")

    def __enter__(self) -> "SearchStore":
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Context manager exit."""
        self.close()

    def _ensure_connected(self) -> sqlite3.Connection:
        """Ensure database is connected.

        Returns:
            The database connection.

        Raises:
            StoreConnectionError: If not connected.
        """
        if self._conn is None:
            raise StoreConnectionError("Database not connected. Call connect() first.")
        return self._conn

    @contextmanager
    def _transaction(self, operation: str) -> Generator[TransactionContext]:
        """Context manager for write transactions with timing and logging.

        Joins an already open transaction instead of nesting.

        Args:
            operation: Name of the operation for logging.

        Yields:
            Transaction context with timing information.
        """
        conn = self._ensure_connected()
        tx_id = str(uuid.uuid4())[:8]
        start_ns = time.perf_counter_ns()
        ctx = TransactionContext(
            tx_id=tx_id,
            start_time_ns=start_ns,
            operation=operation,
            nested=conn.in_transaction,
        )

        if ctx.nested:
            yield ctx
            return

        conn.execute("BEGIN IMMEDIATE")
        self._log.debug("transaction_started", tx_id=tx_id, op=operation)

        try:
            yield ctx
            conn.commit()
        except BaseException:
            conn.rollback()
            self._metrics.record_tx_failure()
            self._log.warning(
                "transaction_failed",
                tx_id=tx_id,
                op=operation,
                duration_ms=round((time.perf_counter_ns() - start_ns) / 1_000_000, 2),
            )
            raise

        duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
        self._metrics.record_tx_duration(duration_ms)
        self._log.debug(
            "transaction_complete",
            tx_id=tx_id,
            op=operation,
            affected_rows=ctx.affected_rows,
            duration_ms=round(duration_ms, 2),
        )

    @contextmanager
    def atomic(self, operation: str) -> Generator[TransactionContext]:
        """Group several store calls into one write transaction.

        The write lock is taken up front, so reads made inside the block
        see a state no other writer can change until it exits.

        Args:
            operation: Name of the operation for logging.

        Yields:
            Transaction context.
        """
        with self._transaction(operation) as ctx:
            yield ctx

    @contextmanager
    def _reader(self) -> Generator[sqlite3.Connection]:
        """Open a short-lived read connection usable from any thread."""
        conn = sqlite3.connect(str(self._db_path), timeout=BUSY_TIMEOUT_SECONDS)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def get_schema_version(self) -> int:
        """Get the current schema version."""
        return MigrationManager(self._ensure_connected()).get_current_version()

    # ===== Content (ingestion side) =====

    def insert_trend(self, trend: Trend) -> Trend:
        """Insert a trend row and publish its change event."""
        with self._transaction("insert_trend") as ctx:
            conn = self._ensure_connected()
            conn.execute(
                """
                INSERT INTO trends (id, trend_name, tweet_count, url, category,
                                    fetched_at, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    trend.id,
                    trend.trend_name,
                    trend.tweet_count,
                    trend.url,
                    trend.category,
                    to_db_timestamp(trend.fetched_at),
                    to_db_timestamp(trend.created_at),
                ),
            )
            ctx.add_affected_rows(1)
            self.append_event(f"{ItemType.TREND.value}.created", ItemType.TREND, trend.id)
        self._metrics.record_content_write()
        return trend

    def insert_repo(self, repo: Repo) -> Repo:
        """Insert a repo row and publish its change event."""
        with self._transaction("insert_repo") as ctx:
            conn = self._ensure_connected()
            conn.execute(
                """
                INSERT INTO repos (id, repo_name, description, stars, language, url,
                                   topics, fetched_at, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    repo.id,
                    repo.repo_name,
                    repo.description,
                    repo.stars,
                    repo.language,
                    repo.url,
                    dump_json(repo.topics),
                    to_db_timestamp(repo.fetched_at),
                    to_db_timestamp(repo.created_at),
                ),
            )
            ctx.add_affected_rows(1)
            self.append_event(f"{ItemType.REPO.value}.created", ItemType.REPO, repo.id)
        self._metrics.record_content_write()
        return repo

    def insert_knowledge_entry(self, entry: KnowledgeEntry) -> KnowledgeEntry:
        """Insert a knowledge entry row and publish its change event."""
        with self._transaction("insert_knowledge_entry") as ctx:
            conn = self._ensure_connected()
            conn.execute(
                """
                INSERT INTO knowledge_entries (id, title, content, source, source_url,
                                               category, tags, relevance_score,
                                               verified, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.id,
                    entry.title,
                    entry.content,
                    entry.source,
                    entry.source_url,
                    entry.category,
                    dump_json(entry.tags),
                    entry.relevance_score,
                    1 if entry.verified else 0,
                    to_db_timestamp(entry.created_at),
                    to_db_timestamp(entry.updated_at),
                ),
            )
            ctx.add_affected_rows(1)
            self.append_event(
                f"{ItemType.KNOWLEDGE_ENTRY.value}.created",
                ItemType.KNOWLEDGE_ENTRY,
                entry.id,
            )
        self._metrics.record_content_write()
        return entry

    def delete_item(self, item_type: ItemType, item_id: str) -> bool:
        """Delete a content row, leaving any cached score orphaned.

        Returns:
            True if a row was deleted.
        """
        table = TABLE_FOR_TYPE[item_type]
        with self._transaction("delete_item") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                f"DELETE FROM {table} WHERE id = ?",  # noqa: S608
                (item_id,),
            )
            ctx.add_affected_rows(cursor.rowcount)
            if cursor.rowcount:
                self.append_event(f"{item_type.value}.deleted", item_type, item_id)
        return cursor.rowcount > 0

    def get_item(self, item_type: ItemType, item_id: str) -> ContentRecord | None:
        """Get one content row by type and id."""
        table = TABLE_FOR_TYPE[item_type]
        conn = self._ensure_connected()
        row = conn.execute(
            f"SELECT * FROM {table} WHERE id = ?",  # noqa: S608
            (item_id,),
        ).fetchone()
        if row is None:
            return None
        return _ROW_CONVERTERS[table](row)

    def iter_records(self, spec: QuerySpec) -> Iterator[ContentRecord]:
        """Stream content records matching a query description.

        Runs on a private read connection, so it is safe to call from a
        worker thread. Rows are converted lazily.

        Args:
            spec: Query description for one content table.

        Yields:
            Trend, Repo or KnowledgeEntry records in the spec's order.
        """
        if spec.empty:
            return
        sql, params = self._compiler.compile(spec)
        convert = _ROW_CONVERTERS[spec.table]
        with self._reader() as conn:
            for row in conn.execute(sql, params):
                yield convert(row)

    # ===== Trending scores =====

    def upsert_trending_score(self, score: TrendingScore) -> None:
        """Insert or replace the score for ``(item_type, item_id)``."""
        with self._transaction("upsert_trending_score") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                """
                INSERT INTO trending_scores (item_type, item_id, trending_score,
                                             velocity_score, engagement_score,
                                             recency_score, calculated_at, metadata)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (item_type, item_id) DO UPDATE SET
                    trending_score = excluded.trending_score,
                    velocity_score = excluded.velocity_score,
                    engagement_score = excluded.engagement_score,
                    recency_score = excluded.recency_score,
                    calculated_at = excluded.calculated_at,
                    metadata = excluded.metadata
                """,
                (
                    score.item_type.value,
                    score.item_id,
                    score.trending_score,
                    score.velocity_score,
                    score.engagement_score,
                    score.recency_score,
                    to_db_timestamp(score.calculated_at),
                    dump_json(score.metadata),
                ),
            )
            ctx.add_affected_rows(cursor.rowcount)

    def get_trending_score(
        self, item_type: ItemType, item_id: str
    ) -> TrendingScore | None:
        """Get the cached score of one item."""
        conn = self._ensure_connected()
        row = conn.execute(
            "SELECT * FROM trending_scores WHERE item_type = ? AND item_id = ?",
            (item_type.value, item_id),
        ).fetchone()
        return _row_to_score(row) if row else None

    def get_trending_scores(
        self, item_type: ItemType, item_ids: Sequence[str]
    ) -> dict[str, TrendingScore]:
        """Get cached scores for many items of one type, keyed by item id."""
        conn = self._ensure_connected()
        scores: dict[str, TrendingScore] = {}
        ids = list(dict.fromkeys(item_ids))
        for start in range(0, len(ids), _IN_CHUNK):
            chunk = ids[start : start + _IN_CHUNK]
            placeholders = ", ".join("?" for _ in chunk)
            cursor = conn.execute(
                f"SELECT * FROM trending_scores WHERE item_type = ? "  # noqa: S608
                f"AND item_id IN ({placeholders})",
                (item_type.value, *chunk),
            )
            for row in cursor:
                scores[row["item_id"]] = _row_to_score(row)
        return scores

    def top_trending_scores(
        self, item_type: ItemType | None, limit: int
    ) -> list[TrendingScore]:
        """Highest scores whose item still exists, best first."""
        conn = self._ensure_connected()
        live_clauses = [
            f"(ts.item_type = '{t.value}' AND EXISTS "
            f"(SELECT 1 FROM {table} c WHERE c.id = ts.item_id))"
            for t, table in TABLE_FOR_TYPE.items()
        ]
        sql = f"SELECT ts.* FROM trending_scores ts WHERE ({' OR '.join(live_clauses)})"  # noqa: S608
        params: list[Any] = []
        if item_type is not None:
            sql += " AND ts.item_type = ?"
            params.append(item_type.value)
        sql += " ORDER BY ts.trending_score DESC, ts.id ASC LIMIT ?"
        params.append(limit)
        return [_row_to_score(row) for row in conn.execute(sql, params)]

    # ===== Job leases =====

    def acquire_job_lock(
        self, job_name: str, owner: str, now: datetime, ttl_seconds: int
    ) -> bool:
        """Take or renew a named lease.

        Returns:
            True if the caller now holds the lease, False if another
            owner holds an unexpired one.
        """
        with self._transaction("acquire_job_lock") as ctx:
            conn = self._ensure_connected()
            row = conn.execute(
                "SELECT owner, expires_at FROM job_locks WHERE job_name = ?",
                (job_name,),
            ).fetchone()
            if (
                row is not None
                and row["owner"] != owner
                and from_db_timestamp(row["expires_at"]) > now
            ):
                return False
            conn.execute(
                """
                INSERT INTO job_locks (job_name, owner, acquired_at, expires_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (job_name) DO UPDATE SET
                    owner = excluded.owner,
                    acquired_at = excluded.acquired_at,
                    expires_at = excluded.expires_at
                """,
                (
                    job_name,
                    owner,
                    to_db_timestamp(now),
                    to_db_timestamp(now + timedelta(seconds=ttl_seconds)),
                ),
            )
            ctx.add_affected_rows(1)
        return True

    def release_job_lock(self, job_name: str, owner: str) -> bool:
        """Release a lease held by ``owner``."""
        with self._transaction("release_job_lock") as ctx:
            cursor = self._ensure_connected().execute(
                "DELETE FROM job_locks WHERE job_name = ? AND owner = ?",
                (job_name, owner),
            )
            ctx.add_affected_rows(cursor.rowcount)
        return cursor.rowcount > 0

    # ===== Tiers and subscriptions =====

    def get_tier_by_name(self, name: str) -> SubscriptionTier | None:
        """Get a tier by its unique name."""
        row = self._ensure_connected().execute(
            "SELECT * FROM subscription_tiers WHERE tier_name = ?", (name,)
        ).fetchone()
        return _row_to_tier(row) if row else None

    def get_tier_by_id(self, tier_id: int) -> SubscriptionTier | None:
        """Get a tier by row id."""
        row = self._ensure_connected().execute(
            "SELECT * FROM subscription_tiers WHERE id = ?", (tier_id,)
        ).fetchone()
        return _row_to_tier(row) if row else None

    def upsert_tier(self, tier: SubscriptionTier) -> None:
        """Create or update a tier by name."""
        with self._transaction("upsert_tier") as ctx:
            cursor = self._ensure_connected().execute(
                """
                INSERT INTO subscription_tiers (tier_name, hourly_limit, daily_limit,
                                                price_monthly, features, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT (tier_name) DO UPDATE SET
                    hourly_limit = excluded.hourly_limit,
                    daily_limit = excluded.daily_limit,
                    price_monthly = excluded.price_monthly,
                    features = excluded.features
                """,
                (
                    tier.name,
                    tier.hourly_limit,
                    tier.daily_limit,
                    tier.price_monthly,
                    dump_json(tier.features),
                    to_db_timestamp(utc_now()),
                ),
            )
            ctx.add_affected_rows(cursor.rowcount)

    def delete_tier(self, name: str) -> bool:
        """Delete a tier row; subscriptions pointing at it are left as is."""
        with self._transaction("delete_tier") as ctx:
            cursor = self._ensure_connected().execute(
                "DELETE FROM subscription_tiers WHERE tier_name = ?", (name,)
            )
            ctx.add_affected_rows(cursor.rowcount)
        return cursor.rowcount > 0

    def create_subscription(
        self,
        caller_id: str,
        tier_name: str,
        *,
        status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
        period_start: datetime | None = None,
        period_end: datetime | None = None,
    ) -> Subscription:
        """Bind a caller to a tier.

        Raises:
            KeyError: If the tier does not exist.
        """
        conn = self._ensure_connected()
        with self._transaction("create_subscription") as ctx:
            tier_row = conn.execute(
                "SELECT id FROM subscription_tiers WHERE tier_name = ?", (tier_name,)
            ).fetchone()
            if tier_row is None:
                raise KeyError(tier_name)
            cursor = conn.execute(
                """
                INSERT INTO subscriptions (caller_id, tier_id, status,
                                           current_period_start, current_period_end,
                                           created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    caller_id,
                    tier_row["id"],
                    status.value,
                    _optional_ts(period_start),
                    _optional_ts(period_end),
                    to_db_timestamp(utc_now()),
                ),
            )
            ctx.add_affected_rows(1)
            subscription_id = cursor.lastrowid
        return Subscription(
            id=subscription_id,
            caller_id=caller_id,
            tier_id=tier_row["id"],
            status=status,
            current_period_start=period_start,
            current_period_end=period_end,
        )

    def get_active_subscription(
        self, caller_id: str, now: datetime
    ) -> tuple[Subscription, SubscriptionTier | None] | None:
        """Get the caller's newest active subscription and its tier.

        The tier is None when the referenced tier row no longer exists.
        """
        conn = self._ensure_connected()
        row = conn.execute(
            """
            SELECT * FROM subscriptions
            WHERE caller_id = ? AND status = 'active'
              AND (current_period_end IS NULL OR current_period_end > ?)
            ORDER BY created_at DESC, id DESC
            LIMIT 1
            """,
            (caller_id, to_db_timestamp(now)),
        ).fetchone()
        if row is None:
            return None
        subscription = Subscription(
            id=row["id"],
            caller_id=row["caller_id"],
            tier_id=row["tier_id"],
            status=SubscriptionStatus(row["status"]),
            current_period_start=(
                from_db_timestamp(row["current_period_start"])
                if row["current_period_start"]
                else None
            ),
            current_period_end=(
                from_db_timestamp(row["current_period_end"])
                if row["current_period_end"]
                else None
            ),
        )
        return subscription, self.get_tier_by_id(row["tier_id"])

    # ===== Rate limit buckets =====

    def get_bucket(
        self, caller_id: str, bucket_date: date, hour: int
    ) -> RateLimitBucket | None:
        """Get the bucket for one caller hour."""
        row = self._ensure_connected().execute(
            """
            SELECT * FROM rate_limit_buckets
            WHERE caller_id = ? AND date = ? AND hour = ?
            """,
            (caller_id, bucket_date.isoformat(), hour),
        ).fetchone()
        return _row_to_bucket(row) if row else None

    def get_latest_bucket_before(
        self, caller_id: str, bucket_date: date, hour: int
    ) -> RateLimitBucket | None:
        """Get the latest bucket of the same date earlier than ``hour``."""
        row = self._ensure_connected().execute(
            """
            SELECT * FROM rate_limit_buckets
            WHERE caller_id = ? AND date = ? AND hour < ?
            ORDER BY hour DESC
            LIMIT 1
            """,
            (caller_id, bucket_date.isoformat(), hour),
        ).fetchone()
        return _row_to_bucket(row) if row else None

    def list_buckets(self, caller_id: str, bucket_date: date) -> list[RateLimitBucket]:
        """List the caller's buckets of one date in hour order."""
        cursor = self._ensure_connected().execute(
            """
            SELECT * FROM rate_limit_buckets
            WHERE caller_id = ? AND date = ?
            ORDER BY hour ASC
            """,
            (caller_id, bucket_date.isoformat()),
        )
        return [_row_to_bucket(row) for row in cursor]

    def increment_bucket(
        self, caller_id: str, bucket_date: date, hour: int, now: datetime
    ) -> RateLimitBucket:
        """Count one call in the caller's hour bucket.

        A missing bucket is created with daily_count seeded from the latest
        earlier bucket of the same date.

        Returns:
            The bucket after the increment.
        """
        conn = self._ensure_connected()
        with self._transaction("increment_bucket") as ctx:
            existing = self.get_bucket(caller_id, bucket_date, hour)
            if existing is not None:
                conn.execute(
                    """
                    UPDATE rate_limit_buckets
                    SET hourly_count = hourly_count + 1,
                        daily_count = daily_count + 1,
                        updated_at = ?
                    WHERE caller_id = ? AND date = ? AND hour = ?
                    """,
                    (to_db_timestamp(now), caller_id, bucket_date.isoformat(), hour),
                )
                bucket = existing.model_copy(
                    update={
                        "hourly_count": existing.hourly_count + 1,
                        "daily_count": existing.daily_count + 1,
                    }
                )
            else:
                prior = self.get_latest_bucket_before(caller_id, bucket_date, hour)
                daily = (prior.daily_count if prior else 0) + 1
                conn.execute(
                    """
                    INSERT INTO rate_limit_buckets (caller_id, date, hour,
                                                    hourly_count, daily_count,
                                                    updated_at)
                    VALUES (?, ?, ?, 1, ?, ?)
                    """,
                    (
                        caller_id,
                        bucket_date.isoformat(),
                        hour,
                        daily,
                        to_db_timestamp(now),
                    ),
                )
                bucket = RateLimitBucket(
                    caller_id=caller_id,
                    date=bucket_date,
                    hour=hour,
                    hourly_count=1,
                    daily_count=daily,
                )
            ctx.add_affected_rows(1)
        return bucket

    # ===== Usage logs =====

    def insert_usage_log(
        self,
        caller_id: str,
        endpoint: str,
        method: str,
        response_status: int,
        remaining: int,
        now: datetime,
    ) -> None:
        """Append one usage record."""
        with self._transaction("insert_usage_log") as ctx:
            self._ensure_connected().execute(
                """
                INSERT INTO api_usage_logs (caller_id, endpoint, method,
                                            response_status, rate_limit_remaining,
                                            created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    caller_id,
                    endpoint,
                    method,
                    response_status,
                    remaining,
                    to_db_timestamp(now),
                ),
            )
            ctx.add_affected_rows(1)

    def recent_usage_logs(self, caller_id: str, limit: int) -> list[UsageLogEntry]:
        """Most recent usage records of a caller, newest first."""
        cursor = self._ensure_connected().execute(
            """
            SELECT * FROM api_usage_logs
            WHERE caller_id = ?
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            (caller_id, limit),
        )
        return [
            UsageLogEntry(
                id=row["id"],
                caller_id=row["caller_id"],
                endpoint=row["endpoint"],
                method=row["method"],
                response_status=row["response_status"],
                rate_limit_remaining=row["rate_limit_remaining"],
                created_at=from_db_timestamp(row["created_at"]),
            )
            for row in cursor
        ]

    # ===== API keys =====

    def insert_api_key(self, key_hash: str, caller_id: str, label: str | None) -> None:
        """Store a hashed API key for a caller."""
        with self._transaction("insert_api_key") as ctx:
            self._ensure_connected().execute(
                """
                INSERT INTO api_keys (key_hash, caller_id, label, revoked, created_at)
                VALUES (?, ?, ?, 0, ?)
                """,
                (key_hash, caller_id, label, to_db_timestamp(utc_now())),
            )
            ctx.add_affected_rows(1)

    def get_caller_for_key(self, key_hash: str) -> str | None:
        """Resolve a hashed key to its caller, ignoring revoked keys."""
        row = self._ensure_connected().execute(
            "SELECT caller_id FROM api_keys WHERE key_hash = ? AND revoked = 0",
            (key_hash,),
        ).fetchone()
        return row["caller_id"] if row else None

    def revoke_api_key(self, key_hash: str) -> bool:
        """Revoke a key."""
        with self._transaction("revoke_api_key") as ctx:
            cursor = self._ensure_connected().execute(
                "UPDATE api_keys SET revoked = 1 WHERE key_hash = ?", (key_hash,)
            )
            ctx.add_affected_rows(cursor.rowcount)
        return cursor.rowcount > 0

    # ===== Search history and suggestions =====

    def insert_search_history(
        self,
        caller_id: str | None,
        search_query: str,
        filters: dict[str, Any],
        results_count: int,
        search_type: str,
        now: datetime,
    ) -> None:
        """Append one executed query to the history log."""
        with self._transaction("insert_search_history") as ctx:
            self._ensure_connected().execute(
                """
                INSERT INTO search_history (caller_id, search_query, filters,
                                            results_count, search_type, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    caller_id,
                    search_query,
                    dump_json(filters),
                    results_count,
                    search_type,
                    to_db_timestamp(now),
                ),
            )
            ctx.add_affected_rows(1)

    def list_search_history(
        self, caller_id: str | None, limit: int
    ) -> list[SearchHistoryEntry]:
        """History of one caller (or anonymous entries), newest first."""
        if caller_id is None:
            where, params = "caller_id IS NULL", ()
        else:
            where, params = "caller_id = ?", (caller_id,)
        cursor = self._ensure_connected().execute(
            f"SELECT * FROM search_history WHERE {where} "  # noqa: S608
            "ORDER BY created_at DESC, id DESC LIMIT ?",
            (*params, limit),
        )
        return [
            SearchHistoryEntry(
                id=row["id"],
                caller_id=row["caller_id"],
                search_query=row["search_query"],
                filters=load_json(row["filters"], {}),
                results_count=row["results_count"],
                search_type=row["search_type"],
                created_at=from_db_timestamp(row["created_at"]),
            )
            for row in cursor
        ]

    def history_queries_since(self, cutoff: datetime) -> list[str]:
        """Raw query texts recorded at or after ``cutoff``."""
        cursor = self._ensure_connected().execute(
            "SELECT search_query FROM search_history WHERE created_at >= ?",
            (to_db_timestamp(cutoff),),
        )
        return [row["search_query"] for row in cursor]

    def increment_suggestion(self, text: str, now: datetime) -> int:
        """Upsert a suggestion by exact text and bump its usage.

        Returns:
            The usage count after the increment.
        """
        conn = self._ensure_connected()
        with self._transaction("increment_suggestion") as ctx:
            conn.execute(
                """
                INSERT INTO search_suggestions (suggestion_text, suggestion_type,
                                                usage_count, last_used_at, created_at)
                VALUES (?, 'query', 1, ?, ?)
                ON CONFLICT (suggestion_text) DO UPDATE SET
                    usage_count = usage_count + 1,
                    last_used_at = excluded.last_used_at
                """,
                (text, to_db_timestamp(now), to_db_timestamp(now)),
            )
            ctx.add_affected_rows(1)
            row = conn.execute(
                "SELECT usage_count FROM search_suggestions WHERE suggestion_text = ?",
                (text,),
            ).fetchone()
        return int(row["usage_count"])

    def get_suggestion(self, text: str) -> SearchSuggestion | None:
        """Get a suggestion by exact text."""
        row = self._ensure_connected().execute(
            "SELECT * FROM search_suggestions WHERE suggestion_text = ?", (text,)
        ).fetchone()
        return self._row_to_suggestion(row) if row else None

    def search_suggestions(self, prefix: str, limit: int) -> list[SearchSuggestion]:
        """Suggestions starting with ``prefix`` (ASCII case-insensitive)."""
        cursor = self._ensure_connected().execute(
            """
            SELECT * FROM search_suggestions
            WHERE suggestion_text LIKE ? ESCAPE '\\'
            ORDER BY usage_count DESC, suggestion_text ASC
            LIMIT ?
            """,
            (_escape_like(prefix) + "%", limit),
        )
        return [self._row_to_suggestion(row) for row in cursor]

    @staticmethod
    def _row_to_suggestion(row: sqlite3.Row) -> SearchSuggestion:
        return SearchSuggestion(
            suggestion_text=row["suggestion_text"],
            suggestion_type=row["suggestion_type"],
            usage_count=row["usage_count"],
            last_used_at=from_db_timestamp(row["last_used_at"]),
        )

    # ===== Saved searches =====

    def insert_saved_search(
        self,
        caller_id: str,
        name: str,
        search_query: str,
        filters: dict[str, Any],
        search_type: str,
        notification_enabled: bool,
        now: datetime,
    ) -> SavedSearch:
        """Store a named search for a caller."""
        with self._transaction("insert_saved_search") as ctx:
            cursor = self._ensure_connected().execute(
                """
                INSERT INTO saved_searches (caller_id, name, search_query, filters,
                                            search_type, is_active,
                                            notification_enabled, created_at,
                                            updated_at)
                VALUES (?, ?, ?, ?, ?, 1, ?, ?, ?)
                """,
                (
                    caller_id,
                    name,
                    search_query,
                    dump_json(filters),
                    search_type,
                    1 if notification_enabled else 0,
                    to_db_timestamp(now),
                    to_db_timestamp(now),
                ),
            )
            ctx.add_affected_rows(1)
            saved_id = cursor.lastrowid
        return SavedSearch(
            id=saved_id,
            caller_id=caller_id,
            name=name,
            search_query=search_query,
            filters=filters,
            search_type=search_type,
            is_active=True,
            notification_enabled=notification_enabled,
            created_at=now,
        )

    def list_saved_searches(self, caller_id: str) -> list[SavedSearch]:
        """Active saved searches of a caller, newest first."""
        cursor = self._ensure_connected().execute(
            """
            SELECT * FROM saved_searches
            WHERE caller_id = ? AND is_active = 1
            ORDER BY created_at DESC, id DESC
            """,
            (caller_id,),
        )
        return [_row_to_saved_search(row) for row in cursor]

    def deactivate_saved_search(
        self, caller_id: str, saved_id: int, now: datetime
    ) -> bool:
        """Soft-delete a caller's saved search.

        Returns:
            True if an active search owned by the caller was deactivated.
        """
        with self._transaction("deactivate_saved_search") as ctx:
            cursor = self._ensure_connected().execute(
                """
                UPDATE saved_searches SET is_active = 0, updated_at = ?
                WHERE id = ? AND caller_id = ? AND is_active = 1
                """,
                (to_db_timestamp(now), saved_id, caller_id),
            )
            ctx.add_affected_rows(cursor.rowcount)
        return cursor.rowcount > 0

    # ===== Change events =====

    def append_event(self, topic: str, item_type: ItemType, item_id: str) -> int:
        """Append a change event.

        Returns:
            The event's sequence number.
        """
        with self._transaction("append_event") as ctx:
            cursor = self._ensure_connected().execute(
                """
                INSERT INTO change_events (topic, item_type, item_id, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (topic, item_type.value, item_id, to_db_timestamp(utc_now())),
            )
            ctx.add_affected_rows(1)
            seq = cursor.lastrowid
        self._metrics.record_event()
        return int(seq)

    def events_since(self, since: int, limit: int) -> list[ChangeEvent]:
        """Events with a sequence greater than ``since``, oldest first."""
        cursor = self._ensure_connected().execute(
            "SELECT * FROM change_events WHERE seq > ? ORDER BY seq ASC LIMIT ?",
            (since, limit),
        )
        return [
            ChangeEvent(
                seq=row["seq"],
                topic=row["topic"],
                item_type=row["item_type"],
                item_id=row["item_id"],
                created_at=from_db_timestamp(row["created_at"]),
            )
            for row in cursor
        ]

    # ===== Stats =====

    def get_stats(self) -> dict[str, int]:
        """Row counts of the main tables."""
        conn = self._ensure_connected()
        stats: dict[str, int] = {}
        for table in (
            "trends",
            "repos",
            "knowledge_entries",
            "trending_scores",
            "search_history",
            "change_events",
        ):
            row = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()  # noqa: S608
            stats[table] = int(row[0])
        return stats
