"""Unit tests for the QuerySpec to SQL compiler."""

from datetime import UTC, datetime

import pytest

from src.store import Eq, Gte, In, Lte, Overlaps, QueryCompileError, QuerySpec
from src.store.compiler import SqlCompiler


@pytest.fixture
def compiler() -> SqlCompiler:
    """Create a compiler."""
    return SqlCompiler()


class TestSqlCompiler:
    """Tests for SqlCompiler.compile."""

    def test_no_predicates(self, compiler: SqlCompiler) -> None:
        """Test a bare spec selects the whole table in rowid order."""
        sql, params = compiler.compile(QuerySpec(table="trends"))
        assert sql == "SELECT * FROM trends ORDER BY rowid ASC"
        assert params == []

    def test_predicates_joined_with_and(self, compiler: SqlCompiler) -> None:
        """Test predicates are combined with AND in order."""
        spec = (
            QuerySpec(table="repos")
            .where(In("language", ("Python", "Rust")))
            .where(Gte("stars", 10))
        )
        sql, params = compiler.compile(spec)
        assert "WHERE language IN (?, ?) AND stars >= ?" in sql
        assert params == ["Python", "Rust", 10]

    def test_order_and_limit(self, compiler: SqlCompiler) -> None:
        """Test ordering keeps rowid as the final tiebreaker."""
        spec = QuerySpec(table="repos", limit=5).order("stars")
        sql, params = compiler.compile(spec)
        assert sql.endswith("ORDER BY stars DESC, rowid ASC LIMIT ?")
        assert params == [5]

    def test_datetime_parameter_is_fixed_width_utc(self, compiler: SqlCompiler) -> None:
        """Test datetimes compile to the stored timestamp format."""
        spec = QuerySpec(table="trends").where(
            Lte("fetched_at", datetime(2025, 1, 2, 3, 4, 5, tzinfo=UTC))
        )
        _, params = compiler.compile(spec)
        assert params == ["2025-01-02T03:04:05.000000+00:00"]

    def test_bool_parameter(self, compiler: SqlCompiler) -> None:
        """Test booleans compile to integers."""
        spec = QuerySpec(table="knowledge_entries").where(Eq("verified", True))
        sql, params = compiler.compile(spec)
        assert "verified = ?" in sql
        assert params == [1]

    def test_overlaps_uses_json_each(self, compiler: SqlCompiler) -> None:
        """Test array overlap compiles to a json_each membership test."""
        spec = QuerySpec(table="repos").where(Overlaps("topics", ("web",)))
        sql, params = compiler.compile(spec)
        assert "json_each(repos.topics)" in sql
        assert params == ["web"]

    def test_empty_in_matches_nothing(self, compiler: SqlCompiler) -> None:
        """Test an empty allow-list compiles to a false condition."""
        spec = QuerySpec(table="trends").where(In("category", ()))
        sql, params = compiler.compile(spec)
        assert "WHERE 0" in sql
        assert params == []

    def test_unknown_table_rejected(self, compiler: SqlCompiler) -> None:
        """Test unknown tables raise."""
        with pytest.raises(QueryCompileError, match="Unknown table"):
            compiler.compile(QuerySpec(table="api_keys"))

    def test_unknown_column_rejected(self, compiler: SqlCompiler) -> None:
        """Test columns outside the whitelist raise."""
        spec = QuerySpec(table="trends").where(Eq("trend_name; DROP TABLE x", 1))
        with pytest.raises(QueryCompileError, match="Unknown column"):
            compiler.compile(spec)

    def test_overlaps_on_scalar_column_rejected(self, compiler: SqlCompiler) -> None:
        """Test Overlaps is only valid on array columns."""
        spec = QuerySpec(table="repos").where(Overlaps("language", ("Python",)))
        with pytest.raises(QueryCompileError, match="not an array column"):
            compiler.compile(spec)


class TestQuerySpec:
    """Tests for QuerySpec helpers."""

    def test_match_nothing(self) -> None:
        """Test match_nothing marks the spec empty."""
        spec = QuerySpec(table="repos").match_nothing()
        assert spec.empty
