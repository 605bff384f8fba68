"""Compile QuerySpec objects into SQLite statements."""

import json
from datetime import datetime
from typing import Any

from src.store.errors import QueryCompileError
from src.store.models import to_db_timestamp
from src.store.query import Eq, Gte, In, Lte, Overlaps, Predicate, QuerySpec


# Columns each table exposes to retrieval queries. Anything else is rejected
# so that column names can be interpolated safely.
QUERYABLE_COLUMNS: dict[str, frozenset[str]] = {
    "trends": frozenset(
        {"id", "trend_name", "tweet_count", "url", "category", "fetched_at"}
    ),
    "repos": frozenset(
        {"id", "repo_name", "description", "stars", "language", "url", "topics", "fetched_at"}
    ),
    "knowledge_entries": frozenset(
        {
            "id",
            "title",
            "content",
            "source",
            "source_url",
            "category",
            "tags",
            "relevance_score",
            "verified",
            "created_at",
        }
    ),
}

# Columns holding JSON arrays, the only valid targets of Overlaps
ARRAY_COLUMNS: frozenset[tuple[str, str]] = frozenset(
    {("repos", "topics"), ("knowledge_entries", "tags")}
)


def _param(value: Any) -> Any:
    """Convert a Python value to a SQLite parameter."""
    if isinstance(value, datetime):
        return to_db_timestamp(value)
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    return value


class SqlCompiler:
    """Compiles a QuerySpec into a parameterized SELECT."""

    def compile(self, spec: QuerySpec) -> tuple[str, list[Any]]:
        """Compile a spec.

        Args:
            spec: The query description.

        Returns:
            Tuple of (SQL text, parameters).

        Raises:
            QueryCompileError: If the spec names an unknown table or column.
        """
        columns = QUERYABLE_COLUMNS.get(spec.table)
        if columns is None:
            raise QueryCompileError(f"Unknown table: {spec.table}")

        clauses: list[str] = []
        params: list[Any] = []

        for predicate in spec.predicates:
            clause, clause_params = self._compile_predicate(spec.table, predicate)
            clauses.append(clause)
            params.extend(clause_params)

        sql = f"SELECT * FROM {spec.table}"  # noqa: S608
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)

        order_parts: list[str] = []
        for order in spec.order_by:
            self._check_column(spec.table, order.column)
            direction = "DESC" if order.descending else "ASC"
            order_parts.append(f"{order.column} {direction}")
        # rowid keeps equal sort keys in insertion order
        order_parts.append("rowid ASC")
        sql += " ORDER BY " + ", ".join(order_parts)

        if spec.limit is not None:
            sql += " LIMIT ?"
            params.append(spec.limit)

        return sql, params

    def _check_column(self, table: str, column: str) -> None:
        if column not in QUERYABLE_COLUMNS[table]:
            raise QueryCompileError(f"Unknown column {column!r} for table {table}")

    def _compile_predicate(
        self, table: str, predicate: Predicate
    ) -> tuple[str, list[Any]]:
        self._check_column(table, predicate.column)
        column = predicate.column

        if isinstance(predicate, Eq):
            return f"{column} = ?", [_param(predicate.value)]

        if isinstance(predicate, Gte):
            return f"{column} >= ?", [_param(predicate.value)]

        if isinstance(predicate, Lte):
            return f"{column} <= ?", [_param(predicate.value)]

        if isinstance(predicate, In):
            if not predicate.values:
                return "0", []
            placeholders = ", ".join("?" for _ in predicate.values)
            return (
                f"{column} IN ({placeholders})",
                [_param(v) for v in predicate.values],
            )

        if isinstance(predicate, Overlaps):
            if (table, column) not in ARRAY_COLUMNS:
                raise QueryCompileError(
                    f"Column {column!r} of {table} is not an array column"
                )
            if not predicate.values:
                return "0", []
            placeholders = ", ".join("?" for _ in predicate.values)
            return (
                f"EXISTS (SELECT 1 FROM json_each({table}.{column}) "
                f"WHERE json_each.value IN ({placeholders}))",
                [_param(v) for v in predicate.values],
            )

        raise QueryCompileError(f"Unsupported predicate: {type(predicate).__name__}")
