"""Store-agnostic query description.

Retrievers describe what they want as a QuerySpec made of simple
predicates. Each backing store compiles the spec into its own query
language, so the same filter contract works for any store.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Eq:
    """Column equals value."""

    column: str
    value: Any


@dataclass(frozen=True)
class In:
    """Column value is one of the given values."""

    column: str
    values: tuple[Any, ...]


@dataclass(frozen=True)
class Overlaps:
    """Array column shares at least one element with the given values."""

    column: str
    values: tuple[Any, ...]


@dataclass(frozen=True)
class Gte:
    """Column is greater than or equal to value."""

    column: str
    value: Any


@dataclass(frozen=True)
class Lte:
    """Column is less than or equal to value."""

    column: str
    value: Any


Predicate = Eq | In | Overlaps | Gte | Lte


@dataclass(frozen=True)
class OrderBy:
    """Sort instruction."""

    column: str
    descending: bool = True


@dataclass
class QuerySpec:
    """A retrieval request against one table.

    Attributes:
        table: Logical table name.
        predicates: Conjunction of predicates.
        order_by: Sort instructions, applied in order.
        limit: Optional row cap applied by the store.
        empty: When True the spec can match nothing and the store may
            skip execution.
    """

    table: str
    predicates: list[Predicate] = field(default_factory=list)
    order_by: list[OrderBy] = field(default_factory=list)
    limit: int | None = None
    empty: bool = False

    def where(self, predicate: Predicate) -> "QuerySpec":
        """Append a predicate and return self for chaining."""
        self.predicates.append(predicate)
        return self

    def order(self, column: str, *, descending: bool = True) -> "QuerySpec":
        """Append a sort instruction and return self for chaining."""
        self.order_by.append(OrderBy(column=column, descending=descending))
        return self

    def match_nothing(self) -> "QuerySpec":
        """Mark the spec as unsatisfiable."""
        self.empty = True
        return self
