"""Declarative queries and their application to store queries."""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from fireorm.exceptions import InvalidQueryError, ValueProviderError

if TYPE_CHECKING:
    from fireorm.store import StoreQuery

logger = logging.getLogger(__name__)

QUERY_LIMIT_MAX = 10_000
QUERY_LIMIT_UNLIMITED = -1

OPERATORS = frozenset({
    "<",
    "<=",
    "==",
    "!=",
    ">=",
    ">",
    "array-contains",
    "array-contains-any",
    "in",
    "not-in",
})

# Django-style lookup suffixes accepted by Query.filter()
LOOKUPS = {
    "eq": "==",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
    "ne": "!=",
    "in": "in",
    "notin": "not-in",
    "contains": "array-contains",
    "contains_any": "array-contains-any",
}


class Direction(str, enum.Enum):
    """Sort direction of an order clause."""

    ASCENDING = "ASCENDING"
    DESCENDING = "DESCENDING"


@runtime_checkable
class ValueProvider(Protocol):
    """Supplies a filter value when the query is applied, not when it is built.

    Example:
        >>> class LastSeen:
        ...     def get_value(self) -> Any:
        ...         return checkpoint_store.read("items")
        >>> WhereClause("updated_at", ">", value_provider=LastSeen())
    """

    def get_value(self) -> Any: ...


@dataclass(frozen=True)
class WhereClause:
    """Represents a filter condition."""

    field: str
    operator: str
    value: Any = None
    value_provider: ValueProvider | None = None

    def __post_init__(self) -> None:
        if self.operator not in OPERATORS:
            raise InvalidQueryError(f"Unsupported operator {self.operator!r} for field {self.field}")

    def resolve(self) -> Any:
        """Return the comparison value, asking the provider if there is one."""
        if self.value_provider is None:
            return self.value
        try:
            return self.value_provider.get_value()
        except Exception as e:
            raise ValueProviderError(self.field, e) from e


@dataclass(frozen=True)
class OrderClause:
    """Represents an ordering on one field."""

    field: str
    direction: Direction = Direction.ASCENDING


@dataclass(frozen=True)
class Query:
    """A set of filters, orderings and an optional limit.

    Example:
        >>> Query(where=[WhereClause("price", ">", 5)], limit=10)
        >>> Query().filter(price__gt=5).order("-price").limit_to(10)
    """

    where: Sequence[WhereClause] = field(default_factory=tuple)
    order_by: Sequence[OrderClause] = field(default_factory=tuple)
    limit: int = QUERY_LIMIT_UNLIMITED

    def __post_init__(self) -> None:
        object.__setattr__(self, "where", tuple(self.where))
        object.__setattr__(self, "order_by", tuple(self.order_by))
        if self.limit > QUERY_LIMIT_MAX:
            raise InvalidQueryError(f"Query limit {self.limit} exceeds maximum of {QUERY_LIMIT_MAX}")

    def filter(self, *clauses: WhereClause, **lookups: Any) -> Query:
        """Add filter conditions using clauses or Django-style kwargs.

        Example:
            >>> Query().filter(name="Widget", price__lte=20)
            >>> Query().filter(tags__contains="sale")
        """
        new_clauses = list(clauses)
        for key, value in lookups.items():
            field_path, op = _parse_filter_key(key)
            new_clauses.append(WhereClause(field_path, op, value))
        return replace(self, where=(*self.where, *new_clauses))

    def order(self, *fields: str, desc: bool = False) -> Query:
        """Add order clauses. A leading ``-`` sorts that field descending."""
        default = Direction.DESCENDING if desc else Direction.ASCENDING
        new_order = []
        for name in fields:
            if name.startswith("-"):
                new_order.append(OrderClause(name[1:], Direction.DESCENDING))
            else:
                new_order.append(OrderClause(name, default))
        return replace(self, order_by=(*self.order_by, *new_order))

    def limit_to(self, n: int) -> Query:
        """Limit the number of results."""
        return replace(self, limit=n)


def _parse_filter_key(key: str) -> tuple[str, str]:
    """Parse a Django-style filter key into field path and operator.

    Double underscores inside the field part address nested fields, so
    ``meta__color__eq`` filters on ``meta.color``.
    """
    if "__" in key:
        field_part, suffix = key.rsplit("__", 1)
        if suffix in LOOKUPS:
            return field_part.replace("__", "."), LOOKUPS[suffix]
    return key.replace("__", "."), "=="


def where(field_path: str, operator: str, value: Any = None, *, provider: ValueProvider | None = None) -> Query:
    """Create a query with a single filter.

    Example:
        >>> mapper.find_all([where("price", ">", 5)], Item)
    """
    return Query(where=(WhereClause(field_path, operator, value, provider),))


def apply_queries(base: StoreQuery, queries: Iterable[Query] | None) -> StoreQuery:
    """Refine a store query with the given queries.

    Queries are applied in order. Within each, filters come first, then
    orderings, then the limit (only when positive and not unlimited).
    Deferred values are resolved here, once per call.
    """
    q = base
    for query in queries or ():
        for clause in query.where:
            value = clause.resolve()
            if clause.value_provider is not None:
                logger.debug("Resolved deferred value for %s: %r", clause.field, value)
            q = q.where(clause.field, clause.operator, value)

        for order in query.order_by:
            q = q.order_by(order.field, order.direction)

        if query.limit > 0 and query.limit != QUERY_LIMIT_UNLIMITED:
            q = q.limit(query.limit)
    return q


def has_conditions(queries: Iterable[Query] | None) -> bool:
    """Whether any query carries at least one clause or limit."""
    for query in queries or ():
        if query.where or query.order_by or query.limit > 0:
            return True
    return False
