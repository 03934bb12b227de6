"""In-memory document store for development and testing.

Follows Firestore's query semantics closely enough to exercise the mapper:
filters never match missing fields, values of different types never compare
equal, and ``start_after`` cursors are positioned by the values the cursor
document had when it was read.

Results are ordered by the order clauses, then implicitly by every
inequality-filtered field not already ordered on (in the direction of the last
order clause), then by document id.
"""

from __future__ import annotations

import copy
import functools
import logging
import secrets
import string
import threading
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, TypeVar

from fireorm.exceptions import DocumentNotFoundError, InvalidQueryError
from fireorm.query import Direction
from fireorm.store import BatchUpdate, Snapshot

logger = logging.getLogger(__name__)

R = TypeVar("R")

AUTO_ID_ALPHABET = string.ascii_letters + string.digits
AUTO_ID_LENGTH = 20

_MISSING: Any = object()

INEQUALITY_OPERATORS = frozenset({"<", "<=", ">", ">=", "!=", "not-in"})


def generate_document_id() -> str:
    """Generate a 20-character id in the style of Firestore auto ids."""
    return "".join(secrets.choice(AUTO_ID_ALPHABET) for _ in range(AUTO_ID_LENGTH))


def deep_get(doc: dict[str, Any], dotted_key: str, default: Any = _MISSING) -> Any:
    cur: Any = doc
    for part in dotted_key.split("."):
        if isinstance(cur, dict) and part in cur:
            cur = cur[part]
        else:
            return default
    return cur


def deep_set(doc: dict[str, Any], dotted_key: str, value: Any) -> None:
    parts = dotted_key.split(".")
    cur = doc
    for part in parts[:-1]:
        if part not in cur or not isinstance(cur[part], dict):
            cur[part] = {}
        cur = cur[part]
    cur[parts[-1]] = value


# ========== Value ordering ==========

def _type_rank(value: Any) -> int:
    """Rank of a value's type in Firestore's cross-type ordering."""
    if value is None:
        return 0
    if isinstance(value, bool):
        return 1
    if isinstance(value, (int, float)):
        return 2
    if isinstance(value, datetime):
        return 3
    if isinstance(value, str):
        return 4
    if isinstance(value, bytes):
        return 5
    if isinstance(value, (list, tuple)):
        return 8
    if isinstance(value, dict):
        return 9
    return 10


def compare_values(a: Any, b: Any) -> int:
    """Three-way comparison following Firestore's value ordering."""
    rank_a, rank_b = _type_rank(a), _type_rank(b)
    if rank_a != rank_b:
        return -1 if rank_a < rank_b else 1
    if rank_a == 0:
        return 0
    if rank_a == 8:
        for x, y in zip(a, b):
            result = compare_values(x, y)
            if result:
                return result
        return (len(a) > len(b)) - (len(a) < len(b))
    if rank_a == 9:
        return compare_values(sorted(a.items()), sorted(b.items()))
    if rank_a == 10:
        a, b = str(a), str(b)
    return (a > b) - (a < b)


def _equals(a: Any, b: Any) -> bool:
    return _type_rank(a) == _type_rank(b) and compare_values(a, b) == 0


def _matches(value: Any, op: str, arg: Any) -> bool:
    """Evaluate one filter against a field value (``_MISSING`` if absent)."""
    if value is _MISSING:
        return False

    if op == "==":
        return _equals(value, arg)
    if op == "!=":
        return value is not None and not _equals(value, arg)
    if op in ("<", "<=", ">", ">="):
        if _type_rank(value) != _type_rank(arg) or value is None:
            return False
        result = compare_values(value, arg)
        return {
            "<": result < 0,
            "<=": result <= 0,
            ">": result > 0,
            ">=": result >= 0,
        }[op]
    if op == "in":
        return any(_equals(value, candidate) for candidate in arg)
    if op == "not-in":
        return value is not None and not any(_equals(value, candidate) for candidate in arg)
    if op == "array-contains":
        return isinstance(value, list) and any(_equals(item, arg) for item in value)
    if op == "array-contains-any":
        return isinstance(value, list) and any(
            _equals(item, candidate) for item in value for candidate in arg
        )
    raise InvalidQueryError(f"Unsupported operator: {op}")


# ========== Queries ==========

@dataclass(frozen=True, eq=False)
class MemoryQuery:
    """Immutable query over one collection of a MemoryStore."""

    store: MemoryStore
    collection: str
    filters: tuple[tuple[str, str, Any], ...] = ()
    orders: tuple[tuple[str, Direction], ...] = ()
    limit_count: int | None = None
    cursor: Snapshot | None = None

    def where(self, field_path: str, op: str, value: Any) -> MemoryQuery:
        if op in ("in", "not-in", "array-contains-any") and not isinstance(value, (list, tuple)):
            raise InvalidQueryError(f"Operator {op!r} requires a list value for field {field_path}")
        return replace(self, filters=(*self.filters, (field_path, op, copy.deepcopy(value))))

    def order_by(self, field_path: str, direction: Any = Direction.ASCENDING) -> MemoryQuery:
        return replace(self, orders=(*self.orders, (field_path, Direction(direction))))

    def limit(self, count: int) -> MemoryQuery:
        return replace(self, limit_count=count)

    def start_after(self, cursor: Snapshot) -> MemoryQuery:
        return replace(self, cursor=cursor)

    def _effective_orders(self) -> list[tuple[str, Direction]]:
        """Explicit orders followed by the implicit orders on inequality fields."""
        orders = list(self.orders)
        direction = orders[-1][1] if orders else Direction.ASCENDING
        ordered = {name for name, _ in orders}
        inequality = {name for name, op, _ in self.filters if op in INEQUALITY_OPERATORS}
        orders.extend((name, direction) for name in sorted(inequality - ordered))
        return orders

    def _sort_key(self, doc_id: str, data: dict[str, Any]) -> list[tuple[Any, Direction]]:
        orders = self._effective_orders()
        key = [(deep_get(data, name, None), direction) for name, direction in orders]
        id_direction = orders[-1][1] if orders else Direction.ASCENDING
        key.append((doc_id, id_direction))
        return key

    def _compare_keys(self, left: list[tuple[Any, Direction]], right: list[tuple[Any, Direction]]) -> int:
        for (a, direction), (b, _) in zip(left, right):
            result = compare_values(a, b)
            if result:
                return -result if direction is Direction.DESCENDING else result
        return 0

    def _evaluate(self, documents: dict[str, dict[str, Any]]) -> list[Snapshot]:
        rows = []
        for doc_id, data in documents.items():
            if not all(_matches(deep_get(data, f), op, arg) for f, op, arg in self.filters):
                continue
            # an order clause implies the field exists
            if any(deep_get(data, name) is _MISSING for name, _ in self.orders):
                continue
            rows.append((self._sort_key(doc_id, data), doc_id, data))

        compare = functools.cmp_to_key(lambda x, y: self._compare_keys(x[0], y[0]))
        rows.sort(key=compare)

        if self.cursor is not None:
            cursor_key = self._sort_key(self.cursor.id, self.cursor.data)
            rows = [row for row in rows if self._compare_keys(row[0], cursor_key) > 0]

        if self.limit_count is not None:
            rows = rows[: self.limit_count]

        return [Snapshot(doc_id, copy.deepcopy(data)) for _, doc_id, data in rows]


# ========== Transactions ==========

class MemoryTransaction:
    """Buffers writes until the enclosing ``run_transaction`` commits them."""

    def __init__(self, store: MemoryStore) -> None:
        self._store = store
        self._writes: list[tuple[str, str, str, Any]] = []

    def __repr__(self) -> str:
        return f"<MemoryTransaction writes={len(self._writes)}>"

    def stage(self, kind: str, collection: str, document_id: str, payload: Any = None) -> None:
        self._writes.append((kind, collection, document_id, copy.deepcopy(payload)))

    @property
    def writes(self) -> list[tuple[str, str, str, Any]]:
        return list(self._writes)


# ========== Store ==========

class MemoryStore:
    """Thread-safe in-memory DocumentStore.

    Example:
        >>> store = MemoryStore()
        >>> mapper = Mapper(Session(store))
    """

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = threading.RLock()
        self._closed = False

    def __repr__(self) -> str:
        return f"<MemoryStore collections={sorted(self._collections)}>"

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("MemoryStore is closed")

    def _documents(self, collection: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    def get_document(self, collection: str, document_id: str, transaction: Any = None) -> Snapshot | None:
        with self._lock:
            self._check_open()
            data = self._collections.get(collection, {}).get(document_id)
            if data is None:
                return None
            return Snapshot(document_id, copy.deepcopy(data))

    def set_document(
        self, collection: str, document_id: str, data: dict[str, Any], transaction: Any = None
    ) -> None:
        if transaction is not None:
            transaction.stage("set", collection, document_id, data)
            return
        with self._lock:
            self._check_open()
            self._documents(collection)[document_id] = copy.deepcopy(data)

    def update_document(
        self, collection: str, document_id: str, updates: dict[str, Any], transaction: Any = None
    ) -> None:
        if transaction is not None:
            transaction.stage("update", collection, document_id, updates)
            return
        with self._lock:
            self._check_open()
            self._apply_update(self._collections, collection, document_id, updates)

    def delete_document(self, collection: str, document_id: str, transaction: Any = None) -> None:
        if transaction is not None:
            transaction.stage("delete", collection, document_id)
            return
        with self._lock:
            self._check_open()
            self._documents(collection).pop(document_id, None)

    def new_document_id(self, collection: str) -> str:
        return generate_document_id()

    def query(self, collection: str) -> MemoryQuery:
        return MemoryQuery(self, collection)

    def run_query(self, query: MemoryQuery, transaction: Any = None) -> list[Snapshot]:
        with self._lock:
            self._check_open()
            return query._evaluate(self._collections.get(query.collection, {}))

    def commit_batch(self, writes: list[BatchUpdate]) -> None:
        """Apply all updates or none of them."""
        with self._lock:
            self._check_open()
            for write in writes:
                if write.document_id not in self._collections.get(write.collection, {}):
                    raise DocumentNotFoundError(
                        f"document {write.collection}/{write.document_id} not found",
                        collection=write.collection,
                        document_id=write.document_id,
                    )
            for write in writes:
                self._apply_update(self._collections, write.collection, write.document_id, write.updates)
            logger.debug("Committed batch of %d writes", len(writes))

    def run_transaction(self, body: Callable[[MemoryTransaction], R]) -> R:
        """Run ``body`` with a new transaction and commit its writes atomically.

        Transactions are serialized. Writes are discarded if ``body`` raises.
        """
        with self._lock:
            self._check_open()
            transaction = MemoryTransaction(self)
            result = body(transaction)

            staged = copy.deepcopy(self._collections)
            for kind, collection, document_id, payload in transaction.writes:
                if kind == "set":
                    staged.setdefault(collection, {})[document_id] = payload
                elif kind == "update":
                    self._apply_update(staged, collection, document_id, payload)
                else:
                    staged.setdefault(collection, {}).pop(document_id, None)
            self._collections = staged
            logger.debug("Committed transaction with %d writes", len(transaction.writes))
            return result

    def clear(self) -> None:
        """Remove every document."""
        with self._lock:
            self._collections.clear()

    def close(self) -> None:
        self._closed = True

    @staticmethod
    def _apply_update(
        collections: dict[str, dict[str, dict[str, Any]]],
        collection: str,
        document_id: str,
        updates: dict[str, Any],
    ) -> None:
        data = collections.get(collection, {}).get(document_id)
        if data is None:
            raise DocumentNotFoundError(
                f"document {collection}/{document_id} not found",
                collection=collection,
                document_id=document_id,
            )
        for path, value in updates.items():
            deep_set(data, path, copy.deepcopy(value))
