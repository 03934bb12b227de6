"""Capability interface consumed from the document store."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, TypeVar, runtime_checkable

R = TypeVar("R")


@dataclass(frozen=True)
class Snapshot:
    """A document read from the store.

    ``raw`` keeps the backend's native snapshot so it can be reused as a
    pagination cursor.
    """

    id: str
    data: dict[str, Any] = field(default_factory=dict)
    raw: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class BatchUpdate:
    """A single field-path update inside an atomic batch."""

    collection: str
    document_id: str
    updates: dict[str, Any]


@runtime_checkable
class StoreQuery(Protocol):
    """A query over one collection. Every method returns a new query."""

    def where(self, field: str, op: str, value: Any) -> StoreQuery: ...

    def order_by(self, field: str, direction: Any) -> StoreQuery: ...

    def limit(self, count: int) -> StoreQuery: ...

    def start_after(self, cursor: Snapshot) -> StoreQuery: ...


@runtime_checkable
class DocumentStore(Protocol):
    """Operations fireorm needs from a document database.

    ``transaction`` arguments are opaque handles obtained from
    ``run_transaction``; when given, the operation joins that transaction.
    """

    def get_document(self, collection: str, document_id: str, transaction: Any = None) -> Snapshot | None: ...

    def set_document(
        self, collection: str, document_id: str, data: dict[str, Any], transaction: Any = None
    ) -> None: ...

    def update_document(
        self, collection: str, document_id: str, updates: dict[str, Any], transaction: Any = None
    ) -> None: ...

    def delete_document(self, collection: str, document_id: str, transaction: Any = None) -> None: ...

    def new_document_id(self, collection: str) -> str: ...

    def query(self, collection: str) -> StoreQuery: ...

    def run_query(self, query: StoreQuery, transaction: Any = None) -> list[Snapshot]: ...

    def commit_batch(self, writes: list[BatchUpdate]) -> None: ...

    def run_transaction(self, body: Callable[[Any], R]) -> R: ...

    def close(self) -> None: ...
