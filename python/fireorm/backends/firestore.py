"""Google Cloud Firestore implementation of the document store interface."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, TypeVar

from google.api_core import exceptions as api_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from fireorm.exceptions import DocumentNotFoundError
from fireorm.query import Direction
from fireorm.store import BatchUpdate, Snapshot

logger = logging.getLogger(__name__)

R = TypeVar("R")

_DIRECTIONS = {
    Direction.ASCENDING: firestore.Query.ASCENDING,
    Direction.DESCENDING: firestore.Query.DESCENDING,
}


def _snapshot(native: Any) -> Snapshot:
    return Snapshot(native.id, native.to_dict() or {}, raw=native)


class FirestoreQuery:
    """Wraps a native Firestore query behind the StoreQuery interface."""

    def __init__(self, native: Any) -> None:
        self.native = native

    def where(self, field_path: str, op: str, value: Any) -> FirestoreQuery:
        return FirestoreQuery(self.native.where(filter=FieldFilter(field_path, op, value)))

    def order_by(self, field_path: str, direction: Any = Direction.ASCENDING) -> FirestoreQuery:
        return FirestoreQuery(self.native.order_by(field_path, direction=_DIRECTIONS[Direction(direction)]))

    def limit(self, count: int) -> FirestoreQuery:
        return FirestoreQuery(self.native.limit(count))

    def start_after(self, cursor: Snapshot) -> FirestoreQuery:
        position = cursor.raw if cursor.raw is not None else cursor.data
        return FirestoreQuery(self.native.start_after(position))


class FirestoreStore:
    """DocumentStore backed by a ``google.cloud.firestore.Client``.

    Example:
        >>> from google.cloud import firestore
        >>> store = FirestoreStore(firestore.Client(project="my-project"))
        >>> mapper = Mapper(Session(store))
    """

    def __init__(self, client: firestore.Client) -> None:
        self.client = client

    def __repr__(self) -> str:
        return f"<FirestoreStore project={getattr(self.client, 'project', None)!r}>"

    def _ref(self, collection: str, document_id: str) -> Any:
        return self.client.collection(collection).document(document_id)

    def get_document(self, collection: str, document_id: str, transaction: Any = None) -> Snapshot | None:
        native = self._ref(collection, document_id).get(transaction=transaction)
        if not native.exists:
            return None
        return _snapshot(native)

    def set_document(
        self, collection: str, document_id: str, data: dict[str, Any], transaction: Any = None
    ) -> None:
        ref = self._ref(collection, document_id)
        if transaction is not None:
            transaction.set(ref, data)
        else:
            ref.set(data)

    def update_document(
        self, collection: str, document_id: str, updates: dict[str, Any], transaction: Any = None
    ) -> None:
        ref = self._ref(collection, document_id)
        if transaction is not None:
            transaction.update(ref, updates)
            return
        try:
            ref.update(updates)
        except api_exceptions.NotFound as e:
            raise DocumentNotFoundError(
                f"document {collection}/{document_id} not found",
                collection=collection,
                document_id=document_id,
            ) from e

    def delete_document(self, collection: str, document_id: str, transaction: Any = None) -> None:
        ref = self._ref(collection, document_id)
        if transaction is not None:
            transaction.delete(ref)
        else:
            ref.delete()

    def new_document_id(self, collection: str) -> str:
        return self.client.collection(collection).document().id

    def query(self, collection: str) -> FirestoreQuery:
        return FirestoreQuery(self.client.collection(collection))

    def run_query(self, query: FirestoreQuery, transaction: Any = None) -> list[Snapshot]:
        return [_snapshot(doc) for doc in query.native.stream(transaction=transaction)]

    def commit_batch(self, writes: list[BatchUpdate]) -> None:
        batch = self.client.batch()
        for write in writes:
            batch.update(self._ref(write.collection, write.document_id), write.updates)
        try:
            batch.commit()
        except api_exceptions.NotFound as e:
            raise DocumentNotFoundError(f"batch commit failed: {e}") from e
        logger.debug("Committed batch of %d writes", len(writes))

    def run_transaction(self, body: Callable[[Any], R]) -> R:
        """Run ``body`` inside a Firestore transaction, retried by the client on contention."""
        transaction = self.client.transaction()
        return firestore.transactional(body)(transaction)

    def close(self) -> None:
        self.client.close()
