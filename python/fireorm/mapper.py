"""Model-bound CRUD and query execution against a document store."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

from fireorm.adapter import extract_identifier, from_document, inject_identifier, to_field_mapping
from fireorm.base import Document, ModelMeta, collection_name
from fireorm.config import DEFAULT_UPDATE_BATCH_SIZE
from fireorm.exceptions import (
    BulkUpdateError,
    DocumentNotFoundError,
    EmptyIdentifierError,
    FieldNotFoundError,
    ModelNotBoundError,
    QueryRequiredError,
    TransactionNotSupportedError,
)
from fireorm.query import Query, apply_queries, has_conditions
from fireorm.session import Session
from fireorm.store import BatchUpdate

if TYPE_CHECKING:
    from fireorm.store import DocumentStore, Snapshot, StoreQuery

logger = logging.getLogger(__name__)

Queries = Query | Sequence[Query] | None


@dataclass(frozen=True)
class MapperOptions:
    """Configuration shared by value between mapper instances."""

    session: Session
    model_type: type[Document] | None = None
    update_batch_size: int = DEFAULT_UPDATE_BATCH_SIZE


class Mapper:
    """Maps a model type onto a collection and runs operations against it.

    Binding methods (``model``, ``with_session``, ``with_transaction``,
    ``with_update_batch_size``) never modify the mapper they are called on;
    each returns a new mapper, so a shared base mapper is safe to derive from
    concurrently.

    Example:
        >>> mapper = Mapper(Session(store))
        >>> item = mapper.save(Item(name="Widget", price=10))
        >>> cheap = mapper.find_all(Query().filter(price__lt=20), Item)
        >>> mapper.update(Item(), {"price": 0}, Query().filter(price__gt=5))
    """

    def __init__(
        self,
        session: Session | DocumentStore,
        *,
        update_batch_size: int = DEFAULT_UPDATE_BATCH_SIZE,
    ) -> None:
        if not isinstance(session, Session):
            session = Session(session)
        _check_batch_size(update_batch_size)
        self._options = MapperOptions(session=session, update_batch_size=update_batch_size)

    @classmethod
    def _from_options(cls, options: MapperOptions) -> Mapper:
        instance = object.__new__(cls)
        instance._options = options
        return instance

    def __repr__(self) -> str:
        model = self.model_type.__name__ if self.model_type else None
        return f"<Mapper model={model} batch_size={self.update_batch_size}>"

    # ========== Binding ==========

    @property
    def session(self) -> Session:
        return self._options.session

    @property
    def model_type(self) -> type[Document] | None:
        return self._options.model_type

    @property
    def update_batch_size(self) -> int:
        return self._options.update_batch_size

    def model(self, model: type[Document] | Document) -> Mapper:
        """Return a mapper bound to a model class (or the class of an instance)."""
        model_type = model if isinstance(model, type) else type(model)
        if not isinstance(model_type, ModelMeta) or model_type is Document:
            raise TypeError(f"model must be a Document subclass or instance, got {model_type.__name__}")
        return self._from_options(replace(self._options, model_type=model_type))

    def with_session(self, session: Session) -> Mapper:
        """Return a mapper using another session."""
        return self._from_options(replace(self._options, session=session))

    def with_transaction(self, transaction: Any) -> Mapper:
        """Return a mapper whose operations run inside ``transaction``."""
        return self.with_session(self.session.with_transaction(transaction))

    def with_update_batch_size(self, size: int) -> Mapper:
        """Return a mapper using ``size`` documents per bulk update page."""
        _check_batch_size(size)
        return self._from_options(replace(self._options, update_batch_size=size))

    def collection_name(self) -> str:
        """Resolve the collection of the bound model."""
        if self.model_type is None:
            raise ModelNotBoundError()
        return collection_name(self.model_type)

    def get_id(self, record: Any) -> str:
        """Return the record's identifier, or an empty string."""
        return extract_identifier(record)

    # ========== Reads ==========

    def get_by_id[T: Document](self, record: T) -> T:
        """Load the document identified by ``record``'s id into ``record``.

        Example:
            >>> item = mapper.get_by_id(Item(id="abc"))
        """
        bound = self.model(record)
        store, tx = bound._context()
        coll = bound.collection_name()

        doc_id = extract_identifier(record)
        if not doc_id:
            raise EmptyIdentifierError("ID cannot be empty")

        logger.debug("Get %s/%s (transaction=%s)", coll, doc_id, tx is not None)
        snapshot = store.get_document(coll, doc_id, transaction=tx)
        if snapshot is None:
            raise DocumentNotFoundError(
                f"document {coll}/{doc_id} not found", collection=coll, document_id=doc_id
            )
        return from_document(snapshot, record)

    def find_one[T: Document](self, queries: Queries, dest: T | type[T]) -> T:
        """Load the first document matching ``queries`` into ``dest``.

        ``dest`` may be an instance or a model class. At most one document is
        fetched whatever limit the queries ask for.

        Example:
            >>> item = mapper.find_one(Query().filter(price__gt=5), Item)
        """
        if isinstance(dest, type):
            dest = dest()
        bound = self.model(dest)
        store, tx = bound._context()
        coll = bound.collection_name()

        q = apply_queries(store.query(coll), _as_queries(queries)).limit(1)
        docs = store.run_query(q, transaction=tx)
        if not docs:
            raise DocumentNotFoundError(f"no document found in {coll}", collection=coll)
        return from_document(docs[0], dest)

    def find_all[T: Document](
        self,
        queries: Queries = None,
        dest: list[T] | type[T] | None = None,
    ) -> list[T]:
        """Load every document matching ``queries``.

        ``dest`` is either the model class to load, or a list whose contents
        are replaced by the results (the mapper must then be bound to a model).
        Without queries the whole collection is returned.

        Example:
            >>> items = mapper.find_all(None, Item)
            >>> mapper.model(Item).find_all([where("price", "<", 5)], cheap_items)
        """
        if isinstance(dest, type):
            bound = self.model(dest)
        elif dest is None or isinstance(dest, list):
            bound = self
        else:
            raise TypeError(f"dest must be a model class or a list, got {type(dest).__name__}")

        model_type = bound.model_type
        if model_type is None:
            raise ModelNotBoundError()
        store, tx = bound._context()
        coll = bound.collection_name()

        q: StoreQuery = store.query(coll)
        queries = _as_queries(queries)
        if queries:
            q = apply_queries(q, queries)

        docs = store.run_query(q, transaction=tx)
        results = [from_document(doc, model_type()) for doc in docs]
        logger.debug("Loaded %d documents from %s", len(results), coll)

        if isinstance(dest, list):
            dest[:] = results
            return dest
        return results  # type: ignore[return-value]

    # ========== Writes ==========

    def save[T: Document](self, record: T, *fields: str) -> T:
        """Write a record.

        Without ``fields`` the whole document is written: a record with no id
        gets a generated one, a record with an id overwrites that document.
        With ``fields`` only those document fields are updated, which requires
        an id.

        Example:
            >>> mapper.save(item)
            >>> mapper.save(item, "price")
        """
        bound = self.model(record)
        store, tx = bound._context()
        coll = bound.collection_name()

        doc_id = extract_identifier(record)
        data = to_field_mapping(record)

        if not fields:
            if not doc_id:
                doc_id = store.new_document_id(coll)
                inject_identifier(record, doc_id)
            logger.debug("Set %s/%s (transaction=%s)", coll, doc_id, tx is not None)
            store.set_document(coll, doc_id, data, transaction=tx)
            return record

        if not doc_id:
            raise EmptyIdentifierError("cannot update fields on a record with no ID")

        updates: dict[str, Any] = {}
        for name in fields:
            if name not in data:
                raise FieldNotFoundError(name, type(record).__name__)
            updates[name] = data[name]

        logger.debug("Update %s/%s fields %s (transaction=%s)", coll, doc_id, list(updates), tx is not None)
        store.update_document(coll, doc_id, updates, transaction=tx)
        return record

    def update(
        self,
        record: Document,
        updates: Mapping[str, Any],
        where: Queries = None,
    ) -> int:
        """Apply field-path ``updates`` and return how many documents changed.

        A record with an id updates that one document. Otherwise every
        document matching ``where`` is updated, page by page, each page in
        one atomic batch. Pages already committed stay committed if a later
        page fails. Bulk updates cannot run inside a transaction.

        Example:
            >>> mapper.update(Item(id="abc"), {"price": 12})
            >>> mapper.update(Item(), {"price": 0}, Query().filter(price__gt=5))
        """
        if not updates:
            raise ValueError("updates cannot be empty")

        bound = self.model(record)
        store, tx = bound._context()
        coll = bound.collection_name()

        doc_id = extract_identifier(record)
        if doc_id:
            logger.debug("Update %s/%s (transaction=%s)", coll, doc_id, tx is not None)
            store.update_document(coll, doc_id, dict(updates), transaction=tx)
            return 1

        queries = _as_queries(where)
        if not has_conditions(queries):
            raise QueryRequiredError("either ID or query conditions must be provided")
        if tx is not None:
            raise TransactionNotSupportedError("transactional batch updates are not supported")

        base = apply_queries(store.query(coll), queries)
        _warn_on_order_overlap(coll, queries, updates)
        return bound._bulk_update(store, coll, base, updates)

    def delete(self, record: Document) -> None:
        """Delete the record's document. Missing documents are not an error."""
        bound = self.model(record)
        store, tx = bound._context()
        coll = bound.collection_name()

        doc_id = extract_identifier(record)
        if not doc_id:
            raise EmptyIdentifierError("ID cannot be empty for delete")

        logger.debug("Delete %s/%s (transaction=%s)", coll, doc_id, tx is not None)
        store.delete_document(coll, doc_id, transaction=tx)

    # ========== Internal Methods ==========

    def _context(self) -> tuple[DocumentStore, Any]:
        session = self.session
        session.validate()
        return session.store, session.transaction  # type: ignore[return-value]

    def _bulk_update(
        self,
        store: DocumentStore,
        coll: str,
        base: StoreQuery,
        updates: Mapping[str, Any],
    ) -> int:
        """Update every document of ``base`` in pages of update_batch_size.

        Each page is read positioned after the last document of the previous
        page and committed as one batch. Stops at the first empty page.
        """
        batch_size = self.update_batch_size
        cursor: Snapshot | None = None
        committed = 0
        pages = 0

        while True:
            page_query = base if cursor is None else base.start_after(cursor)
            try:
                docs = store.run_query(page_query.limit(batch_size))
            except Exception as e:
                raise BulkUpdateError(f"failed to retrieve documents: {e}", committed=committed) from e

            if not docs:
                break

            writes = [BatchUpdate(coll, doc.id, dict(updates)) for doc in docs]
            try:
                store.commit_batch(writes)
            except Exception as e:
                raise BulkUpdateError(f"batch commit failed: {e}", committed=committed) from e

            committed += len(docs)
            pages += 1
            logger.debug("Committed page %d of %s (%d documents)", pages, coll, len(docs))
            cursor = docs[-1]

        logger.info("Bulk update of %s finished: %d documents in %d pages", coll, committed, pages)
        return committed


def _check_batch_size(size: int) -> None:
    if not isinstance(size, int) or isinstance(size, bool) or size <= 0:
        raise ValueError(f"update batch size must be a positive integer, got {size!r}")


def _as_queries(queries: Queries) -> tuple[Query, ...]:
    if queries is None:
        return ()
    if isinstance(queries, Query):
        return (queries,)
    return tuple(queries)


def _warn_on_order_overlap(coll: str, queries: Sequence[Query], updates: Mapping[str, Any]) -> None:
    # Paging positions on the order fields, so rewriting them can skip or revisit documents
    ordered = {order.field for query in queries for order in query.order_by}
    overlap = ordered.intersection(updates)
    if overlap:
        logger.warning(
            "Bulk update of %s rewrites order-by fields %s; documents may be skipped or updated twice",
            coll,
            sorted(overlap),
        )
