"""Session holding a document store handle and an optional transaction."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Any

from fireorm.exceptions import SessionError
from fireorm.store import DocumentStore


@dataclass(frozen=True)
class Session:
    """A document store handle, optionally bound to a transaction.

    Sessions are immutable: ``with_transaction`` and ``with_store`` return new
    sessions, so callers sharing a session never see each other's transaction.

    Example:
        >>> session = Session(MemoryStore())
        >>> def body(tx):
        ...     mapper.with_session(session.with_transaction(tx)).save(item)
        >>> session.store.run_transaction(body)
    """

    store: DocumentStore | None = None
    transaction: Any = None

    def validate(self) -> None:
        """Raise SessionError if no document store is bound."""
        if not self.has_store():
            raise SessionError("document store is required")

    def has_store(self) -> bool:
        return self.store is not None

    def has_transaction(self) -> bool:
        return self.transaction is not None

    def with_transaction(self, transaction: Any) -> Session:
        """Return a session sharing this store but bound to ``transaction``."""
        return replace(self, transaction=transaction)

    def with_store(self, store: DocumentStore) -> Session:
        """Return a session bound to another store, keeping the transaction."""
        return replace(self, store=store)

    def close(self) -> None:
        """Release the underlying store. Call once per store."""
        if self.store is not None:
            self.store.close()


# ========== Convenience Functions ==========

def create_session(store: DocumentStore, transaction: Any = None) -> Session:
    """Create a new session for a store.

    Example:
        >>> session = create_session(FirestoreStore(client))
    """
    return Session(store, transaction)


@contextmanager
def session_context(store: DocumentStore) -> Iterator[Session]:
    """Create a session that closes its store on exit.

    Example:
        >>> with session_context(store) as session:
        ...     Mapper(session).save(item)
    """
    session = Session(store)
    try:
        yield session
    finally:
        session.close()
