"""fireorm - Map typed Python models onto Firestore documents."""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager

from fireorm.adapter import extract_identifier, from_document, inject_identifier, to_field_mapping
from fireorm.backends.memory import MemoryStore
from fireorm.base import Document, HasCollectionName, collection_name
from fireorm.config import FireOrmConfig
from fireorm.exceptions import (
    BulkUpdateError,
    DocumentNotFoundError,
    EmptyIdentifierError,
    FieldDecodeError,
    FieldNotFoundError,
    FireOrmError,
    InvalidQueryError,
    ModelNotBoundError,
    QueryRequiredError,
    SessionError,
    TransactionNotSupportedError,
    ValueProviderError,
    is_not_found_error,
)
from fireorm.fields import IGNORE, Mapped, identifier, mapped_field
from fireorm.mapper import Mapper
from fireorm.query import (
    QUERY_LIMIT_MAX,
    QUERY_LIMIT_UNLIMITED,
    Direction,
    OrderClause,
    Query,
    ValueProvider,
    WhereClause,
    apply_queries,
    where,
)
from fireorm.session import Session, create_session, session_context
from fireorm.store import BatchUpdate, DocumentStore, Snapshot, StoreQuery

__version__ = "0.1.0"

__all__ = [
    # Core
    "connect",
    "Mapper",
    "Session",
    "create_session",
    "session_context",
    "FireOrmConfig",
    # Model definition
    "Document",
    "Mapped",
    "mapped_field",
    "identifier",
    "IGNORE",
    "HasCollectionName",
    "collection_name",
    # Record translation
    "extract_identifier",
    "inject_identifier",
    "to_field_mapping",
    "from_document",
    # Query building
    "Query",
    "WhereClause",
    "OrderClause",
    "Direction",
    "ValueProvider",
    "where",
    "apply_queries",
    "QUERY_LIMIT_MAX",
    "QUERY_LIMIT_UNLIMITED",
    # Store interface
    "DocumentStore",
    "MemoryStore",
    "StoreQuery",
    "Snapshot",
    "BatchUpdate",
    # Errors
    "FireOrmError",
    "SessionError",
    "ModelNotBoundError",
    "EmptyIdentifierError",
    "QueryRequiredError",
    "TransactionNotSupportedError",
    "DocumentNotFoundError",
    "FieldNotFoundError",
    "FieldDecodeError",
    "InvalidQueryError",
    "ValueProviderError",
    "BulkUpdateError",
    "is_not_found_error",
]


def connect(config: FireOrmConfig | None = None) -> Mapper:
    """Create a mapper connected to Firestore.

    Args:
        config: Connection settings. Defaults to ``FireOrmConfig.from_env()``.

    Returns:
        A Mapper over a new Firestore client.

    Example:
        >>> mapper = connect(FireOrmConfig(project="my-project"))
        >>> mapper = connect(FireOrmConfig(project="demo", emulator_host="localhost:8080"))
    """
    from google.cloud import firestore

    from fireorm.backends.firestore import FirestoreStore

    config = config or FireOrmConfig.from_env()

    credentials = None
    if config.credentials_file is not None:
        from google.oauth2 import service_account

        credentials = service_account.Credentials.from_service_account_file(str(config.credentials_file))

    # The client reads the emulator host once, when it is constructed
    with _emulator_environ(config.emulator_host):
        client = firestore.Client(project=config.project, database=config.database, credentials=credentials)
    session = Session(FirestoreStore(client))
    return Mapper(session, update_batch_size=config.update_batch_size)


@contextmanager
def _emulator_environ(host: str | None) -> Iterator[None]:
    """Set FIRESTORE_EMULATOR_HOST for the duration of the block, then restore it."""
    if not host:
        yield
        return

    previous = os.environ.get("FIRESTORE_EMULATOR_HOST")
    os.environ["FIRESTORE_EMULATOR_HOST"] = host
    try:
        yield
    finally:
        if previous is None:
            os.environ.pop("FIRESTORE_EMULATOR_HOST", None)
        else:
            os.environ["FIRESTORE_EMULATOR_HOST"] = previous
