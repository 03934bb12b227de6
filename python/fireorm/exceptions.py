"""Exceptions raised by fireorm."""

from __future__ import annotations

from typing import Any


class FireOrmError(Exception):
    """Base class for all fireorm errors."""


class SessionError(FireOrmError):
    """Raised when a session has no document store bound."""


class ModelNotBoundError(FireOrmError, ValueError):
    """Raised when an operation needs a model and none is bound."""

    def __init__(self, message: str = "no model set, call mapper.model(Model) first") -> None:
        super().__init__(message)


class EmptyIdentifierError(FireOrmError, ValueError):
    """Raised when an identifier is required but the record has none."""


class QueryRequiredError(FireOrmError, ValueError):
    """Raised when an update has neither an identifier nor query conditions."""


class TransactionNotSupportedError(FireOrmError):
    """Raised when a batch operation is requested inside a transaction."""


class DocumentNotFoundError(FireOrmError, LookupError):
    """Raised when a document does not exist or a query matched nothing."""

    def __init__(self, message: str, *, collection: str | None = None, document_id: str | None = None) -> None:
        super().__init__(message)
        self.collection = collection
        self.document_id = document_id


class FieldNotFoundError(FireOrmError, KeyError):
    """Raised when a named field is absent from a model's field mapping."""

    def __init__(self, field: str, model: str) -> None:
        super().__init__(f"field {field} not found in {model} data")
        self.field = field
        self.model = model

    def __str__(self) -> str:
        return str(self.args[0])


class FieldDecodeError(FireOrmError, TypeError):
    """Raised when a stored value cannot be assigned to a model field."""

    def __init__(self, model: str, field: str, value: Any, expected: type) -> None:
        super().__init__(
            f"failed to parse document: {model}.{field} expects {expected.__name__}, "
            f"got {type(value).__name__}"
        )
        self.model = model
        self.field = field
        self.value = value
        self.expected = expected


class InvalidQueryError(FireOrmError, ValueError):
    """Raised when a query clause is malformed."""


class ValueProviderError(FireOrmError):
    """Raised when a deferred filter value cannot be resolved."""

    def __init__(self, field: str, cause: BaseException) -> None:
        super().__init__(f"failed to get value for field {field}: {cause}")
        self.field = field


class BulkUpdateError(FireOrmError):
    """Raised when a page of a bulk update fails.

    Pages committed before the failure stay committed; ``committed`` is the
    number of documents they contained.
    """

    def __init__(self, message: str, *, committed: int = 0) -> None:
        super().__init__(message)
        self.committed = committed


def is_not_found_error(exc: BaseException | None) -> bool:
    """Check whether an error means the targeted document does not exist.

    Recognises DocumentNotFoundError as well as raw Google API ``NotFound``
    and ``Unknown`` errors surfaced by the Firestore client.
    """
    if exc is None:
        return False
    if isinstance(exc, DocumentNotFoundError):
        return True

    from google.api_core import exceptions as api_exceptions

    return isinstance(exc, (api_exceptions.NotFound, api_exceptions.Unknown))
