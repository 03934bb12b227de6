"""Field and identifier definitions for document models."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")

IGNORE = "-"
"""Alias marking a field as known to the model but never persisted."""


class Mapped(Generic[T]):
    """Type annotation wrapper indicating a document-mapped attribute.

    Example:
        >>> class Item(Document):
        ...     id: Mapped[str] = identifier()
        ...     name: Mapped[str] = mapped_field("name")
        ...     price: Mapped[float | None] = mapped_field("price")
    """

    pass


@dataclass
class FieldInfo:
    """Stores metadata about a mapped document field."""

    name: str | None = None
    alias: str | None = None
    python_type: type | None = None
    nullable: bool = True
    default: Any = None
    default_factory: Any = None

    @property
    def ignored(self) -> bool:
        """Whether the field is excluded from the stored document."""
        return not self.alias or self.alias == IGNORE

    def make_default(self) -> Any:
        if self.default_factory is not None:
            return self.default_factory()
        return self.default

    def copy(self) -> FieldInfo:
        return FieldInfo(
            name=self.name,
            alias=self.alias,
            python_type=self.python_type,
            nullable=self.nullable,
            default=self.default,
            default_factory=self.default_factory,
        )


@dataclass
class IdentifierInfo:
    """Marks the attribute holding the document identifier."""

    name: str | None = None


def mapped_field(
    alias: str | None = None,
    /,
    *,
    default: Any = None,
    default_factory: Any = None,
) -> Any:
    """Define a document field.

    Args:
        alias: Field name in the stored document. Defaults to the attribute
            name. Pass ``IGNORE`` to keep the attribute out of the document.
        default: Default value for new instances.
        default_factory: Zero-argument callable producing the default
            (use for mutable defaults such as lists and dicts).

    Returns:
        A FieldInfo descriptor

    Example:
        >>> name: Mapped[str] = mapped_field("name")
        >>> tags: Mapped[list] = mapped_field("tags", default_factory=list)
        >>> cache: Mapped[dict] = mapped_field(IGNORE)
    """
    if default is not None and default_factory is not None:
        raise ValueError("Cannot specify both default and default_factory")
    if alias is not None and not isinstance(alias, str):
        raise TypeError(f"Field alias must be a string, got {type(alias).__name__}")

    return FieldInfo(alias=alias, default=default, default_factory=default_factory)


def identifier() -> Any:
    """Define the document identifier attribute.

    The identifier is never written into the document body; it is the
    document's key inside its collection.

    Example:
        >>> id: Mapped[str] = identifier()
    """
    return IdentifierInfo()
