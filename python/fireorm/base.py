"""Declarative base for document models."""

from __future__ import annotations

import sys
import types
import typing
from typing import Any, ClassVar, Protocol, get_type_hints, runtime_checkable

from fireorm.fields import FieldInfo, IdentifierInfo, Mapped


class ModelMeta(type):
    """Metaclass building the field table of a document model.

    The table is computed once, when the class is created, and reused by every
    mapping operation afterwards.
    """

    def __new__(
        mcs,
        name: str,
        bases: tuple[type, ...],
        namespace: dict[str, Any],
        **kwargs: Any,
    ) -> ModelMeta:
        cls = super().__new__(mcs, name, bases, namespace, **kwargs)

        # Skip processing for the Document class itself
        if not any(isinstance(b, ModelMeta) for b in bases):
            cls.__fields__ = {}  # type: ignore[attr-defined]
            cls.__identifier__ = None  # type: ignore[attr-defined]
            return cls

        try:
            module = sys.modules.get(cls.__module__, None)
            globalns = dict(getattr(module, "__dict__", {})) if module else {}
            globalns["ClassVar"] = ClassVar
            globalns["Any"] = Any
            globalns["Mapped"] = Mapped
            hints = get_type_hints(cls, globalns=globalns, localns={})
        except Exception:
            hints = {}

        fields: dict[str, FieldInfo] = {}
        identifier_name: str | None = None

        # Inherited descriptors first, cloned so subclasses never share them
        for base in reversed(cls.__mro__[1:]):
            if not isinstance(base, ModelMeta):
                continue
            for attr_name, info in base.__fields__.items():  # type: ignore[attr-defined]
                fields[attr_name] = info.copy()
            if base.__identifier__ is not None:  # type: ignore[attr-defined]
                identifier_name = base.__identifier__  # type: ignore[attr-defined]

        for attr_name, attr_value in namespace.items():
            if attr_name.startswith("_"):
                continue

            if isinstance(attr_value, FieldInfo):
                attr_value.name = attr_name
                if attr_value.alias is None:
                    attr_value.alias = attr_name
                if attr_name in hints:
                    python_type, nullable = _extract_mapped_type(hints[attr_name])
                    attr_value.python_type = python_type
                    attr_value.nullable = nullable
                fields[attr_name] = attr_value
            elif isinstance(attr_value, IdentifierInfo):
                attr_value.name = attr_name
                if identifier_name is not None and identifier_name != attr_name:
                    raise TypeError(
                        f"{name} declares identifier '{attr_name}' but already has "
                        f"identifier '{identifier_name}'"
                    )
                identifier_name = attr_name

        if identifier_name is not None and identifier_name in fields:
            raise TypeError(f"{name}.{identifier_name} cannot be both a field and the identifier")

        cls.__fields__ = fields  # type: ignore[attr-defined]
        cls.__identifier__ = identifier_name  # type: ignore[attr-defined]
        cls.__aliases__ = {  # type: ignore[attr-defined]
            info.alias: attr_name for attr_name, info in fields.items() if not info.ignored
        }
        return cls


def _extract_mapped_type(hint: Any) -> tuple[type | None, bool]:
    """Extract the inner type from a Mapped[T] annotation and its nullability."""
    if typing.get_origin(hint) is Mapped:
        args = typing.get_args(hint)
        hint = args[0] if args else Any

    # Unchecked: Any, bare Mapped, and unions of several types
    if hint is Any or hint is Mapped:
        return None, True

    origin = typing.get_origin(hint)
    if origin is typing.Union or origin is types.UnionType:
        args = typing.get_args(hint)
        non_none = [a for a in args if a is not type(None)]
        nullable = len(non_none) < len(args)
        if len(non_none) == 1:
            inner, _ = _extract_mapped_type(non_none[0])
            return inner, nullable
        return None, nullable

    if origin is not None:
        return (origin if isinstance(origin, type) else None), False
    return (hint if isinstance(hint, type) else None), False


class Document(metaclass=ModelMeta):
    """Base class for all document models.

    Example:
        >>> class Item(Document):
        ...     id: Mapped[str] = identifier()
        ...     name: Mapped[str] = mapped_field("name")
        ...     price: Mapped[float] = mapped_field("price", default=0)
    """

    __fields__: ClassVar[dict[str, FieldInfo]]
    __identifier__: ClassVar[str | None]
    __aliases__: ClassVar[dict[str, str]]

    def __init__(self, **kwargs: Any) -> None:
        """Initialize a model instance with the given field values."""
        cls = type(self)
        ident = cls.__identifier__

        for key, value in kwargs.items():
            if key in cls.__fields__ or key == ident:
                setattr(self, key, value)
            else:
                raise TypeError(f"Unknown field for {cls.__name__}: {key}")

        for attr_name, info in cls.__fields__.items():
            if attr_name not in kwargs:
                setattr(self, attr_name, info.make_default())

        if ident is not None and ident not in kwargs:
            setattr(self, ident, "")

    def __repr__(self) -> str:
        ident = self.__identifier__
        if ident:
            return f"<{self.__class__.__name__} {ident}={getattr(self, ident, '')!r}>"
        return f"<{self.__class__.__name__}>"

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.to_dict() == other.to_dict()  # type: ignore[attr-defined]

    __hash__ = None  # type: ignore[assignment]

    def to_dict(self) -> dict[str, Any]:
        """Convert model instance to a dictionary keyed by attribute name."""
        result = {}
        ident = self.__identifier__
        if ident is not None:
            result[ident] = getattr(self, ident, "")
        for attr_name in self.__fields__:
            result[attr_name] = getattr(self, attr_name, None)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Document:
        """Create a model instance from a dictionary keyed by attribute name."""
        known = set(cls.__fields__)
        if cls.__identifier__ is not None:
            known.add(cls.__identifier__)
        return cls(**{k: v for k, v in data.items() if k in known})


@runtime_checkable
class HasCollectionName(Protocol):
    """Models implementing this choose their own collection name.

    Example:
        >>> class Person(Document):
        ...     def collection_name(self) -> str:
        ...         return "people"
    """

    def collection_name(self) -> str: ...


def collection_name(model_type: type, instance: Any = None) -> str:
    """Resolve the collection a model type is stored in.

    Uses the model's ``collection_name()`` when it provides one, otherwise the
    lowercased class name with an ``s`` appended.
    """
    if issubclass(model_type, HasCollectionName):  # type: ignore[misc]
        target = instance if instance is not None else model_type()
        name = target.collection_name()
        if not isinstance(name, str):
            raise TypeError(
                f"{model_type.__name__}.collection_name() must return a string, "
                f"got {type(name).__name__}"
            )
        return name
    return model_type.__name__.lower() + "s"
