"""Translation between model instances and stored documents."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, TypeVar

from fireorm.exceptions import FieldDecodeError

if TYPE_CHECKING:
    from fireorm.store import Snapshot

T = TypeVar("T")


def _identifier_name(record: Any) -> str | None:
    return getattr(type(record), "__identifier__", None)


def extract_identifier(record: Any) -> str:
    """Return the record's identifier, or an empty string if it has none."""
    ident = _identifier_name(record)
    if ident is None:
        return ""
    value = getattr(record, ident, "")
    return value if isinstance(value, str) else ""


def inject_identifier(record: Any, document_id: str) -> None:
    """Set the record's identifier. Records without one are left untouched."""
    ident = _identifier_name(record)
    if ident is None:
        return
    try:
        setattr(record, ident, document_id)
    except AttributeError:
        # read-only (slots or property without setter)
        return


def to_field_mapping(record: Any) -> dict[str, Any]:
    """Build the stored representation of a record.

    Only mapped, non-ignored fields are included, each under its alias.

    Example:
        >>> to_field_mapping(Item(name="Widget", price=10))
        {'name': 'Widget', 'price': 10}
    """
    data: dict[str, Any] = {}
    for attr_name, info in getattr(type(record), "__fields__", {}).items():
        if info.ignored:
            continue
        data[info.alias] = getattr(record, attr_name, None)
    return data


def from_document(snapshot: Snapshot, destination: T) -> T:
    """Populate ``destination`` from a stored document and inject its id.

    Fields missing from the document are reset to their defaults.
    """
    cls = type(destination)
    data = snapshot.data or {}

    for attr_name, info in getattr(cls, "__fields__", {}).items():
        if info.ignored:
            continue
        if info.alias not in data:
            setattr(destination, attr_name, info.make_default())
            continue
        setattr(destination, attr_name, _coerce(cls.__name__, attr_name, info.python_type, data[info.alias]))

    inject_identifier(destination, snapshot.id)
    return destination


def _coerce(model: str, field: str, expected: type | None, value: Any) -> Any:
    """Check a stored value against the field's declared type."""
    if value is None or expected is None or expected is object:
        return value
    if isinstance(value, expected):
        return value
    if expected is float and isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    raise FieldDecodeError(model, field, value, expected)
