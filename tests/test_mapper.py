"""Tests for mapper CRUD and query operations."""

from typing import Any

import pytest
from conftest import Item, seed_items

from fireorm import (
    Document,
    DocumentNotFoundError,
    EmptyIdentifierError,
    FieldNotFoundError,
    Mapped,
    Mapper,
    ModelNotBoundError,
    Query,
    Session,
    SessionError,
    identifier,
    mapped_field,
    where,
)


class Widget(Document):
    id: Mapped[str] = identifier()
    label: Mapped[str] = mapped_field("label")
    size: Mapped[int] = mapped_field("size", default=0)

    def collection_name(self) -> str:
        return "gadgets"


class Note(Document):
    text: Mapped[str] = mapped_field("text")


class Event(Document):
    id: Mapped[str] = identifier()
    payload: Mapped[Any] = mapped_field("payload")
    code: Mapped[str | int] = mapped_field("code")


# ========== Binding ==========


def test_model_binding_returns_new_mapper(mapper):
    bound = mapper.model(Item)
    assert bound is not mapper
    assert bound.model_type is Item
    assert mapper.model_type is None


def test_model_binding_accepts_instance(mapper):
    assert mapper.model(Item(name="x")).model_type is Item


def test_model_binding_rejects_non_models(mapper):
    with pytest.raises(TypeError):
        mapper.model(dict)


def test_collection_name_requires_model(mapper):
    with pytest.raises(ModelNotBoundError):
        mapper.collection_name()
    assert mapper.model(Item).collection_name() == "items"
    assert mapper.model(Widget).collection_name() == "gadgets"


def test_mapper_accepts_bare_store(store):
    mapper = Mapper(store)
    assert mapper.session.store is store


def test_with_update_batch_size(mapper):
    small = mapper.with_update_batch_size(5)
    assert small.update_batch_size == 5
    assert mapper.update_batch_size == 100
    with pytest.raises(ValueError):
        mapper.with_update_batch_size(0)


def test_missing_store_is_reported():
    with pytest.raises(SessionError):
        Mapper(Session()).get_by_id(Item(id="a"))


def test_get_id(mapper):
    assert mapper.get_id(Item(id="abc")) == "abc"
    assert mapper.get_id(Note(text="x")) == ""


# ========== Save / Get ==========


def test_save_generates_id(mapper, store):
    item = mapper.save(Item(name="Widget", price=10.0))
    assert len(item.id) == 20
    assert store.get_document("items", item.id).data == {"name": "Widget", "price": 10.0, "tags": []}


def test_save_with_id_overwrites(mapper, store):
    store.set_document("items", "abc", {"name": "Old", "price": 1.0, "extra": True})
    mapper.save(Item(id="abc", name="New"))
    assert store.get_document("items", "abc").data == {"name": "New", "price": 0.0, "tags": []}


def test_save_model_without_identifier(mapper, store):
    mapper.save(Note(text="hello"))
    docs = store.run_query(store.query("notes"))
    assert [d.data for d in docs] == [{"text": "hello"}]


def test_save_selected_fields(mapper, store):
    store.set_document("items", "abc", {"name": "Old", "price": 1.0, "tags": ["a"]})
    mapper.save(Item(id="abc", name="Ignored", price=5.0), "price")
    assert store.get_document("items", "abc").data == {"name": "Old", "price": 5.0, "tags": ["a"]}


def test_save_fields_requires_id(mapper):
    with pytest.raises(EmptyIdentifierError):
        mapper.save(Item(name="x"), "name")


def test_save_unknown_field(mapper, store):
    store.set_document("items", "abc", {"name": "Old"})
    with pytest.raises(FieldNotFoundError, match="field colour not found in Item data"):
        mapper.save(Item(id="abc"), "colour")


def test_save_fields_on_missing_document(mapper):
    with pytest.raises(DocumentNotFoundError):
        mapper.save(Item(id="nobody", price=1.0), "price")


def test_get_by_id(mapper):
    saved = mapper.save(Widget(label="Sprocket", size=3))
    loaded = mapper.get_by_id(Widget(id=saved.id))
    assert loaded == saved


def test_get_by_id_with_loose_annotations(mapper):
    saved = mapper.save(Event(payload={"a": 1}, code="X1"))
    loaded = mapper.get_by_id(Event(id=saved.id))
    assert loaded.payload == {"a": 1}
    assert loaded.code == "X1"

    mapper.update(Event(id=saved.id), {"code": 5})
    assert mapper.find_all(where("code", "==", 5), Event)[0].code == 5


def test_get_by_id_missing(mapper):
    with pytest.raises(DocumentNotFoundError) as exc_info:
        mapper.get_by_id(Item(id="nobody"))
    assert exc_info.value.collection == "items"
    assert exc_info.value.document_id == "nobody"


def test_get_by_id_requires_id(mapper):
    with pytest.raises(EmptyIdentifierError):
        mapper.get_by_id(Item())


# ========== Find ==========


@pytest.fixture
def catalog(mapper):
    for name, price in [("Bolt", 1.0), ("Nut", 0.5), ("Gear", 12.0), ("Shaft", 30.0)]:
        mapper.save(Item(id=name.lower(), name=name, price=price))
    return mapper


def test_find_all_without_queries(catalog):
    items = catalog.find_all(None, Item)
    assert sorted(i.name for i in items) == ["Bolt", "Gear", "Nut", "Shaft"]


def test_find_all_with_queries(catalog):
    items = catalog.find_all(Query().filter(price__lt=10).order("-price"), Item)
    assert [i.name for i in items] == ["Bolt", "Nut"]
    assert [i.id for i in items] == ["bolt", "nut"]


def test_find_all_with_multiple_queries(catalog):
    items = catalog.find_all([where("price", ">", 0.75), Query().order("price").limit_to(2)], Item)
    assert [i.name for i in items] == ["Bolt", "Gear"]


def test_find_all_fills_list(catalog):
    results = [Item(name="stale")]
    returned = catalog.model(Item).find_all([where("price", ">=", 12.0)], results)
    assert returned is results
    assert sorted(i.name for i in results) == ["Gear", "Shaft"]


def test_find_all_list_requires_model(catalog):
    with pytest.raises(ModelNotBoundError):
        catalog.find_all(None, [])


def test_find_all_empty_collection(mapper):
    assert mapper.find_all(None, Widget) == []


def test_find_one(catalog):
    item = catalog.find_one(Query().order("-price"), Item)
    assert item.name == "Shaft"


def test_find_one_limits_to_one_document(counting_store):
    seed_items(counting_store, 6)
    mapper = Mapper(Session(counting_store))

    item = mapper.find_one(Query().order("price").limit_to(5), Item)

    assert counting_store.last_query.limit_count == 1
    assert item.id == "item-0000"
    assert item.name == "Item 0"


def test_find_one_into_instance(catalog):
    dest = Item()
    result = catalog.find_one(where("name", "==", "Nut"), dest)
    assert result is dest
    assert dest.id == "nut"
    assert dest.price == 0.5


def test_find_one_no_match(catalog):
    with pytest.raises(DocumentNotFoundError):
        catalog.find_one(where("price", ">", 1000.0), Item)


# ========== Update / Delete ==========


def test_update_by_id(catalog, store):
    assert catalog.update(Item(id="bolt"), {"price": 2.0, "tags": ["steel"]}) == 1
    data = store.get_document("items", "bolt").data
    assert data["price"] == 2.0
    assert data["tags"] == ["steel"]
    assert data["name"] == "Bolt"


def test_update_by_id_missing(mapper):
    with pytest.raises(DocumentNotFoundError):
        mapper.update(Item(id="nobody"), {"price": 1.0})


def test_update_requires_updates(catalog):
    with pytest.raises(ValueError):
        catalog.update(Item(id="bolt"), {})


def test_delete(catalog, store):
    catalog.delete(Item(id="gear"))
    assert store.get_document("items", "gear") is None
    catalog.delete(Item(id="gear"))


def test_delete_requires_id(mapper):
    with pytest.raises(EmptyIdentifierError):
        mapper.delete(Item())


# ========== Transactions ==========


def test_operations_inside_transaction(catalog, store):
    def body(tx):
        txm = catalog.with_transaction(tx)
        item = txm.get_by_id(Item(id="bolt"))
        item.price = 3.0
        txm.save(item)
        txm.delete(Item(id="nut"))
        return item.price

    assert store.run_transaction(body) == 3.0
    assert store.get_document("items", "bolt").data["price"] == 3.0
    assert store.get_document("items", "nut") is None


def test_transaction_rollback(catalog, store):
    def body(tx):
        catalog.with_transaction(tx).delete(Item(id="bolt"))
        raise RuntimeError("abort")

    with pytest.raises(RuntimeError):
        store.run_transaction(body)
    assert store.get_document("items", "bolt") is not None
