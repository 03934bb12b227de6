"""Tests for the Firestore backend against a mocked client."""

from unittest import mock

import pytest
from google.api_core import exceptions as api_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from fireorm import BatchUpdate, DocumentNotFoundError, DocumentStore, Snapshot, is_not_found_error
from fireorm.backends.firestore import FirestoreQuery, FirestoreStore


def native_snapshot(doc_id, data, exists=True):
    snap = mock.MagicMock()
    snap.id = doc_id
    snap.exists = exists
    snap.to_dict.return_value = data
    return snap


@pytest.fixture
def client():
    return mock.MagicMock()


@pytest.fixture
def store(client):
    return FirestoreStore(client)


def test_implements_store_protocol(store):
    assert isinstance(store, DocumentStore)


def test_get_document(store, client):
    ref = client.collection.return_value.document.return_value
    ref.get.return_value = native_snapshot("a", {"name": "Ann"})

    snapshot = store.get_document("people", "a")

    client.collection.assert_called_with("people")
    client.collection.return_value.document.assert_called_with("a")
    ref.get.assert_called_once_with(transaction=None)
    assert snapshot == Snapshot("a", {"name": "Ann"})
    assert snapshot.raw is ref.get.return_value


def test_get_missing_document(store, client):
    ref = client.collection.return_value.document.return_value
    ref.get.return_value = native_snapshot("a", None, exists=False)
    assert store.get_document("people", "a") is None


def test_writes_without_transaction(store, client):
    ref = client.collection.return_value.document.return_value

    store.set_document("people", "a", {"name": "Ann"})
    store.update_document("people", "a", {"age": 3})
    store.delete_document("people", "a")

    ref.set.assert_called_once_with({"name": "Ann"})
    ref.update.assert_called_once_with({"age": 3})
    ref.delete.assert_called_once_with()


def test_writes_join_transaction(store, client):
    ref = client.collection.return_value.document.return_value
    tx = mock.MagicMock()

    store.set_document("people", "a", {"name": "Ann"}, transaction=tx)
    store.update_document("people", "a", {"age": 3}, transaction=tx)
    store.delete_document("people", "a", transaction=tx)

    tx.set.assert_called_once_with(ref, {"name": "Ann"})
    tx.update.assert_called_once_with(ref, {"age": 3})
    tx.delete.assert_called_once_with(ref)
    ref.set.assert_not_called()


def test_update_missing_document(store, client):
    ref = client.collection.return_value.document.return_value
    ref.update.side_effect = api_exceptions.NotFound("no entity")

    with pytest.raises(DocumentNotFoundError) as exc_info:
        store.update_document("people", "a", {"age": 3})
    assert exc_info.value.document_id == "a"
    assert is_not_found_error(exc_info.value.__cause__)


def test_new_document_id(store, client):
    client.collection.return_value.document.return_value.id = "generated"
    assert store.new_document_id("people") == "generated"
    client.collection.return_value.document.assert_called_with()


def test_query_building(store, client):
    collection = client.collection.return_value

    q = store.query("people").where("age", ">", 18).order_by("age", "DESCENDING").limit(5)

    (call,) = collection.where.call_args_list
    field_filter = call.kwargs["filter"]
    assert isinstance(field_filter, FieldFilter)
    assert (field_filter.field_path, field_filter.op_string, field_filter.value) == ("age", ">", 18)
    collection.where.return_value.order_by.assert_called_once_with("age", direction=firestore.Query.DESCENDING)
    assert isinstance(q, FirestoreQuery)
    assert q.native is collection.where.return_value.order_by.return_value.limit.return_value


def test_start_after_uses_native_snapshot(store, client):
    raw = native_snapshot("a", {"age": 3})
    store.query("people").start_after(Snapshot("a", {"age": 3}, raw=raw))
    client.collection.return_value.start_after.assert_called_once_with(raw)


def test_run_query(store, client):
    native = client.collection.return_value
    native.stream.return_value = iter([native_snapshot("a", {"n": 1}), native_snapshot("b", {"n": 2})])

    docs = store.run_query(store.query("people"))

    native.stream.assert_called_once_with(transaction=None)
    assert [d.id for d in docs] == ["a", "b"]
    assert docs[1].data == {"n": 2}


def test_commit_batch(store, client):
    batch = client.batch.return_value

    store.commit_batch([BatchUpdate("people", "a", {"x": 1}), BatchUpdate("people", "b", {"x": 1})])

    assert batch.update.call_count == 2
    batch.commit.assert_called_once_with()


def test_commit_batch_not_found(store, client):
    client.batch.return_value.commit.side_effect = api_exceptions.NotFound("no entity")
    with pytest.raises(DocumentNotFoundError):
        store.commit_batch([BatchUpdate("people", "a", {"x": 1})])


def test_run_transaction(store, client):
    with mock.patch.object(firestore, "transactional") as transactional:
        transactional.return_value.return_value = "result"
        body = mock.MagicMock()

        assert store.run_transaction(body) == "result"

    transactional.assert_called_once_with(body)
    transactional.return_value.assert_called_once_with(client.transaction.return_value)


def test_close(store, client):
    store.close()
    client.close.assert_called_once_with()


def test_is_not_found_error():
    assert is_not_found_error(api_exceptions.NotFound("gone"))
    assert is_not_found_error(DocumentNotFoundError("gone"))
    assert not is_not_found_error(api_exceptions.PermissionDenied("no"))
    assert not is_not_found_error(None)
