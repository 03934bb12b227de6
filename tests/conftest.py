"""Pytest configuration and fixtures."""

import pytest

from fireorm import Document, Mapped, Mapper, Session, identifier, mapped_field
from fireorm.backends.memory import MemoryStore


class Item(Document):
    id: Mapped[str] = identifier()
    name: Mapped[str] = mapped_field("name")
    price: Mapped[float] = mapped_field("price", default=0.0)
    tags: Mapped[list] = mapped_field("tags", default_factory=list)


class CountingStore(MemoryStore):
    """MemoryStore recording every batch commit and page query."""

    def __init__(self, fail_on_commit: int | None = None):
        super().__init__()
        self.commits = []
        self.queries = 0
        self.last_query = None
        self.fail_on_commit = fail_on_commit

    def run_query(self, query, transaction=None):
        self.queries += 1
        self.last_query = query
        return super().run_query(query, transaction)

    def commit_batch(self, writes):
        if self.fail_on_commit is not None and len(self.commits) + 1 == self.fail_on_commit:
            raise RuntimeError("backend unavailable")
        super().commit_batch(writes)
        self.commits.append(len(writes))


@pytest.fixture
def store():
    """Create an in-memory document store."""
    store = MemoryStore()
    yield store
    store.close()


@pytest.fixture
def mapper(store):
    """Create a mapper over the in-memory store."""
    return Mapper(Session(store))


@pytest.fixture
def counting_store():
    return CountingStore()


def seed_items(store, count, price=10.0):
    """Write ``count`` items directly into the store."""
    for i in range(count):
        store.set_document("items", f"item-{i:04d}", {"name": f"Item {i}", "price": price, "tags": []})
