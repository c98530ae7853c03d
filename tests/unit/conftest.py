"""Unit test configuration and shared fixtures."""

from __future__ import annotations

import copy
from types import SimpleNamespace
from typing import Any

import pytest

from step_migrator.core.connection import ConnectionManager
from step_migrator.core.runner import MigrationRunner

# ---------------------------------------------------------------------------
# In-memory stand-ins for the pymongo surface the engine uses
# ---------------------------------------------------------------------------


def _matches(doc: dict[str, Any], query: dict[str, Any] | None) -> bool:
    for key, condition in (query or {}).items():
        value = doc.get(key)
        if isinstance(condition, dict) and "$gt" in condition:
            if value is None or not value > condition["$gt"]:
                return False
        elif value != condition:
            return False
    return True


class FakeCursor:
    """Supports the ``find().sort().limit()`` chain and iteration."""

    def __init__(self, docs: list[dict[str, Any]]) -> None:
        self._docs = docs

    def sort(self, key: str, direction: int = 1) -> FakeCursor:
        self._docs = sorted(self._docs, key=lambda d: d[key], reverse=direction < 0)
        return self

    def limit(self, n: int) -> FakeCursor:
        if n:
            self._docs = self._docs[:n]
        return self

    def __iter__(self):
        return iter(copy.deepcopy(self._docs))


class FakeCollection:
    """A dict-backed collection recording every find and write it receives."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.docs: dict[Any, dict[str, Any]] = {}
        self.find_calls: list[dict[str, Any]] = []
        self.writes: list[dict[str, Any]] = []
        self.fail_on_find: Exception | None = None

    def insert_many(self, docs: list[dict[str, Any]]) -> None:
        for doc in docs:
            self.docs[doc["_id"]] = copy.deepcopy(doc)

    def find(self, query: dict[str, Any] | None = None) -> FakeCursor:
        if self.fail_on_find is not None:
            raise self.fail_on_find
        self.find_calls.append(copy.deepcopy(query or {}))
        return FakeCursor([d for d in self.docs.values() if _matches(d, query)])

    def count_documents(self, query: dict[str, Any]) -> int:
        return sum(1 for d in self.docs.values() if _matches(d, query))

    def replace_one(
        self, query: dict[str, Any], doc: dict[str, Any], upsert: bool = False
    ) -> SimpleNamespace:
        self.writes.append(copy.deepcopy(doc))
        for key, existing in self.docs.items():
            if _matches(existing, query):
                replacement = copy.deepcopy(doc)
                replacement["_id"] = key
                self.docs[key] = replacement
                return SimpleNamespace(matched_count=1, upserted_id=None)
        if not upsert:
            return SimpleNamespace(matched_count=0, upserted_id=None)
        new_doc = copy.deepcopy(doc)
        new_id = new_doc.setdefault("_id", query.get("_id", f"generated-{len(self.docs) + 1}"))
        self.docs[new_id] = new_doc
        return SimpleNamespace(matched_count=0, upserted_id=new_id)

    def delete_one(self, query: dict[str, Any]) -> None:
        for key, existing in list(self.docs.items()):
            if _matches(existing, query):
                del self.docs[key]
                return


class FakeDatabase:
    def __init__(self, name: str = "testdb") -> None:
        self.name = name
        self.collections: dict[str, FakeCollection] = {}
        self.dropped: list[str] = []

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self.collections:
            self.collections[name] = FakeCollection(name)
        return self.collections[name]

    def drop_collection(self, name: str) -> None:
        self.dropped.append(name)
        self.collections.pop(name, None)


class FakeClient:
    def __init__(self, db: FakeDatabase) -> None:
        self._db = db
        self.admin = SimpleNamespace(command=lambda name: {"ok": 1})
        self.closed = False

    def __getitem__(self, name: str) -> FakeDatabase:
        return self._db

    def get_default_database(self) -> FakeDatabase:
        return self._db

    def close(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def seed(collection: FakeCollection, count: int, start: int = 1) -> list[dict[str, Any]]:
    """Insert ``count`` documents with integer ids ``start..start+count-1``."""
    docs = [{"_id": i, "name": f"doc-{i}"} for i in range(start, start + count)]
    collection.insert_many(docs)
    return docs


@pytest.fixture()
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture()
def make_runner(fake_db):
    """Factory fixture returning a connected runner over ``fake_db``.

    Usage in tests::

        def test_something(make_runner, fake_db):
            runner = make_runner()
    """

    def _make(db: FakeDatabase | None = None, load: bool = True) -> MigrationRunner:
        target_db = db or fake_db
        connection = ConnectionManager(
            "mongodb://localhost:27017/testdb",
            client_factory=lambda uri: FakeClient(target_db),
        )
        runner = MigrationRunner(connection, show_progress=False)
        runner.connect()
        if load:
            runner.load_checkpoints()
        return runner

    return _make


def make_recording_processor(outcome: Any = "inserted", fail_on_call: int | None = None):
    """Build a processor that records each batch it receives.

    ``fail_on_call`` (1-based) makes that invocation raise ``RuntimeError``.
    """
    calls: list[tuple[list[Any], bool]] = []

    def processor(batch, dry_run):
        calls.append(([d["_id"] for d in batch], dry_run))
        if fail_on_call is not None and len(calls) == fail_on_call:
            raise RuntimeError("bulk write failed")
        return [outcome for _ in batch]

    processor.calls = calls  # type: ignore[attr-defined]
    return processor
