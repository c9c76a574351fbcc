import re
from datetime import datetime, timezone

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

from autolog import persistence
from autolog.config import Settings
from autolog.persistence import InMemoryDocumentStore, SqlDocumentStore, apply_update, connect, matches
from autolog.store import EXPENSE_CATEGORIES, USER_PREFERENCES, USERS, VEHICLES, InMemoryStore


@pytest.fixture(params=["memory", "sql"])
def document_store(request, tmp_path):
    if request.param == "memory":
        return InMemoryDocumentStore(InMemoryStore())
    return SqlDocumentStore(f"sqlite:///{tmp_path / 'autolog.db'}")


def test_query_operators() -> None:
    doc = {"name": "Shell", "userId": "u1", "tags": ["a", "b"], "meta": {"count": 3}}
    assert matches(doc, {"name": "Shell", "userId": "u1"})
    assert matches(doc, {"tags": "a"})
    assert matches(doc, {"meta.count": {"$gte": 3, "$lt": 4}})
    assert matches(doc, {"name": {"$regex": "^shell$", "$options": "i"}})
    assert matches(doc, {"name": {"$regex": re.compile("^Sh")}})
    assert not matches(doc, {"name": {"$regex": "^shell$"}})
    assert matches(doc, {"$or": [{"name": "BP"}, {"name": "Shell"}]})
    assert matches(doc, {"missing": {"$exists": False}})
    assert matches(doc, {"name": {"$in": ["BP", "Shell"]}, "userId": {"$ne": "u2"}})
    assert not matches(doc, {"name": {"$nin": ["Shell"]}})
    assert not matches(doc, {"meta.count": {"$gt": "2"}})
    with pytest.raises(ValueError):
        matches(doc, {"name": {"$where": "1"}})


def test_apply_update_operators() -> None:
    doc = {"a": 1, "b": 2}
    assert apply_update(dict(doc), {"$set": {"a": 5}, "$unset": {"b": ""}}) == {"a": 5}
    assert apply_update(dict(doc), {"$setOnInsert": {"c": 3}}) == doc
    assert apply_update({}, {"$setOnInsert": {"c": 3}}, inserting=True) == {"c": 3}
    assert apply_update(dict(doc), {"a": 9}) == {"a": 9, "b": 2}
    with pytest.raises(ValueError):
        apply_update(dict(doc), {"$inc": {"a": 1}})


def test_insert_find_sort_and_window(document_store) -> None:
    for year, name in [(2019, "b"), (2021, "a"), (2020, "c")]:
        document_store.insert_one(VEHICLES, {"userId": "u1", "name": name, "year": year})
    document_store.insert_one(VEHICLES, {"userId": "u2", "name": "z", "year": 2022})

    rows = document_store.find(VEHICLES, {"userId": "u1"}, sort=[("year", -1)])
    assert [row["name"] for row in rows] == ["a", "c", "b"]
    assert isinstance(rows[0]["_id"], ObjectId)
    window = document_store.find(VEHICLES, {"userId": "u1"}, sort=[("name", 1)], skip=1, limit=1)
    assert [row["name"] for row in window] == ["b"]
    assert document_store.count(VEHICLES, {"userId": "u1"}) == 3
    assert document_store.find_one(VEHICLES, {"name": "missing"}) is None


def test_datetimes_survive_storage(document_store) -> None:
    added = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
    saved = document_store.insert_one(VEHICLES, {"userId": "u1", "dateAdded": added})
    loaded = document_store.find_one(VEHICLES, {"_id": saved["_id"]})
    assert loaded["dateAdded"] == added


def test_update_upsert_and_delete(document_store) -> None:
    assert document_store.find_one_and_update(USER_PREFERENCES, {"userId": "u1"}, {"$set": {"theme": "dark"}}) is None
    created = document_store.find_one_and_update(
        USER_PREFERENCES,
        {"userId": "u1"},
        {"$set": {"theme": "dark"}, "$setOnInsert": {"language": "en"}},
        upsert=True,
    )
    assert created["userId"] == "u1"
    assert created["language"] == "en"

    updated = document_store.find_one_and_update(
        USER_PREFERENCES,
        {"userId": "u1"},
        {"$set": {"theme": "light"}, "$setOnInsert": {"language": "zh"}},
        upsert=True,
    )
    assert updated["_id"] == created["_id"]
    assert updated["theme"] == "light"
    assert updated["language"] == "en"
    assert document_store.count(USER_PREFERENCES) == 1

    removed = document_store.find_one_and_delete(USER_PREFERENCES, {"userId": "u1"})
    assert removed["theme"] == "light"
    assert document_store.find_one_and_delete(USER_PREFERENCES, {"userId": "u1"}) is None
    assert document_store.delete_one(USER_PREFERENCES, {"userId": "u1"}) == 0


def test_unique_keys_are_enforced(document_store) -> None:
    document_store.insert_one(USERS, {"email": "a@example.com"})
    with pytest.raises(DuplicateKeyError):
        document_store.insert_one(USERS, {"email": "a@example.com"})
    document_store.insert_many(EXPENSE_CATEGORIES, [{"userId": "u1", "name": "Fuel"}, {"userId": "u2", "name": "Fuel"}])
    with pytest.raises(DuplicateKeyError):
        document_store.insert_one(EXPENSE_CATEGORIES, {"userId": "u1", "name": "Fuel"})
    saved = document_store.insert_one(USERS, {"email": "b@example.com"})
    with pytest.raises(DuplicateKeyError):
        document_store.insert_one(USERS, {"_id": saved["_id"], "email": "c@example.com"})


def test_save_replaces_whole_document(document_store) -> None:
    saved = document_store.insert_one(VEHICLES, {"userId": "u1", "name": "Car", "extra": 1})
    document_store.save(VEHICLES, {"_id": saved["_id"], "userId": "u1", "name": "Car", "id": str(saved["_id"])})
    loaded = document_store.find_one(VEHICLES, {"id": str(saved["_id"])})
    assert "extra" not in loaded
    assert document_store.count(VEHICLES) == 1


def test_returned_documents_are_copies() -> None:
    document_store = InMemoryDocumentStore(InMemoryStore())
    saved = document_store.insert_one(VEHICLES, {"userId": "u1", "tags": []})
    saved["tags"].append("mutated")
    assert document_store.find_one(VEHICLES, {"_id": saved["_id"]})["tags"] == []


def test_failed_mongo_connect_closes_its_client(monkeypatch) -> None:
    clients = []

    class RecordingClient:
        closed = False

        def close(self) -> None:
            self.closed = True

    class UnreachableMongo:
        def __init__(self, uri: str, database: str) -> None:
            self.client = RecordingClient()
            clients.append(self.client)

        def ping(self) -> None:
            raise ServerSelectionTimeoutError("no servers available")

    monkeypatch.setattr(persistence, "settings", Settings(storage_backend="mongo"))
    monkeypatch.setattr(persistence, "MongoDocumentStore", UnreachableMongo)
    connect.cache_clear()
    try:
        for _ in range(3):
            with pytest.raises(ServerSelectionTimeoutError):
                connect()
    finally:
        connect.cache_clear()
    assert len(clients) == 3
    assert all(client.closed for client in clients)
