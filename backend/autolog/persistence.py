from __future__ import annotations

import copy
import logging
import re
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Iterable

from bson import ObjectId, json_util
from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from .config import settings
from .store import (
    EXPENSE_CATEGORIES,
    OWNED_COLLECTIONS,
    USER_PREFERENCES,
    USERS,
    InMemoryStore,
    store,
)

logger = logging.getLogger(__name__)

Query = dict[str, Any]
SortSpec = list[tuple[str, int]]

UNIQUE_KEYS: dict[str, list[tuple[str, ...]]] = {
    USERS: [("email",)],
    EXPENSE_CATEGORIES: [("userId", "name")],
    USER_PREFERENCES: [("userId",)],
}

_MISSING = object()
_JSON_OPTIONS = json_util.JSONOptions(json_mode=json_util.JSONMode.RELAXED, tz_aware=True, tzinfo=timezone.utc)


def _lookup(document: Any, path: str) -> Any:
    current = document
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _sort_value(value: Any) -> tuple[int, Any]:
    if value is None or value is _MISSING:
        return (0, 0)
    if isinstance(value, bool):
        return (6, value)
    if isinstance(value, (int, float)):
        return (1, value)
    if isinstance(value, str):
        return (2, value)
    if isinstance(value, dict):
        return (3, repr(sorted(value.items(), key=lambda item: item[0])))
    if isinstance(value, (list, tuple)):
        return (4, repr(value))
    if isinstance(value, ObjectId):
        return (5, str(value))
    if isinstance(value, datetime):
        return (7, value.timestamp())
    return (8, str(value))


def _compare(left: Any, right: Any) -> int | None:
    a, b = _sort_value(left), _sort_value(right)
    if a[0] != b[0]:
        return None
    return (a > b) - (a < b)


def _equals(value: Any, expected: Any) -> bool:
    if value is _MISSING:
        return expected is None
    if isinstance(value, list) and not isinstance(expected, list):
        return expected in value
    return value == expected


def _regex_matches(value: Any, pattern: Any, options: str) -> bool:
    if not isinstance(value, str):
        return False
    if isinstance(pattern, re.Pattern):
        return pattern.search(value) is not None
    flags = re.IGNORECASE if "i" in options else 0
    return re.search(pattern, value, flags) is not None


def _apply_operator(value: Any, operator: str, argument: Any, condition: dict[str, Any]) -> bool:
    if operator == "$eq":
        return _equals(value, argument)
    if operator == "$ne":
        return not _equals(value, argument)
    if operator == "$in":
        return any(_equals(value, candidate) for candidate in argument)
    if operator == "$nin":
        return not any(_equals(value, candidate) for candidate in argument)
    if operator == "$exists":
        return (value is not _MISSING) == bool(argument)
    if operator == "$regex":
        return _regex_matches(value, argument, condition.get("$options", ""))
    if operator in {"$gt", "$gte", "$lt", "$lte"}:
        if value is _MISSING:
            return False
        result = _compare(value, argument)
        if result is None:
            return False
        return {
            "$gt": result > 0,
            "$gte": result >= 0,
            "$lt": result < 0,
            "$lte": result <= 0,
        }[operator]
    raise ValueError(f"unsupported query operator: {operator}")


def _is_operator_document(condition: Any) -> bool:
    return isinstance(condition, dict) and bool(condition) and all(str(key).startswith("$") for key in condition)


def matches(document: dict[str, Any], query: Query | None) -> bool:
    for key, condition in (query or {}).items():
        if key == "$or":
            if not any(matches(document, sub) for sub in condition):
                return False
        elif key == "$and":
            if not all(matches(document, sub) for sub in condition):
                return False
        elif _is_operator_document(condition):
            value = _lookup(document, key)
            for operator, argument in condition.items():
                if operator == "$options":
                    continue
                if not _apply_operator(value, operator, argument, condition):
                    return False
        elif not _equals(_lookup(document, key), condition):
            return False
    return True


def _as_operator_update(update: dict[str, Any]) -> dict[str, Any]:
    if any(str(key).startswith("$") for key in update):
        return update
    return {"$set": update}


def apply_update(document: dict[str, Any], update: dict[str, Any], inserting: bool = False) -> dict[str, Any]:
    for operator, fields in _as_operator_update(update).items():
        if operator == "$set" or (operator == "$setOnInsert" and inserting):
            for key, value in fields.items():
                document[key] = copy.deepcopy(value)
        elif operator == "$unset":
            for key in fields:
                document.pop(key, None)
        elif operator != "$setOnInsert":
            raise ValueError(f"unsupported update operator: {operator}")
    return document


def _seed_from_query(query: Query) -> dict[str, Any]:
    return {
        key: copy.deepcopy(value)
        for key, value in query.items()
        if not key.startswith("$") and "." not in key and not _is_operator_document(value)
    }


def _apply_sort(rows: list[dict[str, Any]], sort: SortSpec | None) -> list[dict[str, Any]]:
    for field, direction in reversed(sort or []):
        rows.sort(key=lambda row: _sort_value(_lookup(row, field)), reverse=direction < 0)
    return rows


def _window(rows: list[dict[str, Any]], skip: int, limit: int | None) -> list[dict[str, Any]]:
    rows = rows[skip:] if skip else rows
    return rows[:limit] if limit else rows


def _mask_credentials(uri: str) -> str:
    return re.sub(r"//([^:/@]+):([^@]+)@", "//***:***@", uri)


class DocumentStore:
    name = "abstract"

    def find(self, collection: str, query: Query | None = None, sort: SortSpec | None = None, skip: int = 0, limit: int | None = None) -> list[dict[str, Any]]:
        raise NotImplementedError

    def find_one(self, collection: str, query: Query | None = None) -> dict[str, Any] | None:
        raise NotImplementedError

    def count(self, collection: str, query: Query | None = None) -> int:
        raise NotImplementedError

    def insert_one(self, collection: str, document: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError

    def insert_many(self, collection: str, documents: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
        return [self.insert_one(collection, document) for document in documents]

    def find_one_and_update(self, collection: str, query: Query, update: dict[str, Any], upsert: bool = False) -> dict[str, Any] | None:
        raise NotImplementedError

    def find_one_and_delete(self, collection: str, query: Query) -> dict[str, Any] | None:
        raise NotImplementedError

    def delete_one(self, collection: str, query: Query) -> int:
        return 1 if self.find_one_and_delete(collection, query) is not None else 0

    def save(self, collection: str, document: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError

    def ensure_indexes(self) -> None:
        return None

    def _check_unique(self, collection: str, document: dict[str, Any]) -> None:
        for keys in UNIQUE_KEYS.get(collection, []):
            key_filter = {key: document.get(key) for key in keys}
            if any(value is None for value in key_filter.values()):
                continue
            for other in self.find(collection, key_filter):
                if other.get("_id") != document.get("_id"):
                    raise DuplicateKeyError(f"duplicate key in {collection}: {key_filter}", 11000)


class InMemoryDocumentStore(DocumentStore):
    name = "memory"

    def __init__(self, backing: InMemoryStore | None = None) -> None:
        self.backing = backing if backing is not None else InMemoryStore()

    def _rows(self, collection: str) -> dict[str, dict[str, Any]]:
        return self.backing.collection(collection)

    def _matching(self, collection: str, query: Query | None) -> list[tuple[str, dict[str, Any]]]:
        return [(key, doc) for key, doc in self._rows(collection).items() if matches(doc, query)]

    def find(self, collection: str, query: Query | None = None, sort: SortSpec | None = None, skip: int = 0, limit: int | None = None) -> list[dict[str, Any]]:
        rows = [doc for _, doc in self._matching(collection, query)]
        return [copy.deepcopy(doc) for doc in _window(_apply_sort(rows, sort), skip, limit)]

    def find_one(self, collection: str, query: Query | None = None) -> dict[str, Any] | None:
        found = self._matching(collection, query)
        return copy.deepcopy(found[0][1]) if found else None

    def count(self, collection: str, query: Query | None = None) -> int:
        return len(self._matching(collection, query))

    def insert_one(self, collection: str, document: dict[str, Any]) -> dict[str, Any]:
        row = copy.deepcopy(document)
        row.setdefault("_id", self.backing.make_id())
        key = str(row["_id"])
        rows = self._rows(collection)
        if key in rows:
            raise DuplicateKeyError(f"duplicate _id in {collection}: {key}", 11000)
        self._check_unique(collection, row)
        rows[key] = row
        return copy.deepcopy(row)

    def find_one_and_update(self, collection: str, query: Query, update: dict[str, Any], upsert: bool = False) -> dict[str, Any] | None:
        found = self._matching(collection, query)
        if found:
            key, original = found[0]
            row = apply_update(copy.deepcopy(original), update)
            row["_id"] = original["_id"]
            self._check_unique(collection, row)
            self._rows(collection)[key] = row
            return copy.deepcopy(row)
        if not upsert:
            return None
        row = apply_update(_seed_from_query(query), update, inserting=True)
        return self.insert_one(collection, row)

    def find_one_and_delete(self, collection: str, query: Query) -> dict[str, Any] | None:
        found = self._matching(collection, query)
        if not found:
            return None
        key, _ = found[0]
        return self._rows(collection).pop(key)

    def save(self, collection: str, document: dict[str, Any]) -> dict[str, Any]:
        row = copy.deepcopy(document)
        row.setdefault("_id", self.backing.make_id())
        self._check_unique(collection, row)
        self._rows(collection)[str(row["_id"])] = row
        return copy.deepcopy(row)


class MongoDocumentStore(DocumentStore):
    name = "mongo"

    def __init__(self, uri: str, database: str) -> None:
        self.client: MongoClient = MongoClient(uri, serverSelectionTimeoutMS=5000, socketTimeoutMS=45000)
        self.db = self.client[database]

    def ping(self) -> None:
        self.client.admin.command("ping")

    def find(self, collection: str, query: Query | None = None, sort: SortSpec | None = None, skip: int = 0, limit: int | None = None) -> list[dict[str, Any]]:
        cursor = self.db[collection].find(query or {})
        if sort:
            cursor = cursor.sort(sort)
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)

    def find_one(self, collection: str, query: Query | None = None) -> dict[str, Any] | None:
        return self.db[collection].find_one(query or {})

    def count(self, collection: str, query: Query | None = None) -> int:
        return self.db[collection].count_documents(query or {})

    def insert_one(self, collection: str, document: dict[str, Any]) -> dict[str, Any]:
        row = dict(document)
        self.db[collection].insert_one(row)
        return row

    def insert_many(self, collection: str, documents: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
        rows = [dict(document) for document in documents]
        if rows:
            self.db[collection].insert_many(rows, ordered=False)
        return rows

    def find_one_and_update(self, collection: str, query: Query, update: dict[str, Any], upsert: bool = False) -> dict[str, Any] | None:
        return self.db[collection].find_one_and_update(
            query,
            _as_operator_update(update),
            return_document=ReturnDocument.AFTER,
            upsert=upsert,
        )

    def find_one_and_delete(self, collection: str, query: Query) -> dict[str, Any] | None:
        return self.db[collection].find_one_and_delete(query)

    def delete_one(self, collection: str, query: Query) -> int:
        return self.db[collection].delete_one(query).deleted_count

    def save(self, collection: str, document: dict[str, Any]) -> dict[str, Any]:
        row = dict(document)
        if "_id" not in row:
            self.db[collection].insert_one(row)
            return row
        self.db[collection].replace_one({"_id": row["_id"]}, row, upsert=True)
        return row

    def ensure_indexes(self) -> None:
        for collection in OWNED_COLLECTIONS:
            self.db[collection].create_index([("userId", ASCENDING)])
        for collection, key_sets in UNIQUE_KEYS.items():
            for keys in key_sets:
                self.db[collection].create_index([(key, ASCENDING) for key in keys], unique=True)


def _owner_of(query: Query | None) -> str | None:
    if not query:
        return None
    owner = query.get("userId")
    if isinstance(owner, str):
        return owner
    branches = query.get("$or")
    if branches:
        owners = {_owner_of(branch) for branch in branches}
        if len(owners) == 1 and None not in owners:
            return owners.pop()
    return None


class SqlDocumentStore(DocumentStore):
    name = "sql"

    def __init__(self, database_url: str) -> None:
        self.engine: Engine = create_engine(database_url, future=True, pool_pre_ping=True)
        self.ensure_indexes()

    def _run(self, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        with self.engine.begin() as conn:
            result = conn.execute(text(sql), params or {})
            if result.returns_rows:
                return [dict(row._mapping) for row in result.fetchall()]
            return []

    def ensure_indexes(self) -> None:
        self._run(
            """
            create table if not exists documents (
              collection varchar(64) not null,
              doc_id varchar(64) not null,
              user_id varchar(64),
              body text not null,
              primary key (collection, doc_id)
            )
            """
        )
        self._run("create index if not exists idx_documents_owner on documents(collection, user_id)")

    def _load(self, collection: str, query: Query | None) -> list[dict[str, Any]]:
        owner = _owner_of(query)
        if owner is None:
            rows = self._run(
                "select body from documents where collection = :collection order by doc_id",
                {"collection": collection},
            )
        else:
            rows = self._run(
                "select body from documents where collection = :collection and user_id = :user_id order by doc_id",
                {"collection": collection, "user_id": owner},
            )
        documents = [json_util.loads(row["body"], json_options=_JSON_OPTIONS) for row in rows]
        return [document for document in documents if matches(document, query)]

    def _params(self, collection: str, document: dict[str, Any]) -> dict[str, Any]:
        owner = document.get("userId")
        return {
            "collection": collection,
            "doc_id": str(document["_id"]),
            "user_id": str(owner) if owner is not None else None,
            "body": json_util.dumps(document, json_options=_JSON_OPTIONS),
        }

    def _insert(self, collection: str, document: dict[str, Any]) -> None:
        self._run(
            "insert into documents (collection, doc_id, user_id, body) values (:collection, :doc_id, :user_id, :body)",
            self._params(collection, document),
        )

    def _replace(self, collection: str, document: dict[str, Any]) -> None:
        self._run(
            "update documents set user_id = :user_id, body = :body where collection = :collection and doc_id = :doc_id",
            self._params(collection, document),
        )

    def _exists(self, collection: str, doc_id: Any) -> bool:
        rows = self._run(
            "select 1 as ok from documents where collection = :collection and doc_id = :doc_id limit 1",
            {"collection": collection, "doc_id": str(doc_id)},
        )
        return bool(rows)

    def find(self, collection: str, query: Query | None = None, sort: SortSpec | None = None, skip: int = 0, limit: int | None = None) -> list[dict[str, Any]]:
        return _window(_apply_sort(self._load(collection, query), sort), skip, limit)

    def find_one(self, collection: str, query: Query | None = None) -> dict[str, Any] | None:
        found = self._load(collection, query)
        return found[0] if found else None

    def count(self, collection: str, query: Query | None = None) -> int:
        return len(self._load(collection, query))

    def insert_one(self, collection: str, document: dict[str, Any]) -> dict[str, Any]:
        row = copy.deepcopy(document)
        row.setdefault("_id", ObjectId())
        if self._exists(collection, row["_id"]):
            raise DuplicateKeyError(f"duplicate _id in {collection}: {row['_id']}", 11000)
        self._check_unique(collection, row)
        self._insert(collection, row)
        return row

    def find_one_and_update(self, collection: str, query: Query, update: dict[str, Any], upsert: bool = False) -> dict[str, Any] | None:
        found = self._load(collection, query)
        if found:
            original = found[0]
            row = apply_update(copy.deepcopy(original), update)
            row["_id"] = original["_id"]
            self._check_unique(collection, row)
            self._replace(collection, row)
            return row
        if not upsert:
            return None
        return self.insert_one(collection, apply_update(_seed_from_query(query), update, inserting=True))

    def find_one_and_delete(self, collection: str, query: Query) -> dict[str, Any] | None:
        found = self._load(collection, query)
        if not found:
            return None
        self._run(
            "delete from documents where collection = :collection and doc_id = :doc_id",
            {"collection": collection, "doc_id": str(found[0]["_id"])},
        )
        return found[0]

    def save(self, collection: str, document: dict[str, Any]) -> dict[str, Any]:
        row = copy.deepcopy(document)
        row.setdefault("_id", ObjectId())
        self._check_unique(collection, row)
        if self._exists(collection, row["_id"]):
            self._replace(collection, row)
        else:
            self._insert(collection, row)
        return row


@lru_cache(maxsize=None)
def connect() -> DocumentStore:
    backend = settings.storage_backend
    if backend == "mongo":
        logger.info("Connecting to MongoDB %s (database %s)", _mask_credentials(settings.mongodb_uri), settings.mongodb_db)
        document_store = MongoDocumentStore(settings.mongodb_uri, settings.mongodb_db)
        try:
            document_store.ping()
        except Exception:
            document_store.client.close()
            raise
        return document_store
    if backend in {"sql", "postgres"}:
        logger.info("Connecting to SQL document store %s", _mask_credentials(settings.database_url))
        return SqlDocumentStore(settings.database_url)
    logger.info("Using in-memory document store")
    return InMemoryDocumentStore(store)
