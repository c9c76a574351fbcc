"""Helpers that give every outbound record one canonical string ``id``.

Documents written by this service carry ``id`` from the moment they are created.
Older data may only have the native ``_id`` (or only ``id``), so reads pass through
these helpers before they are rendered.
"""
from __future__ import annotations

import re
from typing import Any, Iterable, Optional

from bson import ObjectId

OBJECT_ID_PATTERN = re.compile(r"^[0-9a-fA-F]{24}$")


def get_object_id(record: Any) -> str:
    if not isinstance(record, dict):
        return ""
    explicit = record.get("id")
    if explicit:
        return str(explicit)
    native = record.get("_id")
    if native is not None and native != "":
        return str(native)
    return ""


def normalize_id(record: dict[str, Any]) -> dict[str, Any]:
    if not isinstance(record, dict):
        return record
    normalized = dict(record)
    if not normalized.get("id"):
        normalized["id"] = get_object_id(record)
    if normalized.get("_id") in (None, "") and normalized["id"]:
        normalized["_id"] = normalized["id"]
    return normalized


def normalize_ids(records: Optional[Iterable[dict[str, Any]]]) -> list[dict[str, Any]]:
    if not records:
        return []
    return [normalize_id(record) for record in records]


def has_same_id(left: Any, right: Any) -> bool:
    left_id = get_object_id(left)
    return bool(left_id) and left_id == get_object_id(right)


def remove_duplicate_ids(records: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    seen: set[str] = set()
    unique: list[dict[str, Any]] = []
    for record in records:
        record_id = get_object_id(record)
        if record_id and record_id in seen:
            continue
        if record_id:
            seen.add(record_id)
        unique.append(record)
    return unique


def find_by_id(records: Iterable[dict[str, Any]], target: Any) -> Optional[dict[str, Any]]:
    wanted = str(target) if target is not None else ""
    if not wanted:
        return None
    for record in records:
        if get_object_id(record) == wanted:
            return record
    return None


def get_user_id(record: Any) -> str:
    if not isinstance(record, dict):
        return ""
    owner = record.get("userId")
    return str(owner) if owner is not None else ""


def is_object_id(value: Any) -> bool:
    return isinstance(value, ObjectId) or (isinstance(value, str) and OBJECT_ID_PATTERN.match(value) is not None)


def as_object_id(value: Any) -> Any:
    """Native id for a 24-hex string, the value itself otherwise."""
    if isinstance(value, str) and OBJECT_ID_PATTERN.match(value):
        return ObjectId(value)
    return value
