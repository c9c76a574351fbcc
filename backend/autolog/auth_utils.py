from __future__ import annotations

import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any


def hash_password(password: str) -> str:
    salt = secrets.token_hex(16)
    digest = hashlib.sha256(f"{salt}:{password}".encode("utf-8")).hexdigest()
    return f"{salt}${digest}"


def verify_password(password: str, stored_hash: str | None) -> bool:
    if not stored_hash:
        return False
    try:
        salt, expected = stored_hash.split("$", 1)
    except ValueError:
        return False
    digest = hashlib.sha256(f"{salt}:{password}".encode("utf-8")).hexdigest()
    return secrets.compare_digest(digest, expected)


SESSION_MAX_AGE = timedelta(days=30)


class SessionRegistry:
    """Process-local bearer sessions with a fixed lifetime and an optional idle timeout."""

    def __init__(self, timeout_minutes: int | None = None, max_age: timedelta = SESSION_MAX_AGE) -> None:
        self.timeout_minutes = timeout_minutes
        self.max_age = max_age
        self.active: dict[str, dict[str, Any]] = {}

    def create(self, user: dict[str, Any]) -> str:
        token = secrets.token_urlsafe(32)
        now = datetime.now(timezone.utc)
        self.active[token] = {
            "user_id": str(user["id"]),
            "name": user.get("name"),
            "email": user.get("email"),
            "created_at": now,
            "last_seen": now,
        }
        return token

    def lookup(self, token: str | None) -> dict[str, Any] | None:
        if not token:
            return None
        session = self.active.get(token)
        if session is None:
            return None
        now = datetime.now(timezone.utc)
        if now > session["created_at"] + self.max_age:
            self.active.pop(token, None)
            return None
        if self.timeout_minutes and (now - session["last_seen"]) > timedelta(minutes=self.timeout_minutes):
            self.active.pop(token, None)
            return None
        session["last_seen"] = now
        return session

    def expires(self, token: str) -> datetime | None:
        session = self.active.get(token)
        if session is None:
            return None
        hard_limit = session["created_at"] + self.max_age
        if self.timeout_minutes:
            return min(hard_limit, session["last_seen"] + timedelta(minutes=self.timeout_minutes))
        return hard_limit

    def drop(self, token: str | None) -> None:
        if token:
            self.active.pop(token, None)

    def clear(self) -> None:
        self.active.clear()
