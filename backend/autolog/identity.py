from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Depends, Request

from .auth_utils import SessionRegistry
from .config import settings
from .errors import Unauthorized
from .persistence import DocumentStore, connect

SESSION_COOKIE_NAME = "autolog_session"

sessions = SessionRegistry(settings.session_timeout_minutes)


@dataclass(frozen=True)
class Identity:
    authenticated: bool
    user_id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    token: Optional[str] = None


ANONYMOUS = Identity(authenticated=False)


def extract_token(request: Request) -> str | None:
    auth = request.headers.get("Authorization")
    if auth:
        parts = auth.split(" ", 1)
        if len(parts) == 2 and parts[0].lower() == "bearer":
            return parts[1].strip()
    return request.cookies.get(SESSION_COOKIE_NAME)


def resolve_identity(request: Request) -> Identity:
    token = extract_token(request)
    session = sessions.lookup(token)
    if session is None:
        return ANONYMOUS
    return Identity(
        authenticated=True,
        user_id=session["user_id"],
        name=session.get("name"),
        email=session.get("email"),
        token=token,
    )


class RequestContext:
    """Identity plus a store that is only opened on first use."""

    def __init__(self, identity: Identity, provider: Callable[[], DocumentStore]) -> None:
        self.identity = identity
        self._provider = provider
        self._store: DocumentStore | None = None

    def require_user(self, envelope: bool = False) -> str:
        if not self.identity.authenticated or not self.identity.user_id:
            raise Unauthorized(envelope=envelope)
        return self.identity.user_id

    def store(self) -> DocumentStore:
        if self._store is None:
            self._store = self._provider()
        return self._store


def get_connection_provider() -> Callable[[], DocumentStore]:
    return connect


def get_context(
    request: Request,
    provider: Callable[[], DocumentStore] = Depends(get_connection_provider),
) -> RequestContext:
    return RequestContext(resolve_identity(request), provider)
