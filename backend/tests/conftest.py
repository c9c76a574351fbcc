from typing import Any, Callable

import pytest

from autolog.identity import get_connection_provider, sessions
from autolog.main import app
from autolog.persistence import DocumentStore, InMemoryDocumentStore
from autolog.store import InMemoryStore


class StoreSpy:
    """Wraps a document store and records every public call made through it."""

    def __init__(self, inner: DocumentStore) -> None:
        self.inner = inner
        self.calls: list[str] = []

    def __getattr__(self, name: str) -> Any:
        attr = getattr(self.inner, name)
        if not callable(attr):
            return attr

        def recorder(*args: Any, **kwargs: Any) -> Any:
            self.calls.append(name)
            return attr(*args, **kwargs)

        return recorder


class CountingProvider:
    def __init__(self, document_store: Any) -> None:
        self.document_store = document_store
        self.connects = 0

    def __call__(self) -> Any:
        self.connects += 1
        return self.document_store


@pytest.fixture
def memory_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore(InMemoryStore())


@pytest.fixture
def spy(memory_store: InMemoryDocumentStore) -> StoreSpy:
    return StoreSpy(memory_store)


@pytest.fixture
def provider(spy: StoreSpy) -> CountingProvider:
    return CountingProvider(spy)


@pytest.fixture(autouse=True)
def isolated_app(provider: CountingProvider):
    app.dependency_overrides[get_connection_provider] = lambda: provider
    yield
    app.dependency_overrides.clear()
    sessions.clear()


@pytest.fixture
def login() -> Callable[..., dict[str, str]]:
    def _login(user_id: str = "user123", name: str = "Test User", email: str = "test@example.com") -> dict[str, str]:
        token = sessions.create({"id": user_id, "name": name, "email": email})
        return {"Authorization": f"Bearer {token}"}

    return _login


@pytest.fixture
def unreachable_store() -> None:
    def _refuse() -> DocumentStore:
        raise ConnectionError("connection refused")

    app.dependency_overrides[get_connection_provider] = lambda: _refuse
