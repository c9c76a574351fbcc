from fastapi.testclient import TestClient

from autolog.identity import SESSION_COOKIE_NAME
from autolog.main import app
from autolog.services.catalog import EXPENSE_CATEGORY_NAMES
from autolog.store import EXPENSE_CATEGORIES, USERS

client = TestClient(app)

ACCOUNT = {"name": "Dana", "email": "Dana@Example.com", "password": "correct-horse"}


def _register(**overrides):
    return client.post("/api/auth/register", json={**ACCOUNT, **overrides})


def test_health() -> None:
    assert client.get("/api/health").json() == {"status": "ok"}


def test_reference_data_is_public(spy) -> None:
    data = client.get("/api/reference-data").json()
    assert "Car/Truck" in data["vehicleTypes"]
    assert data["currencies"] == sorted(data["currencies"])
    assert "USD" in data["currencies"]
    assert data["paymentTypes"][0] == "Cash"
    assert "L/100km" in data["fuelConsumptionUnits"]
    assert spy.calls == []


def test_register_creates_user_and_seeds_categories(memory_store) -> None:
    res = _register()
    assert res.status_code == 201
    body = res.json()
    assert body["message"] == "User registered successfully"
    user = body["user"]
    assert user["name"] == "Dana"
    assert user["email"] == "dana@example.com"
    assert "password" not in user

    stored = memory_store.find_one(USERS, {"email": "dana@example.com"})
    assert stored["password"] != ACCOUNT["password"]
    assert memory_store.count(EXPENSE_CATEGORIES, {"userId": user["id"]}) == len(EXPENSE_CATEGORY_NAMES)


def test_register_rejects_duplicates_and_bad_input() -> None:
    assert _register().status_code == 201
    res = _register(email="dana@example.com")
    assert res.status_code == 409
    assert res.json() == {"message": "User with this email already exists"}

    res = _register(email="other@example.com", password="short")
    assert res.status_code == 400
    assert res.json() == {"message": "Password must be at least 8 characters"}

    res = client.post("/api/auth/register", json={"email": "x@example.com"})
    assert res.status_code == 400
    assert res.json() == {"message": "Please provide all required fields"}


def test_login_issues_token_usable_as_bearer() -> None:
    _register()
    res = client.post("/api/auth/login", json={"email": "dana@example.com", "password": "correct-horse"})
    assert res.status_code == 200
    token = res.json()["token"]
    assert res.json()["user"]["email"] == "dana@example.com"
    assert SESSION_COOKIE_NAME in res.cookies
    client.cookies.clear()

    headers = {"Authorization": f"Bearer {token}"}
    session = client.get("/api/auth/session", headers=headers).json()
    assert session["user"]["name"] == "Dana"
    assert session["expires"]
    assert client.get("/api/vehicles", headers=headers).status_code == 200


def test_session_cookie_and_logout() -> None:
    _register()
    client.post("/api/auth/login", json={"email": "dana@example.com", "password": "correct-horse"})
    assert client.get("/api/auth/session").json()["user"]["email"] == "dana@example.com"
    assert client.post("/api/auth/logout").json() == {"success": True}
    client.cookies.clear()
    assert client.get("/api/auth/session").json() == {}


def test_login_failures() -> None:
    _register()
    res = client.post("/api/auth/login", json={"email": "dana@example.com", "password": "wrong-password"})
    assert res.status_code == 401
    assert res.json() == {"message": "Invalid email or password"}
    res = client.post("/api/auth/login", json={"email": "nobody@example.com", "password": "whatever1"})
    assert res.status_code == 401


def test_login_payload_validation() -> None:
    res = client.post("/api/auth/login", json={"email": "dana@example.com"})
    assert res.status_code == 422
    error = res.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert any(detail["field"] == "password" for detail in error["details"])


def test_account_without_password_cannot_log_in(memory_store) -> None:
    memory_store.insert_one(USERS, {"name": "OAuth", "email": "oauth@example.com"})
    res = client.post("/api/auth/login", json={"email": "oauth@example.com", "password": "anything1"})
    assert res.status_code == 401


def test_anonymous_session_is_empty() -> None:
    client.cookies.clear()
    assert client.get("/api/auth/session").json() == {}
