from datetime import datetime, timezone

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from pydantic import ValidationError

from autolog.main import app
from autolog.schemas import VehicleCreate
from autolog.store import VEHICLES

client = TestClient(app)

VEHICLE = {"name": "Daily Driver", "vehicleType": "Car/Truck", "brand": "Toyota", "model": "Corolla", "year": 2019}


def test_create_list_get_vehicle(login) -> None:
    headers = login()
    res = client.post("/api/vehicles", json={**VEHICLE, "userId": "someone-else"}, headers=headers)
    assert res.status_code == 201
    body = res.json()
    assert body["success"] is True
    assert body["message"] == "Vehicle created successfully"
    vehicle = body["vehicle"]
    assert vehicle["id"] == vehicle["_id"]
    assert vehicle["userId"] == "user123"
    assert vehicle["distanceUnit"] == "km"
    assert vehicle["fuelUnit"] == "L"
    assert vehicle["consumptionUnit"] == "L/100km"
    assert vehicle["tankCapacity"] is None
    assert vehicle["dateAdded"]

    listed = client.get("/api/vehicles", headers=headers)
    assert listed.status_code == 200
    assert [v["id"] for v in listed.json()["vehicles"]] == [vehicle["id"]]

    fetched = client.get(f"/api/vehicles/{vehicle['id']}", headers=headers)
    assert fetched.status_code == 200
    assert fetched.json()["vehicle"]["name"] == "Daily Driver"


def test_vehicle_list_is_newest_first(login, memory_store) -> None:
    headers = login()
    memory_store.insert_one(
        VEHICLES, {**VEHICLE, "name": "Old", "userId": "user123", "dateAdded": datetime(2023, 1, 1, tzinfo=timezone.utc)}
    )
    memory_store.insert_one(
        VEHICLES, {**VEHICLE, "name": "New", "userId": "user123", "dateAdded": datetime(2024, 6, 1, tzinfo=timezone.utc)}
    )
    vehicles = client.get("/api/vehicles", headers=headers).json()["vehicles"]
    assert [v["name"] for v in vehicles] == ["New", "Old"]
    assert all(v["id"] == v["_id"] for v in vehicles)


def test_create_vehicle_validation(login) -> None:
    headers = login()
    res = client.post("/api/vehicles", json={"name": "No brand"}, headers=headers)
    assert res.status_code == 400
    assert res.json() == {"success": False, "message": "Missing required fields"}

    res = client.post("/api/vehicles", json={**VEHICLE, "vehicleType": "Spaceship"}, headers=headers)
    assert res.status_code == 400
    assert res.json()["message"] == "Invalid vehicle data"
    assert "vehicleType" in res.json()["error"]


def test_update_merges_fields(login) -> None:
    headers = login()
    vehicle = client.post("/api/vehicles", json=VEHICLE, headers=headers).json()["vehicle"]
    res = client.put(f"/api/vehicles/{vehicle['id']}", json={"licensePlate": "AB-123"}, headers=headers)
    assert res.status_code == 200
    updated = res.json()["vehicle"]
    assert res.json()["message"] == "Vehicle updated successfully"
    assert updated["licensePlate"] == "AB-123"
    assert updated["name"] == "Daily Driver"
    assert updated["brand"] == "Toyota"


def test_other_users_vehicle_is_not_found(login) -> None:
    owner = login("owner-1")
    intruder = login("intruder-2")
    vehicle = client.post("/api/vehicles", json=VEHICLE, headers=owner).json()["vehicle"]

    assert client.get(f"/api/vehicles/{vehicle['id']}", headers=intruder).json() == {
        "success": False,
        "message": "Vehicle not found",
    }
    res = client.put(f"/api/vehicles/{vehicle['id']}", json={"name": "Mine now"}, headers=intruder)
    assert res.status_code == 404
    assert res.json()["message"] == "Vehicle not found or not authorized to update"
    res = client.delete(f"/api/vehicles/{vehicle['id']}", headers=intruder)
    assert res.status_code == 404
    assert res.json() == {"success": False, "message": "Vehicle not found or not authorized to delete"}
    assert client.get("/api/vehicles", headers=intruder).json()["vehicles"] == []

    res = client.delete(f"/api/vehicles/{vehicle['id']}", headers=owner)
    assert res.status_code == 200
    assert res.json() == {"success": True, "message": "Vehicle deleted successfully"}


def test_lookup_accepts_legacy_id_field(login, memory_store) -> None:
    headers = login()
    memory_store.insert_one(VEHICLES, {"_id": ObjectId(), "id": "legacy-car", "userId": "user123", **VEHICLE})
    res = client.get("/api/vehicles/legacy-car", headers=headers)
    assert res.status_code == 200
    assert res.json()["vehicle"]["id"] == "legacy-car"


def test_vehicle_routes_require_identity(spy, provider) -> None:
    assert client.get("/api/vehicles").json() == {"message": "Unauthorized"}
    res = client.post("/api/vehicles", json=VEHICLE)
    assert res.status_code == 401
    assert res.json() == {"success": False, "message": "Unauthorized"}
    assert client.delete("/api/vehicles/abc").status_code == 401
    assert spy.calls == []
    assert provider.connects == 0


def test_store_failure_maps_to_500(login, unreachable_store) -> None:
    headers = login()
    res = client.get("/api/vehicles", headers=headers)
    assert res.status_code == 500
    assert res.json() == {"success": False, "message": "Internal server error"}
    res = client.delete("/api/vehicles/abc", headers=headers)
    assert res.status_code == 500
    assert res.json()["message"] == "Error deleting vehicle"
    assert res.json()["error"] == "connection refused"


def test_non_finite_numbers_are_rejected_before_saving(login, spy) -> None:
    headers = {**login(), "Content-Type": "application/json"}
    body = '{"name": "Daily Driver", "vehicleType": "Car/Truck", "brand": "Toyota", "model": "Corolla", "tankCapacity": Infinity}'
    res = client.post("/api/vehicles", content=body, headers=headers)
    assert res.status_code == 400
    assert res.json() == {"success": False, "message": "Invalid JSON body"}
    res = client.put(f"/api/vehicles/{ObjectId()}", content='{"tankCapacity": NaN}', headers=headers)
    assert res.status_code == 400
    assert spy.calls == []
    assert client.get("/api/vehicles", headers=headers).json()["vehicles"] == []


def test_vehicle_model_rejects_infinite_tank_capacity() -> None:
    with pytest.raises(ValidationError):
        VehicleCreate.model_validate({**VEHICLE, "tankCapacity": float("inf")})
