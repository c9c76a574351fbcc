from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from .errors import NotFound, store_errors
from .identity import RequestContext, get_context
from .ids import as_object_id
from .responses import read_json_object, respond, shape, shape_many
from .schemas import VehicleCreate, VehicleUpdate
from .store import VEHICLES, new_document, store
from .validation import Required, parse_model, validate_payload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/vehicles", tags=["vehicles"])

VEHICLE_RULES = (Required(("name", "vehicleType", "brand", "model")),)


def vehicle_lookup(user_id: str, vehicle_id: str) -> dict[str, Any]:
    # Older vehicles may only carry the identifier in ``id``.
    return {
        "$or": [
            {"_id": as_object_id(vehicle_id), "userId": user_id},
            {"id": vehicle_id, "userId": user_id},
        ]
    }


@router.get("")
async def list_vehicles(ctx: RequestContext = Depends(get_context)) -> JSONResponse:
    user_id = ctx.require_user()
    with store_errors("Internal server error", envelope=True):
        vehicles = ctx.store().find(VEHICLES, {"userId": user_id}, sort=[("dateAdded", -1)])
    logger.debug("Found %d vehicles for user %s", len(vehicles), user_id)
    return respond({"success": True, "vehicles": shape_many(vehicles)})


@router.post("")
async def create_vehicle(request: Request, ctx: RequestContext = Depends(get_context)) -> JSONResponse:
    user_id = ctx.require_user(envelope=True)
    payload = await read_json_object(request, envelope=True)
    validate_payload(payload, VEHICLE_RULES, envelope=True)
    vehicle = parse_model(VehicleCreate, payload, "Invalid vehicle data", envelope=True)
    with store_errors("Internal server error", envelope=True, expose=True):
        document = new_document(userId=user_id, **vehicle.model_dump(mode="json"))
        document["dateAdded"] = document["createdAt"]
        saved = ctx.store().insert_one(VEHICLES, document)
    logger.info("Vehicle %s created for user %s", saved["id"], user_id)
    return respond(
        {"success": True, "message": "Vehicle created successfully", "vehicle": shape(saved)},
        status_code=201,
    )


@router.get("/{vehicle_id}")
async def get_vehicle(vehicle_id: str, ctx: RequestContext = Depends(get_context)) -> JSONResponse:
    user_id = ctx.require_user(envelope=True)
    with store_errors("Error fetching vehicle", envelope=True, expose=True):
        vehicle = ctx.store().find_one(VEHICLES, vehicle_lookup(user_id, vehicle_id))
    if vehicle is None:
        raise NotFound("Vehicle not found", envelope=True)
    return respond({"success": True, "vehicle": shape(vehicle)})


@router.put("/{vehicle_id}")
async def update_vehicle(vehicle_id: str, request: Request, ctx: RequestContext = Depends(get_context)) -> JSONResponse:
    user_id = ctx.require_user(envelope=True)
    payload = await read_json_object(request, envelope=True)
    validate_payload(payload, VEHICLE_RULES, partial=True, envelope=True)
    changes = parse_model(VehicleUpdate, payload, "Invalid vehicle data", envelope=True).model_dump(
        mode="json", exclude_unset=True
    )
    changes["updatedAt"] = store.now()
    with store_errors("Error updating vehicle", envelope=True, expose=True):
        updated = ctx.store().find_one_and_update(VEHICLES, vehicle_lookup(user_id, vehicle_id), {"$set": changes})
    if updated is None:
        raise NotFound("Vehicle not found or not authorized to update", envelope=True)
    return respond({"success": True, "message": "Vehicle updated successfully", "vehicle": shape(updated)})


@router.delete("/{vehicle_id}")
async def delete_vehicle(vehicle_id: str, ctx: RequestContext = Depends(get_context)) -> JSONResponse:
    user_id = ctx.require_user(envelope=True)
    with store_errors("Error deleting vehicle", envelope=True, expose=True):
        deleted = ctx.store().find_one_and_delete(VEHICLES, vehicle_lookup(user_id, vehicle_id))
    if deleted is None:
        raise NotFound("Vehicle not found or not authorized to delete", envelope=True)
    logger.info("Vehicle %s deleted for user %s", vehicle_id, user_id)
    return respond({"success": True, "message": "Vehicle deleted successfully"})
