import json
import logging
from typing import Any

from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import DuplicateKeyError

from . import vehicles
from .auth_utils import SESSION_MAX_AGE, hash_password, verify_password
from .catalogs import CATALOG_SPECS, build_catalog_router
from .config import settings
from .errors import ApiError, Conflict, Unauthorized, ValidationFailed, store_errors
from .identity import SESSION_COOKIE_NAME, RequestContext, extract_token, get_context, sessions
from .ids import get_object_id, get_user_id, normalize_ids
from .resources import ENTRY_SPECS, build_entry_router
from .responses import read_json_object, respond, shape
from .schemas import (
    ApiErrorDetail,
    ApiErrorPayload,
    ApiErrorResponse,
    FuelConsumptionUnit,
    LoginRequest,
    UserPreferences,
    UserPreferencesUpdate,
    VehicleType,
)
from .services.catalog import (
    CURRENCIES,
    DISTANCE_UNITS,
    PAYMENT_TYPES,
    TYRE_PRESSURE_UNITS,
    VOLUME_UNITS,
    seed_expense_categories,
)
from .services.repair import repair_user_documents
from .store import USER_PREFERENCES, USERS, VEHICLES, new_document, store
from .validation import parse_model

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="AutoLog API",
    version="0.1.0",
    description="Vehicles, fuel purchases, expenses and income per user.",
)

app.include_router(vehicles.router)
for entry_spec in ENTRY_SPECS:
    app.include_router(build_entry_router(entry_spec))
for catalog_spec in CATALOG_SPECS:
    app.include_router(build_catalog_router(catalog_spec))


def build_error_response(details: list[ApiErrorDetail], message: str = "Invalid request payload") -> JSONResponse:
    payload = ApiErrorResponse(
        error=ApiErrorPayload(code="VALIDATION_ERROR", message=message, details=details)
    )
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=payload.model_dump())


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.body())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details: list[ApiErrorDetail] = []
    for err in exc.errors():
        loc = ".".join(str(item) for item in err.get("loc", []) if item != "body")
        details.append(ApiErrorDetail(field=loc or "body", message=err.get("msg", "validation error")))
    return build_error_response(details)


@app.exception_handler(ValueError)
async def value_error_exception_handler(request: Request, exc: ValueError) -> JSONResponse:
    return build_error_response([ApiErrorDetail(field="body", message=str(exc))])


@app.exception_handler(Exception)
async def unexpected_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


@app.get("/api/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/api/reference-data")
async def reference_data() -> dict[str, list[str]]:
    return {
        "vehicleTypes": [item.value for item in VehicleType],
        "currencies": CURRENCIES,
        "distanceUnits": DISTANCE_UNITS,
        "volumeUnits": VOLUME_UNITS,
        "tyrePressureUnits": TYRE_PRESSURE_UNITS,
        "paymentTypes": PAYMENT_TYPES,
        "fuelConsumptionUnits": [item.value for item in FuelConsumptionUnit],
    }


def _account(user: dict[str, Any]) -> dict[str, Any]:
    return {"id": get_object_id(user), "name": user.get("name"), "email": user.get("email")}


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


@app.post("/api/auth/register")
async def auth_register(request: Request, ctx: RequestContext = Depends(get_context)) -> JSONResponse:
    payload = await read_json_object(request)
    name = _text(payload.get("name"))
    email = _text(payload.get("email")).lower()
    password = payload.get("password")
    if not name or not email or not isinstance(password, str) or not password:
        raise ValidationFailed("Please provide all required fields")
    if len(password) < 8:
        raise ValidationFailed("Password must be at least 8 characters")
    with store_errors("Internal server error"):
        document_store = ctx.store()
        if document_store.find_one(USERS, {"email": email}) is not None:
            raise Conflict("User with this email already exists")
        try:
            user = document_store.insert_one(
                USERS,
                new_document(name=name, email=email, password=hash_password(password)),
            )
        except DuplicateKeyError as exc:
            raise Conflict("User with this email already exists") from exc
        seed_expense_categories(document_store, get_object_id(user))
    logger.info("Registered user %s", get_object_id(user))
    return respond({"message": "User registered successfully", "user": _account(user)}, status_code=201)


@app.post("/api/auth/login")
async def auth_login(payload: LoginRequest, response: Response, ctx: RequestContext = Depends(get_context)) -> dict[str, Any]:
    with store_errors("Internal server error"):
        user = ctx.store().find_one(USERS, {"email": payload.email.strip().lower()})
    # Accounts created through an external provider have no password hash.
    if user is None or not verify_password(payload.password, user.get("password")):
        raise Unauthorized(message="Invalid email or password")
    account = _account(user)
    token = sessions.create(account)
    response.set_cookie(
        SESSION_COOKIE_NAME,
        token,
        httponly=True,
        samesite="lax",
        secure=False,
        max_age=int(SESSION_MAX_AGE.total_seconds()),
    )
    return {"token": token, "user": account}


@app.post("/api/auth/logout")
async def auth_logout(request: Request, response: Response) -> dict[str, bool]:
    sessions.drop(extract_token(request))
    response.delete_cookie(SESSION_COOKIE_NAME)
    return {"success": True}


@app.get("/api/auth/session")
async def auth_session(ctx: RequestContext = Depends(get_context)) -> JSONResponse:
    identity = ctx.identity
    if not identity.authenticated:
        return respond({})
    return respond(
        {
            "user": {"id": identity.user_id, "name": identity.name, "email": identity.email},
            "expires": sessions.expires(identity.token) if identity.token else None,
        }
    )


def _preference_defaults(skip: set[str]) -> dict[str, Any]:
    native = store.make_id()
    now = store.now()
    defaults = {
        "_id": native,
        "id": str(native),
        **UserPreferences().model_dump(mode="json"),
        "createdAt": now,
        "updatedAt": now,
    }
    return {key: value for key, value in defaults.items() if key not in skip}


@app.get("/api/user-preferences")
async def get_user_preferences(ctx: RequestContext = Depends(get_context)) -> JSONResponse:
    user_id = ctx.require_user()
    with store_errors("Internal server error"):
        preferences = ctx.store().find_one_and_update(
            USER_PREFERENCES,
            {"userId": user_id},
            {"$setOnInsert": _preference_defaults(skip=set())},
            upsert=True,
        )
    return respond({"preferences": shape(preferences)})


async def _save_user_preferences(request: Request, ctx: RequestContext) -> JSONResponse:
    user_id = ctx.require_user()
    payload = await read_json_object(request)
    payload.pop("userId", None)
    changes = parse_model(UserPreferencesUpdate, payload, "Invalid preferences data").model_dump(
        mode="json", exclude_unset=True, exclude_none=True
    )
    changes["updatedAt"] = store.now()
    with store_errors("Internal server error"):
        preferences = ctx.store().find_one_and_update(
            USER_PREFERENCES,
            {"userId": user_id},
            {"$set": changes, "$setOnInsert": _preference_defaults(skip=set(changes))},
            upsert=True,
        )
    return respond({"message": "Preferences updated successfully", "preferences": shape(preferences)})


@app.put("/api/user-preferences")
async def update_user_preferences(request: Request, ctx: RequestContext = Depends(get_context)) -> JSONResponse:
    return await _save_user_preferences(request, ctx)


@app.post("/api/user-preferences")
async def post_user_preferences(request: Request, ctx: RequestContext = Depends(get_context)) -> JSONResponse:
    return await _save_user_preferences(request, ctx)


def _parse_local_storage(raw: str | None) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError as exc:
        logger.error("Failed to parse localStorage data: %s", exc)
        return None


@app.get("/api/diagnostic")
async def diagnostic(request: Request, ctx: RequestContext = Depends(get_context)) -> JSONResponse:
    user_id = ctx.require_user()
    local_storage = _parse_local_storage(request.query_params.get("localStorage"))
    with store_errors("Internal server error", envelope=True, expose=True):
        raw_vehicles = ctx.store().find(VEHICLES, {"userId": user_id})
        vehicle_count = ctx.store().count(VEHICLES, {"userId": user_id})
    identity = ctx.identity
    diagnostic_info = {
        "userId": user_id,
        "vehicleCount": vehicle_count,
        "vehicles": [
            {
                "id": get_object_id(vehicle),
                "_id": str(vehicle["_id"]) if vehicle.get("_id") is not None else None,
                "name": vehicle.get("name"),
                "vehicleType": vehicle.get("vehicleType"),
                "brand": vehicle.get("brand"),
                "model": vehicle.get("model"),
                "year": vehicle.get("year"),
                "dateAdded": vehicle.get("dateAdded"),
            }
            for vehicle in normalize_ids(raw_vehicles)
        ],
        "rawVehicles": [
            {
                "_id": str(vehicle["_id"]) if vehicle.get("_id") is not None else None,
                "id": get_object_id(vehicle),
                "name": vehicle.get("name"),
                "vehicleType": vehicle.get("vehicleType"),
                "userId": get_user_id(vehicle) or None,
                "dateAdded": vehicle.get("dateAdded"),
            }
            for vehicle in raw_vehicles
        ],
        "localStorageVehicles": local_storage,
        "session": {
            "user": {"id": identity.user_id, "name": identity.name, "email": identity.email},
            "expires": sessions.expires(identity.token) if identity.token else None,
        },
    }
    return respond({"success": True, "diagnosticInfo": diagnostic_info})


@app.post("/api/cleanup")
async def cleanup(ctx: RequestContext = Depends(get_context)) -> JSONResponse:
    user_id = ctx.require_user(envelope=True)
    with store_errors("Internal server error", envelope=True, expose=True):
        results = repair_user_documents(ctx.store(), user_id)
    return respond({"success": True, "message": "Data cleanup completed successfully", "results": results})
