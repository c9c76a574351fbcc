from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .errors import NotFound, ValidationFailed, store_errors
from .identity import RequestContext, get_context
from .ids import as_object_id, is_object_id
from .responses import query_int, read_json_object, respond, shape, shape_many
from .schemas import (
    ExpenseEntryCreate,
    ExpenseEntryUpdate,
    FuelEntryCreate,
    FuelEntryUpdate,
    IncomeEntryCreate,
)
from .store import EXPENSE_ENTRIES, FUEL_ENTRIES, INCOME_ENTRIES, new_document, store
from .validation import DateFormat, Numeric, Required, Rule, parse_model, validate_payload

logger = logging.getLogger(__name__)

MISSING_ID_VALUES = {"", "undefined", "null"}


@dataclass(frozen=True)
class EntrySpec:
    """Everything that differs between the fuel, expense and income entry routes."""

    collection: str
    path: str
    tag: str
    label: str
    create_model: type[BaseModel]
    update_model: type[BaseModel]
    rules: tuple[Rule, ...]
    sort: tuple[tuple[str, int], ...]
    invalid_message: str
    collection_id_message: str
    default_limit: Optional[int] = None
    envelope: bool = False
    full_update: bool = False
    list_error: str = "Internal server error"
    get_error: str = "Internal server error"
    create_error: str = "Internal server error"
    update_error: str = "Internal server error"
    delete_error: str = "Internal server error"
    expose_update_error: bool = False

    @property
    def not_found(self) -> str:
        return f"{self.label} not found"


class EntryResource:
    def __init__(self, spec: EntrySpec) -> None:
        self.spec = spec

    def check_id(self, entry_id: Any, missing_message: str = "Missing or invalid entry ID") -> str:
        if not isinstance(entry_id, str) or entry_id.strip() in MISSING_ID_VALUES:
            raise ValidationFailed(missing_message, envelope=self.spec.envelope)
        entry_id = entry_id.strip()
        if not is_object_id(entry_id):
            raise ValidationFailed("Invalid entry ID format", envelope=self.spec.envelope)
        return entry_id

    def scope(self, user_id: str, entry_id: str) -> dict[str, Any]:
        return {"_id": as_object_id(entry_id), "userId": user_id}

    def list(
        self,
        ctx: RequestContext,
        user_id: str,
        car_id: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        query: dict[str, Any] = {"userId": user_id}
        if car_id:
            query["carId"] = car_id
        with store_errors(self.spec.list_error, self.spec.envelope):
            documents = ctx.store().find(
                self.spec.collection,
                query,
                sort=list(self.spec.sort),
                skip=offset,
                limit=limit,
            )
        return shape_many(documents)

    def get(self, ctx: RequestContext, user_id: str, entry_id: str) -> dict[str, Any]:
        with store_errors(self.spec.get_error, self.spec.envelope):
            document = ctx.store().find_one(self.spec.collection, self.scope(user_id, entry_id))
        if document is None:
            raise NotFound(self.spec.not_found, envelope=self.spec.envelope)
        return shape(document)

    def create(self, ctx: RequestContext, user_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        cleaned = validate_payload(payload, self.spec.rules, envelope=self.spec.envelope)
        model = parse_model(self.spec.create_model, cleaned, self.spec.invalid_message, self.spec.envelope)
        with store_errors(self.spec.create_error, self.spec.envelope):
            document = new_document(userId=user_id, **model.model_dump(mode="json"))
            saved = ctx.store().insert_one(self.spec.collection, document)
        logger.info("Created %s %s for user %s", self.spec.label.lower(), saved["id"], user_id)
        return shape(saved)

    def update(self, ctx: RequestContext, user_id: str, entry_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        partial = not self.spec.full_update
        cleaned = validate_payload(payload, self.spec.rules, partial=partial, envelope=self.spec.envelope)
        model_cls = self.spec.update_model if partial else self.spec.create_model
        model = parse_model(model_cls, cleaned, self.spec.invalid_message, self.spec.envelope)
        changes = model.model_dump(mode="json", exclude_unset=partial)
        changes["updatedAt"] = store.now()
        with store_errors(self.spec.update_error, self.spec.envelope, expose=self.spec.expose_update_error):
            updated = ctx.store().find_one_and_update(
                self.spec.collection,
                self.scope(user_id, entry_id),
                {"$set": changes},
            )
        if updated is None:
            raise NotFound(self.spec.not_found, envelope=self.spec.envelope)
        return shape(updated)

    def delete(self, ctx: RequestContext, user_id: str, entry_id: str) -> None:
        with store_errors(self.spec.delete_error, self.spec.envelope):
            deleted = ctx.store().find_one_and_delete(self.spec.collection, self.scope(user_id, entry_id))
        if deleted is None:
            raise NotFound(self.spec.not_found, envelope=self.spec.envelope)


def build_entry_router(spec: EntrySpec) -> APIRouter:
    resource = EntryResource(spec)
    router = APIRouter(prefix=spec.path, tags=[spec.tag])

    def _updated(entry: dict[str, Any]) -> JSONResponse:
        return respond({"success": True, "message": f"{spec.label} updated successfully", "entry": entry})

    def _deleted() -> JSONResponse:
        return respond({"success": True, "message": f"{spec.label} deleted successfully"})

    @router.get("")
    async def list_entries(request: Request, ctx: RequestContext = Depends(get_context)) -> JSONResponse:
        user_id = ctx.require_user(spec.envelope)
        entries = resource.list(
            ctx,
            user_id,
            car_id=request.query_params.get("carId") or None,
            limit=query_int(request, "limit", spec.default_limit, minimum=1),
            offset=query_int(request, "offset", 0) or 0,
        )
        return respond({"success": True, "entries": entries})

    @router.post("")
    async def create_entry(request: Request, ctx: RequestContext = Depends(get_context)) -> JSONResponse:
        user_id = ctx.require_user(spec.envelope)
        payload = await read_json_object(request, spec.envelope)
        entry = resource.create(ctx, user_id, payload)
        return respond(
            {"success": True, "message": f"{spec.label} created successfully", "entry": entry},
            status_code=201,
        )

    @router.put("")
    async def update_entry_by_body(request: Request, ctx: RequestContext = Depends(get_context)) -> JSONResponse:
        user_id = ctx.require_user(spec.envelope)
        payload = await read_json_object(request, spec.envelope)
        entry_id = resource.check_id(payload.pop("id", None), spec.collection_id_message)
        return _updated(resource.update(ctx, user_id, entry_id, payload))

    @router.delete("")
    async def delete_entry_by_query(request: Request, ctx: RequestContext = Depends(get_context)) -> JSONResponse:
        user_id = ctx.require_user(spec.envelope)
        entry_id = resource.check_id(request.query_params.get("id"), spec.collection_id_message)
        resource.delete(ctx, user_id, entry_id)
        return _deleted()

    @router.get("/{entry_id}")
    async def get_entry(entry_id: str, ctx: RequestContext = Depends(get_context)) -> JSONResponse:
        user_id = ctx.require_user(spec.envelope)
        entry = resource.get(ctx, user_id, resource.check_id(entry_id))
        return respond({"success": True, "entry": entry})

    @router.put("/{entry_id}")
    async def update_entry(entry_id: str, request: Request, ctx: RequestContext = Depends(get_context)) -> JSONResponse:
        user_id = ctx.require_user(spec.envelope)
        checked_id = resource.check_id(entry_id)
        payload = await read_json_object(request, spec.envelope)
        payload.pop("id", None)
        return _updated(resource.update(ctx, user_id, checked_id, payload))

    @router.delete("/{entry_id}")
    async def delete_entry(entry_id: str, ctx: RequestContext = Depends(get_context)) -> JSONResponse:
        user_id = ctx.require_user(spec.envelope)
        resource.delete(ctx, user_id, resource.check_id(entry_id))
        return _deleted()

    return router


FINANCIAL_RULES: tuple[Rule, ...] = (
    Required(("carId", "category", "amount", "currency", "date")),
    Numeric("amount", "Amount must be a positive number", exclusive=True),
    DateFormat("date"),
)

FUEL_ENTRY_SPEC = EntrySpec(
    collection=FUEL_ENTRIES,
    path="/api/fuel-entries",
    tag="fuel-entries",
    label="Fuel entry",
    create_model=FuelEntryCreate,
    update_model=FuelEntryUpdate,
    rules=(
        Numeric("volume", "Volume must be a valid positive number"),
        Numeric("mileage", "Mileage must be a valid non-negative number"),
        Numeric("cost", "Cost must be a valid non-negative number"),
        Numeric("tyrePressure", "Tyre pressure must be a valid non-negative number", optional=True),
        Required(("carId", "fuelCompany", "fuelType", "mileage", "volume", "cost", "currency", "date", "paymentType")),
    ),
    sort=(("date", -1), ("time", -1)),
    invalid_message="Failed to save fuel entry",
    collection_id_message="Missing fuel entry ID",
)

EXPENSE_ENTRY_SPEC = EntrySpec(
    collection=EXPENSE_ENTRIES,
    path="/api/expense-entries",
    tag="expense-entries",
    label="Expense entry",
    create_model=ExpenseEntryCreate,
    update_model=ExpenseEntryUpdate,
    rules=FINANCIAL_RULES,
    sort=(("date", -1), ("createdAt", -1)),
    invalid_message="Invalid expense entry data",
    collection_id_message="Missing expense entry ID",
    default_limit=20,
    envelope=True,
    expose_update_error=True,
)

INCOME_ENTRY_SPEC = EntrySpec(
    collection=INCOME_ENTRIES,
    path="/api/income-entries",
    tag="income-entries",
    label="Income entry",
    create_model=IncomeEntryCreate,
    update_model=IncomeEntryCreate,
    rules=FINANCIAL_RULES,
    sort=(("date", -1), ("createdAt", -1)),
    invalid_message="Invalid income entry data",
    collection_id_message="Missing income entry ID",
    envelope=True,
    full_update=True,
    list_error="Error getting income entries",
    get_error="Error getting income entry",
    create_error="Error creating income entry",
    update_error="Error updating income entry",
    delete_error="Error deleting income entry",
)

ENTRY_SPECS = (FUEL_ENTRY_SPEC, EXPENSE_ENTRY_SPEC, INCOME_ENTRY_SPEC)
