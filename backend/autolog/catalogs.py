from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from .errors import Conflict, Forbidden, NotFound, ValidationFailed, store_errors
from .identity import RequestContext, get_context
from .ids import as_object_id, find_by_id, has_same_id
from .responses import read_json_object, respond, shape, shape_many
from .services.catalog import (
    EXPENSE_CATEGORY_NAMES,
    FUEL_COMPANIES,
    FUEL_TYPES,
    INCOME_CATEGORIES,
    exact_name_query,
    find_predefined,
    is_predefined_id,
    merge_catalog,
    predefined_entry,
)
from .store import EXPENSE_CATEGORIES, FUEL_COMPANIES as FUEL_COMPANY_COLLECTION
from .store import FUEL_TYPES as FUEL_TYPE_COLLECTION
from .store import INCOME_CATEGORIES as INCOME_CATEGORY_COLLECTION
from .store import new_document, store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogSpec:
    collection: str
    path: str
    tag: str
    label: str
    plural_key: str
    singular_key: str
    predefined: tuple[str, ...]
    conflict_message: str
    missing_id_message: str
    predefined_update_message: str
    predefined_delete_message: str
    case_insensitive: bool = False
    # Built-in names are stored per user instead of being synthesized on read.
    seeded: bool = False
    envelope: bool = False
    success_flag: bool = False
    expose_errors: bool = False
    conflict_status: int = 409
    rename_conflict_message: Optional[str] = None
    update_name_message: str = "Valid name is required"
    list_error: str = "Internal server error"
    get_error: str = "Internal server error"
    create_error: str = "Internal server error"
    update_error: str = "Internal server error"
    delete_error: str = "Internal server error"

    @property
    def not_found(self) -> str:
        return f"{self.label} not found"


def _clean_name(value: Any) -> Optional[str]:
    if not isinstance(value, str) or not value.strip():
        return None
    return value.strip()


class CatalogResource:
    def __init__(self, spec: CatalogSpec) -> None:
        self.spec = spec

    def _errors(self, message: str):
        return store_errors(message, envelope=self.spec.envelope, expose=self.spec.expose_errors)

    def _scope(self, user_id: str, entry_id: str) -> dict[str, Any]:
        return {"_id": as_object_id(entry_id), "userId": user_id}

    def _conflict(self, message: str) -> Conflict:
        return Conflict(message, envelope=self.spec.envelope, status_code=self.spec.conflict_status)

    def list(self, ctx: RequestContext) -> list[dict[str, Any]]:
        if not ctx.identity.authenticated:
            return [predefined_entry(name) for name in sorted(self.spec.predefined, key=lambda n: (n.casefold(), n))]
        user_id = ctx.identity.user_id
        with self._errors(self.spec.list_error):
            custom = ctx.store().find(self.spec.collection, {"userId": user_id}, sort=[("name", 1)])
        return merge_catalog(shape_many(custom), self.spec.predefined, user_id, self.spec.case_insensitive)

    def predefined_by_id(self, user_id: str, entry_id: str) -> dict[str, Any]:
        entries = [predefined_entry(name, user_id) for name in self.spec.predefined]
        entry = find_by_id(entries, entry_id)
        if entry is not None:
            return entry
        raise NotFound(self.spec.not_found, envelope=self.spec.envelope)

    def get(self, ctx: RequestContext, user_id: str, entry_id: str) -> dict[str, Any]:
        if is_predefined_id(entry_id):
            return self.predefined_by_id(user_id, entry_id)
        with self._errors(self.spec.get_error):
            document = ctx.store().find_one(self.spec.collection, self._scope(user_id, entry_id))
        if document is None:
            raise NotFound(self.spec.not_found, envelope=self.spec.envelope)
        return shape(document)

    def create(self, ctx: RequestContext, user_id: str, payload: dict[str, Any]) -> tuple[dict[str, Any], bool]:
        """Returns the entry and whether it was persisted."""
        name = _clean_name(payload.get("name"))
        if name is None:
            raise ValidationFailed("Name is required", envelope=self.spec.envelope)
        if not self.spec.seeded:
            builtin = find_predefined(name, self.spec.predefined, self.spec.case_insensitive)
            if builtin is not None:
                return predefined_entry(builtin, user_id), False
        with self._errors(self.spec.create_error):
            existing = ctx.store().find_one(
                self.spec.collection,
                {"userId": user_id, "name": exact_name_query(name, self.spec.case_insensitive)},
            )
            if existing is not None:
                raise self._conflict(self.spec.conflict_message)
            saved = ctx.store().insert_one(
                self.spec.collection,
                new_document(userId=user_id, name=name, isPredefined=False),
            )
        logger.info("Created %s '%s' for user %s", self.spec.label.lower(), name, user_id)
        return shape(saved), True

    def check_mutable_id(self, entry_id: Any, predefined_message: str) -> str:
        if not isinstance(entry_id, str) or not entry_id.strip():
            raise ValidationFailed(self.spec.missing_id_message, envelope=self.spec.envelope)
        if is_predefined_id(entry_id):
            raise Forbidden(predefined_message, envelope=self.spec.envelope)
        return entry_id.strip()

    def update(self, ctx: RequestContext, user_id: str, entry_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        name = _clean_name(payload.get("name"))
        if name is None:
            raise ValidationFailed(self.spec.update_name_message, envelope=self.spec.envelope)
        with self._errors(self.spec.update_error):
            current = ctx.store().find_one(self.spec.collection, self._scope(user_id, entry_id))
            if current is None:
                raise NotFound(self.spec.not_found, envelope=self.spec.envelope)
            if current.get("isPredefined"):
                raise Forbidden(self.spec.predefined_update_message, envelope=self.spec.envelope)
            if name != current.get("name"):
                namesakes = ctx.store().find(
                    self.spec.collection,
                    {"userId": user_id, "name": exact_name_query(name, self.spec.case_insensitive)},
                )
                if any(not has_same_id(other, current) for other in namesakes):
                    raise self._conflict(self.spec.rename_conflict_message or self.spec.conflict_message)
            updated = ctx.store().find_one_and_update(
                self.spec.collection,
                self._scope(user_id, entry_id),
                {"$set": {"name": name, "updatedAt": store.now()}},
            )
        if updated is None:
            raise NotFound(self.spec.not_found, envelope=self.spec.envelope)
        return shape(updated)

    def delete(self, ctx: RequestContext, user_id: str, entry_id: str) -> None:
        with self._errors(self.spec.delete_error):
            current = ctx.store().find_one(self.spec.collection, self._scope(user_id, entry_id))
            if current is None:
                raise NotFound(self.spec.not_found, envelope=self.spec.envelope)
            if current.get("isPredefined"):
                raise Forbidden(self.spec.predefined_delete_message, envelope=self.spec.envelope)
            ctx.store().find_one_and_delete(self.spec.collection, self._scope(user_id, entry_id))


def build_catalog_router(spec: CatalogSpec) -> APIRouter:
    resource = CatalogResource(spec)
    router = APIRouter(prefix=spec.path, tags=[spec.tag])

    def _body(**content: Any) -> dict[str, Any]:
        return {"success": True, **content} if spec.success_flag else content

    def _updated(entry: dict[str, Any]) -> JSONResponse:
        return respond({"success": True, "message": f"{spec.label} updated successfully", spec.singular_key: entry})

    @router.get("")
    async def list_catalog(ctx: RequestContext = Depends(get_context)) -> JSONResponse:
        return respond(_body(**{spec.plural_key: resource.list(ctx)}))

    @router.post("")
    async def create_catalog_entry(request: Request, ctx: RequestContext = Depends(get_context)) -> JSONResponse:
        user_id = ctx.require_user(spec.envelope)
        payload = await read_json_object(request, spec.envelope)
        entry, persisted = resource.create(ctx, user_id, payload)
        if not persisted:
            return respond(_body(**{spec.singular_key: entry}))
        return respond(
            _body(message=f"{spec.label} created successfully", **{spec.singular_key: entry}),
            status_code=201,
        )

    @router.put("")
    async def update_catalog_entry_by_body(request: Request, ctx: RequestContext = Depends(get_context)) -> JSONResponse:
        user_id = ctx.require_user(spec.envelope)
        payload = await read_json_object(request, spec.envelope)
        if not payload.get("id") or not payload.get("name"):
            raise ValidationFailed("ID and name are required", envelope=spec.envelope)
        entry_id = resource.check_mutable_id(payload.get("id"), spec.predefined_update_message)
        return _updated(resource.update(ctx, user_id, entry_id, payload))

    @router.get("/{entry_id}")
    async def get_catalog_entry(entry_id: str, ctx: RequestContext = Depends(get_context)) -> JSONResponse:
        user_id = ctx.require_user(spec.envelope)
        return respond(_body(**{spec.singular_key: resource.get(ctx, user_id, entry_id)}))

    @router.put("/{entry_id}")
    async def update_catalog_entry(entry_id: str, request: Request, ctx: RequestContext = Depends(get_context)) -> JSONResponse:
        user_id = ctx.require_user(spec.envelope)
        checked_id = resource.check_mutable_id(entry_id, spec.predefined_update_message)
        payload = await read_json_object(request, spec.envelope)
        return _updated(resource.update(ctx, user_id, checked_id, payload))

    @router.delete("/{entry_id}")
    async def delete_catalog_entry(entry_id: str, ctx: RequestContext = Depends(get_context)) -> JSONResponse:
        user_id = ctx.require_user(spec.envelope)
        checked_id = resource.check_mutable_id(entry_id, spec.predefined_delete_message)
        resource.delete(ctx, user_id, checked_id)
        return respond({"success": True, "message": f"{spec.label} deleted successfully"})

    return router


FUEL_COMPANY_SPEC = CatalogSpec(
    collection=FUEL_COMPANY_COLLECTION,
    path="/api/fuel-companies",
    tag="fuel-companies",
    label="Fuel company",
    plural_key="companies",
    singular_key="company",
    predefined=tuple(FUEL_COMPANIES),
    conflict_message="Fuel company already exists",
    missing_id_message="Missing fuel company ID",
    predefined_update_message="Predefined companies cannot be updated",
    predefined_delete_message="Predefined companies cannot be deleted",
    list_error="Error getting fuel companies",
    get_error="Error getting fuel company",
    create_error="Error creating fuel company",
    update_error="Error updating fuel company",
    delete_error="Error deleting fuel company",
)

FUEL_TYPE_SPEC = CatalogSpec(
    collection=FUEL_TYPE_COLLECTION,
    path="/api/fuel-types",
    tag="fuel-types",
    label="Fuel type",
    plural_key="types",
    singular_key="type",
    predefined=tuple(FUEL_TYPES),
    conflict_message="Fuel type already exists",
    missing_id_message="Missing fuel type ID",
    predefined_update_message="Predefined types cannot be updated",
    predefined_delete_message="Predefined types cannot be deleted",
    list_error="Error getting fuel types",
    get_error="Error getting fuel type",
    create_error="Error creating fuel type",
    update_error="Error updating fuel type",
    delete_error="Error deleting fuel type",
)

INCOME_CATEGORY_SPEC = CatalogSpec(
    collection=INCOME_CATEGORY_COLLECTION,
    path="/api/income-categories",
    tag="income-categories",
    label="Income category",
    plural_key="incomeCategories",
    singular_key="incomeCategory",
    predefined=tuple(INCOME_CATEGORIES),
    conflict_message="Income category already exists",
    missing_id_message="Missing income category ID",
    predefined_update_message="Predefined categories cannot be updated",
    predefined_delete_message="Predefined categories cannot be deleted",
    case_insensitive=True,
    envelope=True,
    success_flag=True,
    list_error="Error getting income categories",
    get_error="Error getting income category",
    create_error="Error creating income category",
    update_error="Error updating income category",
    delete_error="Error deleting income category",
)

EXPENSE_CATEGORY_SPEC = CatalogSpec(
    collection=EXPENSE_CATEGORIES,
    path="/api/expense-categories",
    tag="expense-categories",
    label="Expense category",
    plural_key="expenseCategories",
    singular_key="expenseCategory",
    predefined=tuple(EXPENSE_CATEGORY_NAMES),
    conflict_message="Category already exists",
    rename_conflict_message="Another category with this name already exists",
    conflict_status=400,
    missing_id_message="Missing category ID",
    predefined_update_message="Cannot modify predefined categories",
    predefined_delete_message="Cannot delete predefined categories",
    update_name_message="Name is required",
    case_insensitive=True,
    seeded=True,
    success_flag=True,
    expose_errors=True,
)

CATALOG_SPECS = (FUEL_COMPANY_SPEC, FUEL_TYPE_SPEC, INCOME_CATEGORY_SPEC, EXPENSE_CATEGORY_SPEC)
