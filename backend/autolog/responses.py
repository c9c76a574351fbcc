from __future__ import annotations

import json
from typing import Any, Optional

from bson import ObjectId
from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from .errors import ValidationFailed
from .ids import normalize_id, normalize_ids


def encode(value: Any) -> Any:
    return jsonable_encoder(value, custom_encoder={ObjectId: str})


def respond(content: dict[str, Any], status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=encode(content))


def shape(document: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    return normalize_id(document) if document is not None else None


def shape_many(documents: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return normalize_ids(documents)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-finite number {name}")


async def read_json_object(request: Request, envelope: bool = False) -> dict[str, Any]:
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        payload = json.loads(raw, parse_constant=_reject_constant)
    except ValueError as exc:
        raise ValidationFailed("Invalid JSON body", envelope=envelope) from exc
    if not isinstance(payload, dict):
        raise ValidationFailed("Invalid JSON body", envelope=envelope)
    return payload


def query_int(request: Request, name: str, default: Optional[int], minimum: int = 0) -> Optional[int]:
    raw = request.query_params.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= minimum else default
