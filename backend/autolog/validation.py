from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Sequence, Union

from pydantic import BaseModel, ValidationError

from .errors import ValidationFailed

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def coerce_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = value
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


@dataclass(frozen=True)
class Required:
    fields: tuple[str, ...]
    message: str = "Missing required fields"

    def check(self, payload: dict[str, Any], partial: bool) -> Optional[str]:
        for field in self.fields:
            if partial and field not in payload:
                continue
            if is_blank(payload.get(field)):
                return self.message
        return None


@dataclass(frozen=True)
class Numeric:
    field: str
    message: str
    minimum: float = 0
    exclusive: bool = False
    optional: bool = False

    def check(self, payload: dict[str, Any], partial: bool) -> Optional[str]:
        if self.field not in payload:
            return None if self.optional or partial else self.message
        value = payload[self.field]
        if is_blank(value):
            return None if self.optional else self.message
        number = coerce_number(value)
        if number is None or number < self.minimum:
            return self.message
        if self.exclusive and number == self.minimum:
            return self.message
        return None


@dataclass(frozen=True)
class DateFormat:
    field: str
    message: str = "Date must be in YYYY-MM-DD format"

    def check(self, payload: dict[str, Any], partial: bool) -> Optional[str]:
        value = payload.get(self.field)
        if is_blank(value):
            return None
        if not isinstance(value, str) or not DATE_PATTERN.match(value):
            return self.message
        try:
            datetime.strptime(value, "%Y-%m-%d")
        except ValueError:
            return self.message
        return None


Rule = Union[Required, Numeric, DateFormat]


def validate_payload(
    payload: dict[str, Any],
    rules: Sequence[Rule],
    partial: bool = False,
    envelope: bool = False,
) -> dict[str, Any]:
    """Run the rules in order, raising on the first failure; numeric fields come back as numbers."""
    for rule in rules:
        message = rule.check(payload, partial)
        if message:
            raise ValidationFailed(message, envelope=envelope)
    cleaned = dict(payload)
    for rule in rules:
        if isinstance(rule, Numeric) and not is_blank(cleaned.get(rule.field)):
            cleaned[rule.field] = coerce_number(cleaned[rule.field])
        elif isinstance(rule, Numeric) and rule.field in cleaned:
            cleaned[rule.field] = None
    return cleaned


def describe_errors(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(item) for item in err.get("loc", []))
        parts.append(f"{loc}: {err.get('msg', 'invalid value')}" if loc else err.get("msg", "invalid value"))
    return "; ".join(parts)


def parse_model(model: type[BaseModel], payload: dict[str, Any], message: str, envelope: bool = False) -> BaseModel:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise ValidationFailed(message, envelope=envelope, error=describe_errors(exc)) from exc
