from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """An error that already knows its HTTP status and JSON body."""

    status_code = 500

    def __init__(
        self,
        message: str,
        envelope: bool = False,
        error: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.envelope = envelope
        self.error = error
        if status_code is not None:
            self.status_code = status_code

    def body(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.envelope:
            payload["success"] = False
        payload["message"] = self.message
        if self.error is not None:
            payload["error"] = self.error
        return payload


class Unauthorized(ApiError):
    status_code = 401

    def __init__(self, envelope: bool = False, message: str = "Unauthorized") -> None:
        super().__init__(message, envelope=envelope)


class ValidationFailed(ApiError):
    status_code = 400


class Forbidden(ApiError):
    status_code = 403


class NotFound(ApiError):
    status_code = 404


class Conflict(ApiError):
    status_code = 409


class StoreFailure(ApiError):
    status_code = 500


@contextmanager
def store_errors(message: str, envelope: bool = False, expose: bool = False) -> Iterator[None]:
    """Turn anything unexpected raised inside the block into a logged StoreFailure."""
    try:
        yield
    except ApiError:
        raise
    except Exception as exc:
        logger.exception("%s", message)
        raise StoreFailure(message, envelope=envelope, error=str(exc) if expose else None) from exc
