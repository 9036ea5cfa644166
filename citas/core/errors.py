"""
Custom exception hierarchy for Citas Analytics.

Rule: every HTTP error has a machine-readable `code` string so clients
can branch on it without parsing English messages.

Business ambiguity (orders without tags, unknown appointment categories,
empty result sets) is never an error here: the services resolve it with
documented defaults.
"""
from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exception classes
# ---------------------------------------------------------------------------

class CitasException(Exception):
    """Base class for all application-level errors."""
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class DataStoreUnavailableError(CitasException):
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "DATA_STORE_UNAVAILABLE"

    def __init__(self, source: str, reason: str | None = None):
        super().__init__(
            message=f"Could not read from the {source} store.",
            details={"source": source, "reason": reason} if reason else {"source": source},
        )


class InvalidFilterError(CitasException):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "INVALID_FILTER"

    def __init__(self, field: str, value: Any, reason: str):
        super().__init__(
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value)},
        )


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

async def citas_exception_handler(request: Request, exc: CitasException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.http_status,
        content=exc.to_dict(),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return structured 422 with machine-readable field errors."""
    field_errors = []
    for error in exc.errors():
        field_errors.append({
            "field": ".".join(str(loc) for loc in error["loc"] if loc not in ("body", "query")),
            "message": error["msg"],
            "type": error["type"],
        })
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed.",
            "details": {"errors": field_errors},
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )
