"""
Shared schema primitives used across the API.
"""
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict


class ErrorResponse(BaseModel):
    """Standard error envelope returned for all 4xx/5xx responses."""
    model_config = ConfigDict(from_attributes=True)

    code: str
    message: str
    details: Optional[dict[str, Any]] = None


# Shared `responses=` entries for read endpoints backed by the data store.
STORE_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    422: {"model": ErrorResponse, "description": "Invalid filter or query parameter. Validation failures list `{field, message, type}` items under `details.errors`."},
    503: {"model": ErrorResponse, "description": "Appointment or order store unreachable."},
}
