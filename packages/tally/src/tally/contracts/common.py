"""Response envelopes shared by every read endpoint."""

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class SuccessResponse(BaseModel, Generic[T]):
    """``{"success": true, "data": ...}`` wrapper."""

    success: bool = True
    data: T
    message: str | None = None


class ErrorBody(BaseModel):
    code: str
    message: str
    details: dict[str, object] | None = None


class ErrorResponse(BaseModel):
    """``{"success": false, "error": {...}}`` wrapper."""

    success: bool = False
    error: ErrorBody


__all__ = [
    "ErrorBody",
    "ErrorResponse",
    "SuccessResponse",
]
