"""Error envelopes and exception handlers.

Every error response has the shape
``{"success": false, "error": {"code": ..., "message": ...}}`` and every
handled error is reported to the telemetry error tracker.
"""

from __future__ import annotations

import logging
import traceback
from http import HTTPStatus
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from tally.contracts import ErrorBody, ErrorResponse
from tally.sdk import RateLimitExceeded, route_template

from tally_server.config import get_settings

logger = logging.getLogger(__name__)

INTERNAL_ERROR = "INTERNAL_ERROR"
VALIDATION_ERROR = "VALIDATION_ERROR"

_HTTP_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    429: "RATE_LIMIT_EXCEEDED",
    503: "SERVICE_UNAVAILABLE",
}


class AppError(Exception):
    """An expected failure with a stable machine-readable code."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details


def _status_phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Error"


def error_response(
    status_code: int,
    code: str,
    message: str,
    *,
    details: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorResponse(error=ErrorBody(code=code, message=message, details=details))
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", exclude_none=True),
        headers=headers,
    )


def report_error(
    request: Request,
    exc: BaseException,
    *,
    code: str,
    message: str,
    status_code: int,
    metadata: dict[str, Any] | None = None,
) -> None:
    """Hand a handled error to the error tracker. Never raises."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        return
    try:
        services.telemetry.on_error_raised(
            type=type(exc).__name__,
            code=code,
            message=message,
            stack="".join(traceback.format_exception(exc)),
            endpoint=route_template(request),
            method=request.method,
            status_code=status_code,
            request_id=getattr(request.state, "correlation_id", None),
            user_id=getattr(request.state, "user_id", None),
            metadata=metadata,
        )
    except Exception:
        logger.debug("Failed to report error", exc_info=True)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    report_error(
        request,
        exc,
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        metadata=exc.details,
    )
    return error_response(exc.status_code, exc.code, exc.message, details=exc.details)


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    report_error(request, exc, code=exc.code, message=exc.message, status_code=exc.status_code)
    return error_response(exc.status_code, exc.code, exc.message, headers=exc.headers)


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    code = _HTTP_CODES.get(exc.status_code, f"HTTP_{exc.status_code}")
    message = exc.detail if isinstance(exc.detail, str) else _status_phrase(exc.status_code)
    # Unrouted 404/405s would key the tracker by arbitrary raw paths.
    if "route" in request.scope or exc.status_code not in (404, 405):
        report_error(request, exc, code=code, message=message, status_code=exc.status_code)
    return error_response(
        exc.status_code,
        code,
        message,
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = {"errors": jsonable_encoder(exc.errors())}
    report_error(
        request,
        exc,
        code=VALIDATION_ERROR,
        message="Request validation failed",
        status_code=400,
    )
    return error_response(
        400,
        VALIDATION_ERROR,
        "Request validation failed",
        details=details,
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    report_error(request, exc, code=INTERNAL_ERROR, message=str(exc), status_code=500)
    services = getattr(request.app.state, "services", None)
    settings = services.settings if services is not None else get_settings()
    message = "Internal server error" if settings.is_production else str(exc)
    return error_response(500, INTERNAL_ERROR, message)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_error_handler)


__all__ = [
    "AppError",
    "INTERNAL_ERROR",
    "VALIDATION_ERROR",
    "error_response",
    "register_error_handlers",
    "report_error",
]
