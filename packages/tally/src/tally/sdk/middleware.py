"""Request metrics middleware.

Every request moves the active-connection gauge while in flight and, once
the response is produced, submits one request metric keyed by the route
template (``GET:/users/{user_id}``) rather than the raw path.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from tally.telemetry import Telemetry

logger = logging.getLogger(__name__)


def status_error(status_code: int) -> str | None:
    """Reason phrase for error statuses, ``None`` below 400."""
    if status_code < 400:
        return None
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return f"HTTP {status_code}"


def route_template(request: Request) -> str:
    """Prefer route templates (e.g. /users/{id}) to avoid key cardinality blow-up."""
    path = request.url.path
    route = request.scope.get("route")
    if route is None:
        return path

    template = getattr(route, "path_format", None) or getattr(route, "path", None)
    if isinstance(template, str) and template.startswith("/"):
        return template
    return path


@dataclass
class RequestMetricsConfig:
    """Controls which requests are recorded and how paths are keyed."""

    normalize_paths: bool = True
    exclude_paths: tuple[str, ...] = field(default_factory=tuple)


class RequestMetricsMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that feeds request telemetry to :class:`Telemetry`."""

    def __init__(
        self,
        app: Any,
        telemetry: Telemetry,
        config: RequestMetricsConfig | None = None,
    ) -> None:
        super().__init__(app)
        self.telemetry = telemetry
        self._config = config or RequestMetricsConfig()

    def _excluded(self, path: str) -> bool:
        return any(path.startswith(prefix) for prefix in self._config.exclude_paths)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if self._excluded(request.url.path):
            return await call_next(request)

        self.telemetry.on_connection_opened()
        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            latency_ms = (time.perf_counter() - start) * 1000
            self.telemetry.on_connection_closed()
            try:
                self.telemetry.on_request_complete(
                    endpoint=self._normalize_path(request),
                    method=request.method,
                    status_code=status_code,
                    duration_ms=latency_ms,
                    error=status_error(status_code),
                    request_id=getattr(request.state, "correlation_id", None),
                    user_id=getattr(request.state, "user_id", None),
                )
            except Exception:
                # Never block requests for tracking.
                logger.debug("Failed to submit request metric", exc_info=True)

    def _normalize_path(self, request: Request) -> str:
        if not self._config.normalize_paths:
            return request.url.path
        return route_template(request)


__all__ = [
    "RequestMetricsConfig",
    "RequestMetricsMiddleware",
    "route_template",
    "status_error",
]
