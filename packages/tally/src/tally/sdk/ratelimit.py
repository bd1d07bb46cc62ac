"""HTTP surface for fixed-window rate limiting.

``RateLimitMiddleware`` guards whole path prefixes of an app;
``RateLimitGuard`` is a FastAPI dependency for single routes. Both answer
a denied request with 429 and the standard ``RateLimit-*`` headers.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from tally.contracts import ErrorBody, ErrorResponse
from tally.errors import TallyError
from tally.ratelimit import FixedWindowRateLimiter, RateLimitDecision

logger = logging.getLogger(__name__)

RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
DEFAULT_MESSAGE = "Too many requests, please try again later."


class RateLimitExceeded(TallyError):
    """Raised by :class:`RateLimitGuard` when a client is over budget."""

    code = RATE_LIMIT_EXCEEDED
    status_code = 429

    def __init__(self, decision: RateLimitDecision, message: str = DEFAULT_MESSAGE) -> None:
        super().__init__(message)
        self.decision = decision
        self.message = message

    @property
    def headers(self) -> dict[str, str]:
        return rate_limit_headers(self.decision, denied=True)


def client_key(request: Request, *, trust_forwarded: bool = False) -> str:
    """First ``X-Forwarded-For`` hop when trusted, else the socket peer."""
    if trust_forwarded:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            first_hop = forwarded.split(",")[0].strip()
            if first_hop:
                return first_hop
    if request.client is not None and request.client.host:
        return request.client.host
    return "unknown"


def rate_limit_headers(
    decision: RateLimitDecision,
    *,
    denied: bool = False,
    now: datetime | None = None,
) -> dict[str, str]:
    reset_after = decision.reset_after_seconds(now or datetime.now(UTC))
    headers = {
        "RateLimit-Limit": str(decision.limit),
        "RateLimit-Remaining": str(decision.remaining),
        "RateLimit-Reset": str(reset_after),
    }
    if denied:
        headers["Retry-After"] = str(reset_after)
    return headers


def rate_limited_response(
    decision: RateLimitDecision, message: str = DEFAULT_MESSAGE
) -> JSONResponse:
    body = ErrorResponse(error=ErrorBody(code=RATE_LIMIT_EXCEEDED, message=message))
    return JSONResponse(
        status_code=429,
        content=body.model_dump(exclude_none=True),
        headers=rate_limit_headers(decision, denied=True),
    )


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Admission control for every request under ``path_prefixes``."""

    def __init__(
        self,
        app: Any,
        limiter: FixedWindowRateLimiter,
        *,
        path_prefixes: tuple[str, ...] = ("/",),
        trust_forwarded: bool = False,
        skip_failed_requests: bool = False,
        skip_successful_requests: bool = False,
        message: str = DEFAULT_MESSAGE,
    ) -> None:
        super().__init__(app)
        self.limiter = limiter
        self._path_prefixes = path_prefixes
        self._trust_forwarded = trust_forwarded
        self._skip_failed = skip_failed_requests
        self._skip_successful = skip_successful_requests
        self._message = message

    def _applies(self, path: str) -> bool:
        return any(path.startswith(prefix) for prefix in self._path_prefixes)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if not self._applies(request.url.path):
            return await call_next(request)

        key = client_key(request, trust_forwarded=self._trust_forwarded)
        decision = await self.limiter.check(key)
        if not decision.allowed:
            return rate_limited_response(decision, self._message)

        response = await call_next(request)

        failed = response.status_code >= 400
        if (failed and self._skip_failed) or (not failed and self._skip_successful):
            await self._give_back(key, decision)

        response.headers.update(rate_limit_headers(decision))
        return response

    async def _give_back(self, key: str, decision: RateLimitDecision) -> None:
        # Fail-open decisions were never counted.
        if decision.reset_at is None:
            return
        try:
            await self.limiter.decrement(key)
        except (TallyError, OSError) as exc:
            logger.warning("Rate limit decrement failed for %s: %s", key, exc)


class RateLimitGuard:
    """FastAPI dependency: ``Depends(RateLimitGuard(limiter))``."""

    def __init__(
        self,
        limiter: FixedWindowRateLimiter,
        *,
        trust_forwarded: bool = False,
        message: str = DEFAULT_MESSAGE,
    ) -> None:
        self.limiter = limiter
        self._trust_forwarded = trust_forwarded
        self._message = message

    async def __call__(self, request: Request, response: Response) -> RateLimitDecision:
        key = client_key(request, trust_forwarded=self._trust_forwarded)
        decision = await self.limiter.check(key)
        if not decision.allowed:
            raise RateLimitExceeded(decision, self._message)
        response.headers.update(rate_limit_headers(decision))
        return decision


__all__ = [
    "DEFAULT_MESSAGE",
    "RATE_LIMIT_EXCEEDED",
    "RateLimitExceeded",
    "RateLimitGuard",
    "RateLimitMiddleware",
    "client_key",
    "rate_limit_headers",
    "rate_limited_response",
]
