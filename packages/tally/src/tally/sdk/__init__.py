"""Web-framework and database hooks that feed the engine."""

from tally.sdk.db import describe_statement, instrument_engine
from tally.sdk.middleware import (
    RequestMetricsConfig,
    RequestMetricsMiddleware,
    route_template,
)
from tally.sdk.ratelimit import (
    RATE_LIMIT_EXCEEDED,
    RateLimitExceeded,
    RateLimitGuard,
    RateLimitMiddleware,
    client_key,
    rate_limit_headers,
    rate_limited_response,
)

__all__ = [
    "RATE_LIMIT_EXCEEDED",
    "RateLimitExceeded",
    "RateLimitGuard",
    "RateLimitMiddleware",
    "RequestMetricsConfig",
    "RequestMetricsMiddleware",
    "client_key",
    "describe_statement",
    "instrument_engine",
    "rate_limit_headers",
    "rate_limited_response",
    "route_template",
]
