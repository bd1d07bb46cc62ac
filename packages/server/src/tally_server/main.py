"""Tally monitoring API server."""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from tally import RecentLogsHandler
from tally.sdk import RateLimitMiddleware, RequestMetricsConfig, RequestMetricsMiddleware

from tally_server.config import Settings, get_settings
from tally_server.db import Database
from tally_server.errors import register_error_handlers
from tally_server.logging import configure_logging
from tally_server.middleware import CorrelationIDMiddleware
from tally_server.routes import health_router, v1_admin_router
from tally_server.services import TallyServices, build_services

logger = logging.getLogger(__name__)


class AppResponse(BaseModel):
    """App response."""

    name: str = "Tally API"
    version: str
    docs: str = "/docs"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    services: TallyServices = app.state.services

    logger.info("Starting Tally API server...")
    await services.start()

    yield

    logger.info("Shutting down Tally API server...")
    await services.stop()


def create_app(
    settings: Settings | None = None,
    *,
    redis_client: Any | None = None,
    database: Database | None = None,
    configure_logs: bool = True,
) -> FastAPI:
    """Build the app. ``redis_client`` and ``database`` override the settings URLs."""
    settings = settings or get_settings()
    log_buffer = RecentLogsHandler()
    if configure_logs:
        configure_logging(
            log_format=settings.log_format,
            debug=settings.debug,
            log_buffer=log_buffer,
        )

    services = build_services(
        settings,
        redis_client=redis_client,
        database=database,
        log_buffer=log_buffer,
    )

    app = FastAPI(
        title="Tally API",
        description="Request, error and query telemetry for operator dashboards",
        version=settings.version,
        lifespan=lifespan,
    )
    app.state.services = services

    register_error_handlers(app)

    # Innermost first: the rate limiter sees only requests already tracked
    # and carrying a correlation ID.
    app.add_middleware(
        RateLimitMiddleware,
        limiter=services.general_limiter,
        path_prefixes=settings.rate_limit_path_prefixes,
        trust_forwarded=settings.trust_forwarded,
    )
    app.add_middleware(
        RequestMetricsMiddleware,
        telemetry=services.telemetry,
        config=RequestMetricsConfig(exclude_paths=("/health", "/ready")),
    )
    app.add_middleware(CorrelationIDMiddleware)

    allow_origins = settings.cors_allow_origins_list
    allow_credentials = settings.cors_allow_credentials and "*" not in allow_origins
    if settings.cors_allow_credentials and "*" in allow_origins:
        logger.warning(
            "CORS credentials disabled because wildcard origins are configured. "
            "Set TALLY_CORS_ALLOW_ORIGINS to explicit origins to enable credentials."
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-ID",
            "RateLimit-Limit",
            "RateLimit-Remaining",
            "RateLimit-Reset",
            "Retry-After",
        ],
    )

    app.include_router(health_router)
    app.include_router(v1_admin_router)

    @app.get("/", response_model=AppResponse)
    async def root() -> AppResponse:
        return AppResponse(version=settings.version)

    return app


def main():
    """Run the server."""
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "tally_server.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
    )


if __name__ == "__main__":
    main()
