"""Health check routes."""

import logging

from fastapi import APIRouter, Depends, Response, status
from tally.contracts import DependencyHealth, HealthResponse, ReadinessMetrics

from tally_server.routes.depends import get_services
from tally_server.services import TallyServices

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


async def _check_database_readiness(services: TallyServices) -> DependencyHealth:
    try:
        await services.database.ping()
    except Exception as exc:
        return DependencyHealth(
            status="error",
            detail=f"Database readiness probe failed: {exc}",
        )
    return DependencyHealth(status="ok")


async def _check_redis_readiness(services: TallyServices) -> DependencyHealth:
    try:
        pong = await services.store.ping()
    except Exception as exc:
        return DependencyHealth(status="error", detail=f"Redis ping failed: {exc}")

    if not pong:
        return DependencyHealth(status="error", detail="Redis ping returned false")
    return DependencyHealth(status="ok")


async def _build_health_response(services: TallyServices) -> tuple[HealthResponse, bool]:
    redis_readiness = await _check_redis_readiness(services)
    db_readiness = await _check_database_readiness(services)
    readiness = ReadinessMetrics(redis=redis_readiness, database=db_readiness)

    ready = redis_readiness.status == "ok"
    healthy = ready and db_readiness.status == "ok"

    payload = HealthResponse(
        status="ok" if healthy else "degraded",
        version=services.settings.version,
        uptime=services.snapshot.uptime(),
        readiness=readiness,
    )
    return payload, ready


@router.get("/health", response_model=HealthResponse)
async def health_check(
    services: TallyServices = Depends(get_services),
) -> HealthResponse:
    """
    Liveness endpoint with dependency status details.

    This endpoint always returns 200 when the API process is alive.
    See /ready for strict readiness signaling.
    """
    payload, _ = await _build_health_response(services)
    return payload


@router.get("/ready", response_model=HealthResponse)
async def readiness_check(
    response: Response,
    services: TallyServices = Depends(get_services),
) -> HealthResponse:
    """Readiness endpoint: 503 while Redis is unreachable."""
    payload, ready = await _build_health_response(services)
    if not ready:
        logger.warning("Readiness check failed: %s", payload.readiness.redis.detail)
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return payload
