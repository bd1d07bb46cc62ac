"""Operator dashboard read API."""

import logging
from typing import Literal

from fastapi import APIRouter, Depends, Query
from tally.contracts import (
    ApiOverview,
    EndpointStats,
    ErrorTrend,
    LogsPage,
    QueryOverview,
    RecentErrors,
    SuccessResponse,
    SystemSnapshot,
)

from tally_server.routes.depends import get_services
from tally_server.services import TallyServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/monitoring", tags=["monitoring"])

_DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


@router.get("/system", response_model=SuccessResponse[SystemSnapshot])
async def get_system_overview(
    services: TallyServices = Depends(get_services),
) -> SuccessResponse[SystemSnapshot]:
    """Host gauges and dependency status (cached for a few seconds)."""
    snapshot = await services.snapshot.snapshot()
    return SuccessResponse[SystemSnapshot](data=snapshot)


@router.get("/api-metrics", response_model=SuccessResponse[ApiOverview])
async def get_api_metrics(
    services: TallyServices = Depends(get_services),
) -> SuccessResponse[ApiOverview]:
    overview = await services.telemetry.metrics.requests.api_overview()
    return SuccessResponse[ApiOverview](data=overview)


@router.get("/endpoints", response_model=SuccessResponse[list[EndpointStats]])
async def get_endpoints(
    limit: int = Query(10, ge=1, le=500),
    sort: Literal["count", "avgTime"] = Query("count"),
    services: TallyServices = Depends(get_services),
) -> SuccessResponse[list[EndpointStats]]:
    stats = await services.telemetry.metrics.requests.endpoint_stats(limit, sort)
    return SuccessResponse[list[EndpointStats]](data=stats)


@router.get("/endpoints/slowest", response_model=SuccessResponse[list[EndpointStats]])
async def get_slowest_endpoints(
    limit: int = Query(10, ge=1, le=500),
    services: TallyServices = Depends(get_services),
) -> SuccessResponse[list[EndpointStats]]:
    stats = await services.telemetry.metrics.requests.slowest_endpoints(limit)
    return SuccessResponse[list[EndpointStats]](data=stats)


@router.get("/errors", response_model=SuccessResponse[RecentErrors])
async def get_errors(
    limit: int = Query(50, ge=1, le=100),
    type: str | None = Query(None, min_length=1),
    services: TallyServices = Depends(get_services),
) -> SuccessResponse[RecentErrors]:
    """Recent errors (newest first) plus every type seen in the recent list."""
    tracker = services.telemetry.metrics.errors
    errors = await tracker.recent_errors(limit, type)
    types = await tracker.error_types()
    return SuccessResponse[RecentErrors](data=RecentErrors(errors=errors, types=types))


@router.get("/errors/trends", response_model=SuccessResponse[list[ErrorTrend]])
async def get_error_trends(
    days: int = Query(7, ge=1, le=30),
    services: TallyServices = Depends(get_services),
) -> SuccessResponse[list[ErrorTrend]]:
    trends = await services.telemetry.metrics.errors.error_trends(days)
    return SuccessResponse[list[ErrorTrend]](data=trends)


@router.get("/errors/by-type", response_model=SuccessResponse[dict[str, int]])
async def get_errors_by_type(
    date: str | None = Query(None, pattern=_DATE_PATTERN),
    services: TallyServices = Depends(get_services),
) -> SuccessResponse[dict[str, int]]:
    counts = await services.telemetry.metrics.errors.errors_by_type(date)
    return SuccessResponse[dict[str, int]](data=counts)


@router.get("/queries", response_model=SuccessResponse[QueryOverview])
async def get_query_analytics(
    limit: int = Query(20, ge=1, le=100),
    services: TallyServices = Depends(get_services),
) -> SuccessResponse[QueryOverview]:
    """Slowest and most frequent model operations plus the raw slow-query log."""
    queries = services.telemetry.metrics.queries
    overview = QueryOverview(
        slow_queries=await queries.slowest_queries(limit),
        frequent_queries=await queries.most_frequent_queries(limit),
        raw_slow_queries=await queries.raw_slow_queries(limit),
    )
    return SuccessResponse[QueryOverview](data=overview)


@router.get("/logs", response_model=SuccessResponse[LogsPage])
async def get_logs(
    level: str | None = Query(None, description="Comma-separated levels, e.g. ERROR,WARNING"),
    search: str | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    services: TallyServices = Depends(get_services),
) -> SuccessResponse[LogsPage]:
    page = services.log_buffer.get_logs(level=level, search=search, limit=limit, offset=offset)
    return SuccessResponse[LogsPage](data=page)
