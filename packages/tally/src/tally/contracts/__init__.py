"""Pydantic payloads returned by the read API."""

from tally.contracts.common import ErrorBody, ErrorResponse, SuccessResponse
from tally.contracts.monitoring import (
    ApiOverview,
    EndpointStats,
    ErrorRecord,
    ErrorTrend,
    HourlyRequests,
    LogRecordView,
    LogsPage,
    QueryOverview,
    QueryStats,
    RecentErrors,
    SlowQuery,
)
from tally.contracts.system import (
    CpuUsage,
    DatabaseStatus,
    DependencyHealth,
    HealthResponse,
    MemoryUsage,
    ReadinessMetrics,
    RedisStatus,
    SystemSnapshot,
)

__all__ = [
    "ApiOverview",
    "CpuUsage",
    "DatabaseStatus",
    "DependencyHealth",
    "EndpointStats",
    "ErrorBody",
    "ErrorRecord",
    "ErrorResponse",
    "ErrorTrend",
    "HealthResponse",
    "HourlyRequests",
    "LogRecordView",
    "LogsPage",
    "MemoryUsage",
    "QueryOverview",
    "QueryStats",
    "ReadinessMetrics",
    "RecentErrors",
    "RedisStatus",
    "SlowQuery",
    "SuccessResponse",
    "SystemSnapshot",
]
