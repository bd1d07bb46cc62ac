"""Monitoring read-model payloads."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class HourlyRequests(BaseModel):
    """Request and error counts for one hour of the current day."""

    hour: str
    count: int = 0
    errors: int = 0


class ApiOverview(BaseModel):
    """Today's request totals plus sample-based latency figures."""

    requests_today: int = 0
    requests_this_hour: int = 0
    total_requests: int = 0
    error_count: int = 0
    error_rate: float = 0.0
    avg_response_time: float = 0.0
    p95_response_time: float = 0.0
    requests_by_hour: list[HourlyRequests] = Field(default_factory=list)


class EndpointStats(BaseModel):
    """Per-endpoint call volume, errors and response-time sample stats."""

    endpoint: str
    method: str
    count: int = 0
    avg_response_time: float = 0.0
    min_response_time: float = 0.0
    max_response_time: float = 0.0
    p95_response_time: float = 0.0
    error_count: int = 0
    error_rate: float = 0.0
    last_called: datetime | None = None


class ErrorRecord(BaseModel):
    """One entry in the capped recent-errors list."""

    id: str
    type: str
    code: str
    message: str
    stack: str | None = None
    endpoint: str
    method: str
    status_code: int
    timestamp: datetime
    request_id: str | None = None
    user_id: str | None = None
    metadata: dict[str, Any] | None = None


class RecentErrors(BaseModel):
    errors: list[ErrorRecord] = Field(default_factory=list)
    types: list[str] = Field(default_factory=list)


class ErrorTrend(BaseModel):
    """Error totals for one calendar day, broken down by type."""

    date: str
    count: int = 0
    types: dict[str, int] = Field(default_factory=dict)


class QueryStats(BaseModel):
    """Running count and sample-based durations for one model operation."""

    query: str
    model: str
    operation: str
    avg_duration: float = 0.0
    min_duration: float = 0.0
    max_duration: float = 0.0
    count: int = 0
    last_executed: datetime | None = None


class SlowQuery(BaseModel):
    """Literal slow-query log entry."""

    query: str
    model: str
    operation: str
    duration_ms: float
    timestamp: datetime


class QueryOverview(BaseModel):
    slow_queries: list[QueryStats] = Field(default_factory=list)
    frequent_queries: list[QueryStats] = Field(default_factory=list)
    raw_slow_queries: list[SlowQuery] = Field(default_factory=list)


class LogRecordView(BaseModel):
    """A captured log record from the in-process buffer."""

    id: str
    level: str
    message: str
    timestamp: datetime
    logger: str
    request_id: str | None = None


class LogsPage(BaseModel):
    logs: list[LogRecordView] = Field(default_factory=list)
    stats: dict[str, int] = Field(default_factory=dict)
    total: int = 0


__all__ = [
    "ApiOverview",
    "EndpointStats",
    "ErrorRecord",
    "ErrorTrend",
    "HourlyRequests",
    "LogRecordView",
    "LogsPage",
    "QueryOverview",
    "QueryStats",
    "RecentErrors",
    "SlowQuery",
]
