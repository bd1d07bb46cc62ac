"""Typed ingestion events for the metrics recorders."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from tally.keys.windows import as_utc


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class RequestMetric:
    """One completed HTTP request."""

    endpoint: str
    method: str
    status_code: int
    duration_ms: float
    timestamp: datetime = field(default_factory=utc_now)
    request_id: str | None = None
    user_id: str | None = None
    error: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamp", as_utc(self.timestamp))

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400


@dataclass(frozen=True)
class ErrorEvent:
    """An error raised while serving a request."""

    type: str
    code: str
    message: str
    endpoint: str
    method: str
    status_code: int
    stack: str | None = None
    request_id: str | None = None
    user_id: str | None = None
    metadata: dict[str, Any] | None = None
    timestamp: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamp", as_utc(self.timestamp))


@dataclass(frozen=True)
class QueryMetric:
    """One data-store query execution."""

    query: str
    model: str
    operation: str
    duration_ms: float
    timestamp: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamp", as_utc(self.timestamp))


__all__ = [
    "ErrorEvent",
    "QueryMetric",
    "RequestMetric",
    "utc_now",
]
