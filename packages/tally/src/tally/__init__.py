"""Tally: Redis-backed windowed counters for telemetry and rate limiting."""

from tally._version import __version__
from tally.config import Settings, get_settings
from tally.dispatch import TelemetryDispatcher
from tally.errors import (
    ConfigurationError,
    MalformedStoredValue,
    StoreUnavailable,
    TallyError,
)
from tally.logbuffer import RecentLogsHandler
from tally.metrics import (
    ErrorEvent,
    MetricsAggregator,
    QueryMetric,
    RequestMetric,
)
from tally.ratelimit import (
    FixedWindowRateLimiter,
    RateLimitConfig,
    RateLimitDecision,
    create_rate_limiter,
    parse_rate_limit,
    preset_config,
)
from tally.snapshot import ConnectionGauge, SystemSnapshotCollector
from tally.store import CounterStore
from tally.telemetry import Telemetry

__all__ = [
    "ConfigurationError",
    "ConnectionGauge",
    "CounterStore",
    "ErrorEvent",
    "FixedWindowRateLimiter",
    "MalformedStoredValue",
    "MetricsAggregator",
    "QueryMetric",
    "RateLimitConfig",
    "RateLimitDecision",
    "RecentLogsHandler",
    "RequestMetric",
    "Settings",
    "StoreUnavailable",
    "SystemSnapshotCollector",
    "TallyError",
    "Telemetry",
    "TelemetryDispatcher",
    "__version__",
    "create_rate_limiter",
    "get_settings",
    "parse_rate_limit",
    "preset_config",
]
