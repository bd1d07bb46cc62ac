"""Monitoring key constants shared by the recorders and readers.

Redis key structure:
    monitoring:requests:day:{YYYY-MM-DD}               -> STRING counter
    monitoring:requests:hour:{YYYY-MM-DDTHH}           -> STRING counter
    monitoring:errors:day:{YYYY-MM-DD}                 -> STRING counter
    monitoring:errors:hour:{YYYY-MM-DDTHH}             -> STRING counter
    monitoring:endpoints:day:{YYYY-MM-DD}              -> ZSET "METHOD:path" -> calls
    monitoring:endpoint:errors:{METHOD:path}:day:{..}  -> STRING counter
    monitoring:response:{METHOD:path}                  -> LIST of durations (<= 100)
    monitoring:endpoint:last:{METHOD:path}             -> STRING epoch ms

    monitoring:errors:recent                           -> LIST of ErrorRecord JSON (<= 100)
    monitoring:errors:types:day:{YYYY-MM-DD}           -> HASH type -> count
    monitoring:errors:hourly:day:{YYYY-MM-DD}          -> HASH hour -> count
    monitoring:errors:endpoints:day:{YYYY-MM-DD}       -> HASH "METHOD:path" -> count

    monitoring:query:times:{model:operation}           -> LIST of durations (<= 100)
    monitoring:query:counts                            -> HASH "model:operation" -> count
    monitoring:query:last                              -> HASH "model:operation" -> epoch ms
    monitoring:query:slow                              -> LIST of slow query JSON (<= 100)

    monitoring:system                                  -> STRING SystemSnapshot JSON
"""

from __future__ import annotations

from datetime import datetime

from tally.keys.windows import Granularity, window_key

MONITORING_PREFIX = "monitoring"

# TTLs (seconds)
DAILY_TOTAL_TTL = 2 * 86_400
HOURLY_COUNTER_TTL = 86_400
SAMPLE_TTL = 3_600
BREAKDOWN_TTL = 7 * 86_400
QUERY_STATS_TTL = 3_600
SYSTEM_SNAPSHOT_TTL = 15

RECENT_ERRORS_KEY = f"{MONITORING_PREFIX}:errors:recent"
QUERY_COUNTS_KEY = f"{MONITORING_PREFIX}:query:counts"
QUERY_LAST_KEY = f"{MONITORING_PREFIX}:query:last"
SLOW_QUERIES_KEY = f"{MONITORING_PREFIX}:query:slow"
SYSTEM_SNAPSHOT_KEY = f"{MONITORING_PREFIX}:system"


def endpoint_id(method: str, path: str) -> str:
    """Dimension name for one route, e.g. ``GET:/jobs/{id}``."""
    return f"{method.upper()}:{path}"


def split_endpoint_id(value: str) -> tuple[str, str]:
    method, _, path = value.partition(":")
    return method or "GET", path


def requests_key(granularity: Granularity, at: datetime | str) -> str:
    return window_key(MONITORING_PREFIX, "requests", granularity, at)


def errors_key(granularity: Granularity, at: datetime | str) -> str:
    return window_key(MONITORING_PREFIX, "errors", granularity, at)


def endpoints_rank_key(at: datetime | str) -> str:
    return window_key(MONITORING_PREFIX, "endpoints", Granularity.DAY, at)


def endpoint_errors_key(endpoint: str, at: datetime | str) -> str:
    return window_key(MONITORING_PREFIX, f"endpoint:errors:{endpoint}", Granularity.DAY, at)


def response_sample_key(endpoint: str) -> str:
    return f"{MONITORING_PREFIX}:response:{endpoint}"


def endpoint_last_call_key(endpoint: str) -> str:
    return f"{MONITORING_PREFIX}:endpoint:last:{endpoint}"


def error_types_key(at: datetime | str) -> str:
    return window_key(MONITORING_PREFIX, "errors:types", Granularity.DAY, at)


def error_hourly_key(at: datetime | str) -> str:
    return window_key(MONITORING_PREFIX, "errors:hourly", Granularity.DAY, at)


def error_endpoints_key(at: datetime | str) -> str:
    return window_key(MONITORING_PREFIX, "errors:endpoints", Granularity.DAY, at)


def query_id(model: str, operation: str) -> str:
    return f"{model}:{operation}"


def query_sample_key(query: str) -> str:
    return f"{MONITORING_PREFIX}:query:times:{query}"
