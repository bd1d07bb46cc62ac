"""Redis key builders and retention constants."""

from tally.keys.monitoring import (
    BREAKDOWN_TTL,
    DAILY_TOTAL_TTL,
    HOURLY_COUNTER_TTL,
    MONITORING_PREFIX,
    QUERY_COUNTS_KEY,
    QUERY_LAST_KEY,
    QUERY_STATS_TTL,
    RECENT_ERRORS_KEY,
    SAMPLE_TTL,
    SLOW_QUERIES_KEY,
    SYSTEM_SNAPSHOT_KEY,
    SYSTEM_SNAPSHOT_TTL,
    endpoint_errors_key,
    endpoint_id,
    endpoint_last_call_key,
    endpoints_rank_key,
    error_endpoints_key,
    error_hourly_key,
    error_types_key,
    errors_key,
    query_id,
    query_sample_key,
    requests_key,
    response_sample_key,
    split_endpoint_id,
)
from tally.keys.rate_limit import RATE_LIMIT_PREFIX, limiter_key, limiter_prefix
from tally.keys.windows import Granularity, as_utc, bucket_label, day_label, window_key

__all__ = [
    "BREAKDOWN_TTL",
    "DAILY_TOTAL_TTL",
    "HOURLY_COUNTER_TTL",
    "MONITORING_PREFIX",
    "QUERY_COUNTS_KEY",
    "QUERY_LAST_KEY",
    "QUERY_STATS_TTL",
    "RATE_LIMIT_PREFIX",
    "RECENT_ERRORS_KEY",
    "SAMPLE_TTL",
    "SLOW_QUERIES_KEY",
    "SYSTEM_SNAPSHOT_KEY",
    "SYSTEM_SNAPSHOT_TTL",
    "Granularity",
    "as_utc",
    "bucket_label",
    "day_label",
    "endpoint_errors_key",
    "endpoint_id",
    "endpoint_last_call_key",
    "endpoints_rank_key",
    "error_endpoints_key",
    "error_hourly_key",
    "error_types_key",
    "errors_key",
    "limiter_key",
    "limiter_prefix",
    "query_id",
    "query_sample_key",
    "requests_key",
    "response_sample_key",
    "split_endpoint_id",
    "window_key",
]
