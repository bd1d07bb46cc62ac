"""Tally engine configuration with sensible defaults for development."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Engine tuning.

    All settings can be overridden via environment variables with TALLY_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="TALLY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Bounded reservoir size for response-time and query-duration samples.
    sample_size: int = Field(default=100, gt=0)

    # Recent error list and slow-query log caps.
    recent_errors_max: int = Field(default=100, gt=0)
    slow_queries_max: int = Field(default=100, gt=0)
    slow_query_threshold_ms: float = 100.0
    query_text_max_chars: int = 500

    # Endpoints whose samples feed the overview avg/p95.
    overview_top_endpoints: int = 10

    # System snapshot cache lifetime.
    snapshot_cache_ttl_seconds: int = 15

    # General (app-wide) rate limiter.
    rate_limit_window_ms: int = 15 * 60 * 1000
    rate_limit_max_requests: int = 100

    # Fire-and-forget recording queue.
    dispatcher_max_pending: int = 10_000

    # Recent log buffer size.
    log_buffer_capacity: int = 500


@lru_cache
def get_settings() -> Settings:
    return Settings()
