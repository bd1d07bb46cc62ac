"""API request metrics: recording and dashboard reads.

Every completed request is folded into daily and hourly counters, a daily
ranking of endpoints by call volume, and a per-endpoint bounded sample of
response times. Reads join those pieces back together for the dashboard.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, Literal

from tally.config import get_settings
from tally.contracts import ApiOverview, EndpointStats, HourlyRequests
from tally.errors import MalformedStoredValue, TallyError
from tally.keys import (
    DAILY_TOTAL_TTL,
    HOURLY_COUNTER_TTL,
    SAMPLE_TTL,
    Granularity,
    endpoint_errors_key,
    endpoint_id,
    endpoint_last_call_key,
    endpoints_rank_key,
    errors_key,
    requests_key,
    response_sample_key,
    split_endpoint_id,
)
from tally.metrics.models import RequestMetric, utc_now
from tally.metrics.samples import parse_samples, rate, summarize
from tally.store import CounterStore, parse_epoch_ms, parse_int, text_list

logger = logging.getLogger(__name__)

EndpointSort = Literal["count", "avgTime"]


class RequestMetrics:
    """Records per-request telemetry and derives API / endpoint stats."""

    def __init__(
        self,
        store: CounterStore,
        *,
        sample_size: int | None = None,
        top_endpoints: int | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        settings = get_settings()
        self._store = store
        self._sample_size = sample_size or settings.sample_size
        self._top_endpoints = top_endpoints or settings.overview_top_endpoints
        self._clock = clock

    async def record_request(self, metric: RequestMetric) -> None:
        """Fold one request into the counters. Never raises."""
        at = metric.timestamp
        endpoint = endpoint_id(metric.method, metric.endpoint)

        batch = self._store.batch()
        batch.incr(requests_key(Granularity.DAY, at), ttl_seconds=DAILY_TOTAL_TTL)
        batch.incr(requests_key(Granularity.HOUR, at), ttl_seconds=HOURLY_COUNTER_TTL)

        if metric.is_error:
            batch.incr(errors_key(Granularity.DAY, at), ttl_seconds=DAILY_TOTAL_TTL)
            batch.incr(errors_key(Granularity.HOUR, at), ttl_seconds=HOURLY_COUNTER_TTL)
            batch.incr(endpoint_errors_key(endpoint, at), ttl_seconds=DAILY_TOTAL_TTL)

        batch.zincr(endpoints_rank_key(at), endpoint, 1, ttl_seconds=DAILY_TOTAL_TTL)
        batch.push_bounded(
            response_sample_key(endpoint),
            round(metric.duration_ms, 2),
            self._sample_size,
            ttl_seconds=SAMPLE_TTL,
        )
        batch.set_value(
            endpoint_last_call_key(endpoint),
            int(at.timestamp() * 1000),
            ttl_seconds=SAMPLE_TTL,
        )

        try:
            await batch.execute()
        except Exception:
            logger.exception("Failed to record request metrics for %s", endpoint)

    async def api_overview(self) -> ApiOverview:
        """Today's totals with latency figures over the busiest endpoints."""
        now = self._clock()
        try:
            return await self._api_overview(now)
        except TallyError as exc:
            logger.error("Failed to read API overview: %s", exc)
            return ApiOverview()

    async def _api_overview(self, now: datetime) -> ApiOverview:
        day = now.astimezone(UTC).replace(minute=0, second=0, microsecond=0)
        hours = [day.replace(hour=h) for h in range(day.hour + 1)]

        keys = [
            requests_key(Granularity.DAY, now),
            errors_key(Granularity.DAY, now),
        ]
        for hour in hours:
            keys.append(requests_key(Granularity.HOUR, hour))
            keys.append(errors_key(Granularity.HOUR, hour))

        counts = await self._store.get_ints(keys)
        total_requests, total_errors = counts[0], counts[1]
        hourly = counts[2:]

        requests_by_hour = [
            HourlyRequests(
                hour=f"{hour.hour:02d}:00",
                count=hourly[index * 2],
                errors=hourly[index * 2 + 1],
            )
            for index, hour in enumerate(hours)
        ]

        top = await self._store.top(endpoints_rank_key(now), self._top_endpoints)
        sample_keys = [response_sample_key(endpoint) for endpoint, _ in top]
        samples: list[float] = []
        for key, raw_values in zip(
            sample_keys, await self._store.list_ranges(sample_keys), strict=False
        ):
            samples.extend(parse_samples(key, raw_values))
        stats = summarize(samples)

        return ApiOverview(
            requests_today=total_requests,
            requests_this_hour=requests_by_hour[-1].count,
            total_requests=total_requests,
            error_count=total_errors,
            error_rate=rate(total_errors, total_requests),
            avg_response_time=stats.avg,
            p95_response_time=stats.p95,
            requests_by_hour=requests_by_hour,
        )

    async def endpoint_stats(
        self,
        limit: int = 10,
        sort_by: EndpointSort = "count",
    ) -> list[EndpointStats]:
        """Per-endpoint stats for today, sorted descending by ``sort_by``."""
        now = self._clock()
        try:
            stats = await self._endpoint_stats(now)
        except TallyError as exc:
            logger.error("Failed to read endpoint metrics: %s", exc)
            return []

        if sort_by == "avgTime":
            stats.sort(key=lambda item: item.avg_response_time, reverse=True)
        else:
            stats.sort(key=lambda item: item.count, reverse=True)
        return stats[: max(limit, 0)]

    async def slowest_endpoints(self, limit: int = 10) -> list[EndpointStats]:
        return await self.endpoint_stats(limit, "avgTime")

    async def _endpoint_stats(self, now: datetime) -> list[EndpointStats]:
        ranked = await self._store.top(endpoints_rank_key(now))
        if not ranked:
            return []

        pipe: Any = self._store.read_pipeline()
        for endpoint, _ in ranked:
            pipe.lrange(response_sample_key(endpoint), 0, -1)
            pipe.get(endpoint_errors_key(endpoint, now))
            pipe.get(endpoint_last_call_key(endpoint))
        results = await self._store.execute(pipe)

        stats: list[EndpointStats] = []
        for index, (endpoint, count) in enumerate(ranked):
            raw_samples, raw_errors, raw_last = results[index * 3 : index * 3 + 3]
            sample_key = response_sample_key(endpoint)
            sample = summarize(parse_samples(sample_key, text_list(raw_samples)))

            errors_at = endpoint_errors_key(endpoint, now)
            try:
                error_count = parse_int(errors_at, raw_errors)
            except MalformedStoredValue:
                logger.warning("Ignoring malformed counter at %s", errors_at)
                error_count = 0

            method, path = split_endpoint_id(endpoint)
            stats.append(
                EndpointStats(
                    endpoint=path,
                    method=method,
                    count=count,
                    avg_response_time=sample.avg,
                    min_response_time=sample.min,
                    max_response_time=sample.max,
                    p95_response_time=sample.p95,
                    error_count=error_count,
                    error_rate=rate(error_count, count),
                    last_called=parse_epoch_ms(raw_last),
                )
            )
        return stats


__all__ = ["EndpointSort", "RequestMetrics"]
