"""Data-store query analytics keyed by ``model:operation``.

All query state lives for one hour from its first write, so the figures
describe roughly the last hour of traffic.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC
from typing import Any, Literal

from pydantic import ValidationError

from tally.config import get_settings
from tally.contracts import QueryStats, SlowQuery
from tally.errors import TallyError
from tally.keys import (
    QUERY_COUNTS_KEY,
    QUERY_LAST_KEY,
    QUERY_STATS_TTL,
    SLOW_QUERIES_KEY,
    query_id,
    query_sample_key,
)
from tally.metrics.models import QueryMetric
from tally.metrics.samples import parse_samples, summarize
from tally.store import CounterStore, parse_epoch_ms, text_list

logger = logging.getLogger(__name__)

QuerySort = Literal["count", "avgTime"]


class QueryAnalytics:
    """Records query timings and reports slow / frequent queries."""

    def __init__(
        self,
        store: CounterStore,
        *,
        sample_size: int | None = None,
        slow_threshold_ms: float | None = None,
        max_slow_queries: int | None = None,
        max_query_chars: int | None = None,
    ) -> None:
        settings = get_settings()
        self._store = store
        self._sample_size = sample_size or settings.sample_size
        self._slow_threshold_ms = (
            settings.slow_query_threshold_ms if slow_threshold_ms is None else slow_threshold_ms
        )
        self._max_slow_queries = max_slow_queries or settings.slow_queries_max
        self._max_query_chars = max_query_chars or settings.query_text_max_chars

    async def record_query(self, metric: QueryMetric) -> None:
        """Fold one query execution into the hourly stats. Never raises."""
        query = query_id(metric.model, metric.operation)

        batch = self._store.batch()
        batch.push_bounded(
            query_sample_key(query),
            round(metric.duration_ms, 2),
            self._sample_size,
            ttl_seconds=QUERY_STATS_TTL,
        )
        batch.hincr(QUERY_COUNTS_KEY, query, 1, ttl_seconds=QUERY_STATS_TTL)
        batch.hset(
            QUERY_LAST_KEY,
            query,
            int(metric.timestamp.timestamp() * 1000),
            ttl_seconds=QUERY_STATS_TTL,
        )

        if metric.duration_ms >= self._slow_threshold_ms:
            entry = json.dumps(
                {
                    "query": metric.query[: self._max_query_chars],
                    "model": metric.model,
                    "operation": metric.operation,
                    "duration_ms": round(metric.duration_ms, 2),
                    "timestamp": metric.timestamp.astimezone(UTC).isoformat(),
                }
            )
            batch.push_bounded(
                SLOW_QUERIES_KEY,
                entry,
                self._max_slow_queries,
                ttl_seconds=QUERY_STATS_TTL,
            )

        try:
            await batch.execute()
        except Exception:
            logger.exception("Failed to record query metrics for %s", query)

    async def query_stats(self, limit: int = 20, sort_by: QuerySort = "count") -> list[QueryStats]:
        try:
            stats = await self._query_stats()
        except TallyError as exc:
            logger.error("Failed to read query metrics: %s", exc)
            return []

        if sort_by == "avgTime":
            stats.sort(key=lambda item: item.avg_duration, reverse=True)
        else:
            stats.sort(key=lambda item: item.count, reverse=True)
        return stats[: max(limit, 0)]

    async def slowest_queries(self, limit: int = 10) -> list[QueryStats]:
        return await self.query_stats(limit, "avgTime")

    async def most_frequent_queries(self, limit: int = 10) -> list[QueryStats]:
        return await self.query_stats(limit, "count")

    async def _query_stats(self) -> list[QueryStats]:
        counts = await self._store.hash_ints(QUERY_COUNTS_KEY)
        if not counts:
            return []
        last_times = await self._store.hash_texts(QUERY_LAST_KEY)

        queries = sorted(counts)
        pipe: Any = self._store.read_pipeline()
        for query in queries:
            pipe.lrange(query_sample_key(query), 0, -1)
        results = await self._store.execute(pipe)

        stats: list[QueryStats] = []
        for query, raw_samples in zip(queries, results, strict=False):
            model, _, operation = query.partition(":")
            sample = summarize(parse_samples(query_sample_key(query), text_list(raw_samples)))
            stats.append(
                QueryStats(
                    query=query,
                    model=model or "unknown",
                    operation=operation or "unknown",
                    avg_duration=sample.avg,
                    min_duration=sample.min,
                    max_duration=sample.max,
                    count=counts[query],
                    last_executed=parse_epoch_ms(last_times.get(query)),
                )
            )
        return stats

    async def raw_slow_queries(self, limit: int = 20) -> list[SlowQuery]:
        """The literal slow-query log, newest first."""
        if limit <= 0:
            return []
        try:
            raw_entries = await self._store.list_range(SLOW_QUERIES_KEY, limit)
        except TallyError as exc:
            logger.error("Failed to read slow queries: %s", exc)
            return []

        entries: list[SlowQuery] = []
        for raw in raw_entries:
            try:
                entries.append(SlowQuery.model_validate_json(raw))
            except ValidationError:
                logger.warning("Skipping malformed slow query entry: %.80s", raw)
        return entries


__all__ = ["QueryAnalytics", "QuerySort"]
