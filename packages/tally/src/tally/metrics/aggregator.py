"""Single entry point bundling the request, error and query recorders."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from tally.metrics.errors import ErrorTracker
from tally.metrics.models import ErrorEvent, QueryMetric, RequestMetric, utc_now
from tally.metrics.queries import QueryAnalytics
from tally.metrics.requests import RequestMetrics
from tally.store import CounterStore


class MetricsAggregator:
    """Owns the three metric families over one shared store."""

    def __init__(
        self,
        store: CounterStore,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.requests = RequestMetrics(store, clock=clock)
        self.errors = ErrorTracker(store, clock=clock)
        self.queries = QueryAnalytics(store)

    async def record_request(self, metric: RequestMetric) -> None:
        await self.requests.record_request(metric)

    async def record_error(self, event: ErrorEvent) -> None:
        await self.errors.record_error(event)

    async def record_query(self, metric: QueryMetric) -> None:
        await self.queries.record_query(metric)


__all__ = ["MetricsAggregator"]
