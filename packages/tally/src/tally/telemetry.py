"""Ingestion facade called from request-completion and error hooks.

Every ``on_*`` hook is synchronous and cheap: it builds the event, hands
the recording coroutine to the dispatcher and returns. Connection hooks
only move the in-process gauge.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any

from tally.dispatch import TelemetryDispatcher
from tally.metrics import ErrorEvent, MetricsAggregator, QueryMetric, RequestMetric
from tally.metrics.models import utc_now
from tally.snapshot import ConnectionGauge
from tally.store import CounterStore


class Telemetry:
    """Feeds request, error and query events into the metrics aggregator."""

    def __init__(
        self,
        store: CounterStore | Any,
        *,
        dispatcher: TelemetryDispatcher | None = None,
        connections: ConnectionGauge | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store if isinstance(store, CounterStore) else CounterStore(store)
        self.metrics = MetricsAggregator(self.store, clock=clock)
        self.dispatcher = dispatcher or TelemetryDispatcher()
        self.connections = connections or ConnectionGauge()
        self._clock = clock

    async def start(self) -> None:
        await self.dispatcher.start()

    async def stop(self) -> None:
        await self.dispatcher.stop()

    async def flush(self) -> None:
        """Wait for all recording submitted so far."""
        await self.dispatcher.drain()

    def on_request_complete(
        self,
        endpoint: str,
        method: str,
        status_code: int,
        duration_ms: float,
        timestamp: datetime | None = None,
        request_id: str | None = None,
        user_id: str | None = None,
        error: str | None = None,
    ) -> None:
        metric = RequestMetric(
            endpoint=endpoint,
            method=method.upper(),
            status_code=status_code,
            duration_ms=duration_ms,
            timestamp=timestamp or self._clock(),
            request_id=request_id,
            user_id=user_id,
            error=error,
        )
        self.dispatcher.submit(lambda: self.metrics.record_request(metric))

    def on_error_raised(
        self,
        type: str,
        code: str,
        message: str,
        endpoint: str,
        method: str,
        status_code: int,
        stack: str | None = None,
        request_id: str | None = None,
        user_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        event = ErrorEvent(
            type=type,
            code=code,
            message=message,
            endpoint=endpoint,
            method=method.upper(),
            status_code=status_code,
            stack=stack,
            request_id=request_id,
            user_id=user_id,
            metadata=metadata,
            timestamp=self._clock(),
        )
        self.dispatcher.submit(lambda: self.metrics.record_error(event))

    def on_data_store_query(
        self,
        query_text: str,
        model: str,
        operation: str,
        duration_ms: float,
    ) -> None:
        metric = QueryMetric(
            query=query_text,
            model=model,
            operation=operation,
            duration_ms=duration_ms,
            timestamp=self._clock(),
        )
        self.dispatcher.submit(lambda: self.metrics.record_query(metric))

    def on_connection_opened(self) -> None:
        self.connections.opened()

    def on_connection_closed(self) -> None:
        self.connections.closed()


__all__ = ["Telemetry"]
