"""Error tracking: a capped recent-errors list plus daily breakdowns."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import ValidationError
from pydantic_core import to_jsonable_python

from tally.config import get_settings
from tally.contracts import ErrorRecord, ErrorTrend
from tally.errors import TallyError
from tally.keys import (
    BREAKDOWN_TTL,
    RECENT_ERRORS_KEY,
    day_label,
    endpoint_id,
    error_endpoints_key,
    error_hourly_key,
    error_types_key,
)
from tally.metrics.models import ErrorEvent, utc_now
from tally.store import CounterStore, int_mapping

logger = logging.getLogger(__name__)


def jsonable_metadata(metadata: dict[str, Any] | None) -> dict[str, Any] | None:
    """JSON-safe copy of error metadata; unknown types fall back to ``repr``."""
    if metadata is None:
        return None
    return to_jsonable_python(metadata, fallback=repr)


class ErrorTracker:
    """Records raised errors and serves recent / trend views of them."""

    def __init__(
        self,
        store: CounterStore,
        *,
        max_errors: int | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._max_errors = max_errors or get_settings().recent_errors_max
        self._clock = clock

    async def record_error(self, event: ErrorEvent) -> None:
        """Push the error onto the recent list and bump breakdowns. Never raises."""
        at = event.timestamp
        try:
            record = ErrorRecord(
                id=str(uuid.uuid4()),
                type=event.type,
                code=event.code,
                message=event.message,
                stack=event.stack,
                endpoint=event.endpoint,
                method=event.method,
                status_code=event.status_code,
                timestamp=at,
                request_id=event.request_id,
                user_id=event.user_id,
                metadata=jsonable_metadata(event.metadata),
            )

            batch = self._store.batch()
            batch.push_bounded(RECENT_ERRORS_KEY, record.model_dump_json(), self._max_errors)
            batch.hincr(error_types_key(at), event.type, 1, ttl_seconds=BREAKDOWN_TTL)
            batch.hincr(error_hourly_key(at), str(at.hour), 1, ttl_seconds=BREAKDOWN_TTL)
            batch.hincr(
                error_endpoints_key(at),
                endpoint_id(event.method, event.endpoint),
                1,
                ttl_seconds=BREAKDOWN_TTL,
            )
            await batch.execute()
        except Exception:
            logger.exception("Failed to record error %s", event.type)

    async def _read_records(self, count: int | None) -> list[ErrorRecord]:
        records: list[ErrorRecord] = []
        for raw in await self._store.list_range(RECENT_ERRORS_KEY, count):
            try:
                records.append(ErrorRecord.model_validate_json(raw))
            except ValidationError:
                logger.warning("Skipping malformed error record: %.80s", raw)
        return records

    async def recent_errors(self, limit: int = 50, type: str | None = None) -> list[ErrorRecord]:
        """Newest errors first, optionally only those of one type."""
        if limit <= 0:
            return []
        try:
            if type:
                records = [r for r in await self._read_records(None) if r.type == type]
            else:
                records = await self._read_records(limit)
        except TallyError as exc:
            logger.error("Failed to read recent errors: %s", exc)
            return []
        return records[:limit]

    async def error_types(self) -> list[str]:
        """Distinct error types in the recent list, most recent first."""
        try:
            records = await self._read_records(None)
        except TallyError as exc:
            logger.error("Failed to read error types: %s", exc)
            return []
        return list(dict.fromkeys(record.type for record in records))

    async def error_trends(self, days: int = 7) -> list[ErrorTrend]:
        """One entry per calendar day, oldest first, zero-filled."""
        days = max(int(days), 0)
        if days == 0:
            return []

        today = self._clock().astimezone(UTC)
        dates = [day_label(today - timedelta(days=offset)) for offset in range(days - 1, -1, -1)]

        pipe: Any = self._store.read_pipeline()
        for date in dates:
            pipe.hgetall(error_hourly_key(date))
            pipe.hgetall(error_types_key(date))

        try:
            results = await self._store.execute(pipe)
        except TallyError as exc:
            logger.error("Failed to read error trends: %s", exc)
            results = [{}] * (len(dates) * 2)

        trends: list[ErrorTrend] = []
        for index, date in enumerate(dates):
            hourly = int_mapping(error_hourly_key(date), results[index * 2])
            types = int_mapping(error_types_key(date), results[index * 2 + 1])
            trends.append(ErrorTrend(date=date, count=sum(hourly.values()), types=types))
        return trends

    async def errors_by_type(self, date: str | None = None) -> dict[str, int]:
        """Error counts by type for ``date`` (``YYYY-MM-DD``, default today)."""
        date = date or day_label(self._clock())
        try:
            return await self._store.hash_ints(error_types_key(date))
        except TallyError as exc:
            logger.error("Failed to read errors by type for %s: %s", date, exc)
            return {}


__all__ = ["ErrorTracker"]
