"""In-process buffer of recent log records for the operator logs panel."""

from __future__ import annotations

import itertools
import logging
from collections import deque
from datetime import UTC, datetime

from tally.config import get_settings
from tally.contracts import LogRecordView, LogsPage

LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class RecentLogsHandler(logging.Handler):
    """Keeps the newest ``capacity`` records, newest first."""

    def __init__(self, capacity: int | None = None, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self.capacity = capacity or get_settings().log_buffer_capacity
        self._records: deque[LogRecordView] = deque(maxlen=self.capacity)
        self._ids = itertools.count(1)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            view = LogRecordView(
                id=str(next(self._ids)),
                level=record.levelname,
                message=record.getMessage(),
                timestamp=datetime.fromtimestamp(record.created, UTC),
                logger=record.name,
                request_id=getattr(record, "correlation_id", None),
            )
        except Exception:
            self.handleError(record)
            return
        self._records.appendleft(view)

    def _snapshot(self) -> list[LogRecordView]:
        with self.lock:
            return list(self._records)

    def clear(self) -> None:
        with self.lock:
            self._records.clear()

    def get_logs(
        self,
        level: str | None = None,
        search: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> LogsPage:
        """Filter and page the buffer.

        ``level`` is a comma-separated list (``"ERROR,WARNING"``). ``search``
        is a case-insensitive substring match on message, request id and
        logger name. ``total`` counts matches before paging.
        """
        records = self._snapshot()

        if level:
            wanted = {part.strip().upper() for part in level.split(",") if part.strip()}
            if "WARN" in wanted:
                wanted.add("WARNING")
            records = [r for r in records if r.level in wanted]

        if search:
            needle = search.lower()
            records = [
                r
                for r in records
                if needle in r.message.lower()
                or needle in (r.request_id or "").lower()
                or needle in r.logger.lower()
            ]

        offset = max(offset, 0)
        limit = max(limit, 0)
        return LogsPage(
            logs=records[offset : offset + limit],
            stats=self.counts_by_level(),
            total=len(records),
        )

    def counts_by_level(self) -> dict[str, int]:
        counts = dict.fromkeys(LEVELS, 0)
        for record in self._snapshot():
            key = "ERROR" if record.level == "CRITICAL" else record.level
            if key in counts:
                counts[key] += 1
        return counts


__all__ = ["LEVELS", "RecentLogsHandler"]
