"""SQLAlchemy hook that reports statement timings as data-store queries."""

from __future__ import annotations

import logging
import re
import time
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import AsyncEngine

from tally.telemetry import Telemetry

logger = logging.getLogger(__name__)

_START_TIMES_KEY = "tally_query_start"

_OPERATION_PATTERN = re.compile(r"^\s*(\w+)", re.IGNORECASE)
_TABLE_PATTERN = re.compile(
    r"\b(?:from|into|update|join)\s+[\"`\[]?([\w.]+)[\"`\]]?",
    re.IGNORECASE,
)


def describe_statement(statement: str) -> tuple[str, str]:
    """Best-effort ``(model, operation)`` for a SQL statement."""
    match = _OPERATION_PATTERN.match(statement)
    operation = match.group(1).lower() if match else "unknown"

    table = _TABLE_PATTERN.search(statement)
    model = table.group(1).rsplit(".", 1)[-1] if table else "unknown"
    return model, operation


def instrument_engine(engine: Engine | AsyncEngine, telemetry: Telemetry) -> None:
    """Attach cursor-execute listeners that feed ``on_data_store_query``."""
    sync_engine = engine.sync_engine if isinstance(engine, AsyncEngine) else engine

    @event.listens_for(sync_engine, "before_cursor_execute")
    def _before_cursor_execute(
        conn: Any, cursor: Any, statement: str, parameters: Any, context: Any, executemany: bool
    ) -> None:
        conn.info.setdefault(_START_TIMES_KEY, []).append(time.perf_counter())

    @event.listens_for(sync_engine, "after_cursor_execute")
    def _after_cursor_execute(
        conn: Any, cursor: Any, statement: str, parameters: Any, context: Any, executemany: bool
    ) -> None:
        started = conn.info.get(_START_TIMES_KEY)
        if not started:
            return
        duration_ms = (time.perf_counter() - started.pop()) * 1000
        model, operation = describe_statement(statement)
        try:
            telemetry.on_data_store_query(
                query_text=statement,
                model=model,
                operation=operation,
                duration_ms=duration_ms,
            )
        except Exception:
            logger.debug("Failed to submit query metric", exc_info=True)

    @event.listens_for(sync_engine, "handle_error")
    def _handle_error(context: Any) -> None:
        # Drop the pending start time of a failed statement.
        connection = getattr(context, "connection", None)
        if connection is None:
            return
        started = connection.info.get(_START_TIMES_KEY)
        if started:
            started.pop()


__all__ = ["describe_statement", "instrument_engine"]
