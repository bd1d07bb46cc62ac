"""Fire-and-forget background queue for telemetry recording.

Request handlers hand over a zero-argument coroutine factory and return
immediately; a single worker task awaits the work off the request path.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from tally.config import get_settings

logger = logging.getLogger(__name__)

WorkFactory = Callable[[], Awaitable[object]]


class TelemetryDispatcher:
    """Bounded queue drained by one background task."""

    def __init__(self, max_pending: int | None = None) -> None:
        self._max_pending = max_pending or get_settings().dispatcher_max_pending
        self._queue: asyncio.Queue[WorkFactory] = asyncio.Queue(maxsize=self._max_pending)
        self._task: asyncio.Task[None] | None = None
        self.dropped = 0
        self._dropping = False

    @property
    def running(self) -> bool:
        return self._task is not None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def submit(self, work: WorkFactory) -> bool:
        """Queue ``work`` without blocking. Returns False when it was dropped."""
        try:
            self._queue.put_nowait(work)
        except asyncio.QueueFull:
            self.dropped += 1
            # Warn once per burst of drops.
            if not self._dropping:
                self._dropping = True
                logger.warning(
                    "Telemetry queue full (%d pending), dropping work", self._max_pending
                )
            else:
                logger.debug("Telemetry work dropped (total dropped=%d)", self.dropped)
            return False
        self._dropping = False
        return True

    async def start(self) -> None:
        """Start the background worker task."""
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info("Telemetry dispatcher started (max_pending=%d)", self._max_pending)

    async def stop(self) -> None:
        """Finish queued work, then stop the worker task."""
        if self._task is None:
            return
        await self.drain()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Telemetry dispatcher stopped (dropped=%d)", self.dropped)

    async def drain(self) -> None:
        """Wait until everything submitted so far has run."""
        if self._task is None:
            while not self._queue.empty():
                await self._run_one(self._queue.get_nowait())
            return
        await self._queue.join()

    async def _loop(self) -> None:
        while True:
            work = await self._queue.get()
            await self._run_one(work)

    async def _run_one(self, work: WorkFactory) -> None:
        try:
            await work()
        except Exception:
            logger.exception("Telemetry work failed")
        finally:
            self._queue.task_done()


__all__ = ["TelemetryDispatcher", "WorkFactory"]
