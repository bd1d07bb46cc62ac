"""Host gauges and dependency health, cached briefly in Redis.

The CPU figure is a single ``1 - idle/total`` sample over the cumulative
per-core times since boot, not a rate over a short interval.
"""

from __future__ import annotations

import asyncio
import logging
import platform
import time
from collections.abc import Awaitable, Callable

import psutil
from pydantic import ValidationError

from tally.config import get_settings
from tally.contracts import (
    CpuUsage,
    DatabaseStatus,
    MemoryUsage,
    RedisStatus,
    SystemSnapshot,
)
from tally.errors import TallyError
from tally.keys import SYSTEM_SNAPSHOT_KEY
from tally.store import CounterStore, decode_text

logger = logging.getLogger(__name__)

DatabaseProbe = Callable[[], Awaitable[object]]


class ConnectionGauge:
    """In-flight request count, moved only by paired open/close hooks."""

    def __init__(self) -> None:
        self._active = 0

    def opened(self) -> None:
        self._active += 1

    def closed(self) -> None:
        self._active = max(0, self._active - 1)

    @property
    def value(self) -> int:
        return self._active


def format_uptime(seconds: float) -> str:
    """Render seconds as e.g. ``2d 3h 4m 5s``."""
    seconds = int(max(seconds, 0))
    days, rem = divmod(seconds, 86_400)
    hours, rem = divmod(rem, 3_600)
    minutes, secs = divmod(rem, 60)

    parts: list[str] = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if secs or not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)


def cpu_usage_estimate() -> float:
    times = psutil.cpu_times()
    total = sum(times)
    if total <= 0:
        return 0.0
    return round((1 - times.idle / total) * 100)


def _process_started_at() -> float:
    try:
        return psutil.Process().create_time()
    except psutil.Error:
        return time.time()


class SystemSnapshotCollector:
    """Builds :class:`SystemSnapshot` payloads with a short Redis cache."""

    def __init__(
        self,
        store: CounterStore,
        connections: ConnectionGauge,
        *,
        database_probe: DatabaseProbe | None = None,
        cache_ttl_seconds: int | None = None,
        started_at: float | None = None,
    ) -> None:
        self._store = store
        self._connections = connections
        self._database_probe = database_probe
        self._cache_ttl = cache_ttl_seconds or get_settings().snapshot_cache_ttl_seconds
        self._started_at = started_at if started_at is not None else _process_started_at()

    def uptime(self) -> float:
        return round(time.time() - self._started_at, 3)

    async def snapshot(self) -> SystemSnapshot:
        cached = await self._cached()
        if cached is not None:
            return cached

        redis_status, database_status = await asyncio.gather(
            self.redis_status(),
            self.database_status(),
        )

        memory = psutil.virtual_memory()
        used = memory.total - memory.available
        uptime = self.uptime()

        snapshot = SystemSnapshot(
            uptime=uptime,
            uptime_formatted=format_uptime(uptime),
            memory=MemoryUsage(
                used=used,
                total=memory.total,
                percentage=round(used / memory.total * 100) if memory.total else 0,
            ),
            cpu=CpuUsage(
                load_average=[round(value, 2) for value in psutil.getloadavg()],
                cores=psutil.cpu_count() or 0,
                usage=cpu_usage_estimate(),
            ),
            active_connections=self._connections.value,
            redis=redis_status,
            database=database_status,
            python_version=platform.python_version(),
            platform=f"{platform.system()} {platform.release()}",
        )

        try:
            await self._store.set_text(
                SYSTEM_SNAPSHOT_KEY,
                snapshot.model_dump_json(),
                ttl_seconds=self._cache_ttl,
            )
        except TallyError as exc:
            logger.debug("Could not cache system snapshot: %s", exc)

        return snapshot

    async def _cached(self) -> SystemSnapshot | None:
        try:
            raw = await self._store.get_text(SYSTEM_SNAPSHOT_KEY)
        except TallyError as exc:
            logger.debug("System snapshot cache unavailable: %s", exc)
            return None
        if not raw:
            return None
        try:
            return SystemSnapshot.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding malformed cached system snapshot")
            return None

    async def redis_status(self) -> RedisStatus:
        try:
            if not await self._store.ping():
                return RedisStatus(status="disconnected")
        except Exception as exc:
            logger.debug("Redis probe failed: %s", exc)
            return RedisStatus(status="disconnected")

        try:
            info = await self._store.info()
        except Exception as exc:
            logger.debug("Redis INFO failed: %s", exc)
            info = {}

        uptime = info.get("uptime_in_seconds")
        memory = info.get("used_memory_human")
        return RedisStatus(
            status="connected",
            memory_usage=decode_text(memory) or (str(memory) if memory is not None else None),
            uptime=int(uptime) if uptime is not None else None,
        )

    async def database_status(self) -> DatabaseStatus:
        if self._database_probe is None:
            return DatabaseStatus(status="disconnected")
        start = time.perf_counter()
        try:
            await self._database_probe()
        except Exception as exc:
            logger.debug("Database probe failed: %s", exc)
            return DatabaseStatus(status="disconnected")
        return DatabaseStatus(
            status="connected",
            response_time_ms=round((time.perf_counter() - start) * 1000, 2),
        )


__all__ = [
    "ConnectionGauge",
    "DatabaseProbe",
    "SystemSnapshotCollector",
    "cpu_usage_estimate",
    "format_uptime",
]
