"""Engine components shared by the app: built once, started by the lifespan."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import redis.asyncio as redis
from tally import (
    CounterStore,
    FixedWindowRateLimiter,
    RecentLogsHandler,
    SystemSnapshotCollector,
    Telemetry,
    TelemetryDispatcher,
    create_rate_limiter,
)
from tally.ratelimit import GENERAL
from tally.sdk import instrument_engine

from tally_server.config import Settings
from tally_server.db import Database

logger = logging.getLogger(__name__)


@dataclass
class TallyServices:
    """Everything the middleware and routes need, hung off ``app.state``."""

    settings: Settings
    redis_client: Any
    store: CounterStore
    telemetry: Telemetry
    snapshot: SystemSnapshotCollector
    general_limiter: FixedWindowRateLimiter
    log_buffer: RecentLogsHandler
    database: Database
    owns_redis: bool = True

    async def start(self) -> None:
        await self.database.connect()
        instrument_engine(self.database.engine, self.telemetry)
        logger.info("Database connected (%s)", self.database.url.split(":", 1)[0])
        await self.telemetry.start()

    async def stop(self) -> None:
        await self.telemetry.stop()
        await self.database.disconnect()
        logger.info("Database disconnected")
        if self.owns_redis:
            await self.redis_client.aclose()
            logger.info("Redis disconnected")


def build_services(
    settings: Settings,
    *,
    redis_client: Any | None = None,
    database: Database | None = None,
    log_buffer: RecentLogsHandler | None = None,
) -> TallyServices:
    """Wire the engine over one Redis client.

    ``redis.from_url`` does not connect until the first command, so this
    is safe to call while the app is being assembled.
    """
    owns_redis = redis_client is None
    if redis_client is None:
        redis_client = redis.from_url(settings.redis_url, decode_responses=True)
    db = database or Database(settings.effective_database_url)

    async def ping_database() -> float:
        if not db.is_connected:
            raise RuntimeError("Database not connected")
        return await db.ping()

    store = CounterStore(redis_client)
    telemetry = Telemetry(store, dispatcher=TelemetryDispatcher())
    return TallyServices(
        settings=settings,
        redis_client=redis_client,
        store=store,
        telemetry=telemetry,
        snapshot=SystemSnapshotCollector(
            store,
            telemetry.connections,
            database_probe=ping_database,
        ),
        general_limiter=create_rate_limiter(store, GENERAL),
        log_buffer=log_buffer or RecentLogsHandler(),
        database=db,
        owns_redis=owns_redis,
    )
