from __future__ import annotations

import time
from collections.abc import AsyncIterator, Iterator

import pytest
import pytest_asyncio
from _fixtures.time import utc_dt
from fakeredis.aioredis import FakeRedis
from tally.store import CounterStore

NOW = utc_dt(2026, 10, 18, 9, 30)


@pytest_asyncio.fixture
async def fake_redis() -> AsyncIterator[FakeRedis]:
    client = FakeRedis(decode_responses=False)
    try:
        yield client
    finally:
        await client.aclose()


@pytest.fixture
def store(fake_redis: FakeRedis) -> CounterStore:
    return CounterStore(fake_redis)


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def tokyo_local_time(monkeypatch) -> Iterator[None]:
    """Run with a non-UTC local zone so naive datetimes would be misread."""
    monkeypatch.setenv("TZ", "Asia/Tokyo")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()
