from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable, Iterator
from typing import Any

import pytest
import pytest_asyncio
import tally.config as engine_config
from fakeredis.aioredis import FakeRedis
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from tally_server.config import Settings
from tally_server.db import Database
from tally_server.main import create_app

AppFactory = Callable[..., Awaitable[FastAPI]]


@pytest_asyncio.fixture
async def fake_redis() -> AsyncIterator[FakeRedis]:
    client = FakeRedis(decode_responses=False)
    try:
        yield client
    finally:
        await client.aclose()


@pytest.fixture(autouse=True)
def _fresh_engine_settings() -> Iterator[None]:
    engine_config.get_settings.cache_clear()
    yield
    engine_config.get_settings.cache_clear()


@pytest_asyncio.fixture
async def app_factory(fake_redis: FakeRedis) -> AsyncIterator[AppFactory]:
    """Build started apps over fakeredis and in-memory SQLite.

    ASGITransport does not run the lifespan, so services are started and
    stopped here.
    """
    built: list[FastAPI] = []

    async def _build(settings: Settings | None = None, *, redis_client: Any = None) -> FastAPI:
        app = create_app(
            settings or Settings(_env_file=None),
            redis_client=redis_client if redis_client is not None else fake_redis,
            database=Database("sqlite+aiosqlite://"),
            configure_logs=False,
        )
        await app.state.services.start()
        built.append(app)
        return app

    try:
        yield _build
    finally:
        for app in built:
            await app.state.services.stop()


@pytest_asyncio.fixture
async def app(app_factory: AppFactory) -> FastAPI:
    return await app_factory()


def _client_for(app: FastAPI) -> AsyncClient:
    # Unhandled errors still produce the 500 envelope instead of raising here.
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    return AsyncClient(transport=transport, base_url="http://testserver")


@pytest.fixture
def client_for() -> Callable[[FastAPI], AsyncClient]:
    return _client_for


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    async with _client_for(app) as http:
        yield http
