from __future__ import annotations

import pytest
from fastapi import Depends, FastAPI, HTTPException
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine
from starlette.requests import Request
from tally import RateLimitConfig, Telemetry, TelemetryDispatcher
from tally.ratelimit import FixedWindowRateLimiter
from tally.sdk import (
    RateLimitExceeded,
    RateLimitGuard,
    RateLimitMiddleware,
    RequestMetricsMiddleware,
    client_key,
    describe_statement,
    instrument_engine,
    rate_limited_response,
)
from tally.sdk.middleware import status_error


class _RouteStub:
    path_format = "/users/{user_id}"


def _request(headers: list[tuple[bytes, bytes]] | None = None, route: object | None = None) -> Request:
    scope = {
        "type": "http",
        "http_version": "1.1",
        "method": "GET",
        "scheme": "http",
        "path": "/users/123",
        "raw_path": b"/users/123",
        "query_string": b"",
        "headers": headers or [],
        "client": ("127.0.0.1", 12345),
        "server": ("testserver", 80),
    }
    if route is not None:
        scope["route"] = route
    return Request(scope)


def _client(app: FastAPI) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver")


@pytest.fixture
def telemetry(fake_redis) -> Telemetry:
    return Telemetry(fake_redis, dispatcher=TelemetryDispatcher(max_pending=100))


def test_normalize_path_prefers_route_template(telemetry) -> None:
    middleware = RequestMetricsMiddleware(app=lambda scope, receive, send: None, telemetry=telemetry)

    assert middleware._normalize_path(_request(route=_RouteStub())) == "/users/{user_id}"  # noqa: SLF001
    assert middleware._normalize_path(_request()) == "/users/123"  # noqa: SLF001


def test_client_key_uses_forwarded_header_only_when_trusted() -> None:
    request = _request(headers=[(b"x-forwarded-for", b"203.0.113.7, 10.0.0.1")])

    assert client_key(request) == "127.0.0.1"
    assert client_key(request, trust_forwarded=True) == "203.0.113.7"
    assert client_key(_request(), trust_forwarded=True) == "127.0.0.1"


@pytest.mark.parametrize(
    ("statement", "expected"),
    [
        ('SELECT id FROM "users" WHERE id = ?', ("users", "select")),
        ("INSERT INTO jobs (id) VALUES (?)", ("jobs", "insert")),
        ("UPDATE main.jobs SET updated_at = ?", ("jobs", "update")),
        ("DELETE FROM jobs WHERE id = ?", ("jobs", "delete")),
        ("SELECT 1", ("unknown", "select")),
    ],
)
def test_describe_statement(statement: str, expected: tuple[str, str]) -> None:
    assert describe_statement(statement) == expected


@pytest.mark.asyncio
async def test_request_metrics_middleware_records_route_templates(telemetry) -> None:
    app = FastAPI()
    app.add_middleware(RequestMetricsMiddleware, telemetry=telemetry)

    @app.get("/items/{item_id}")
    async def get_item(item_id: int) -> dict[str, int]:
        return {"item_id": item_id, "active": telemetry.connections.value}

    async with _client(app) as client:
        first = await client.get("/items/1")
        await client.get("/items/2")
        missing = await client.get("/nope")

    assert first.json() == {"item_id": 1, "active": 1}
    assert missing.status_code == 404
    assert telemetry.connections.value == 0

    await telemetry.flush()
    stats = {(s.method, s.endpoint): s for s in await telemetry.metrics.requests.endpoint_stats()}

    assert stats[("GET", "/items/{item_id}")].count == 2
    assert stats[("GET", "/nope")].error_count == 1


@pytest.mark.asyncio
async def test_request_metrics_carry_the_reason_phrase_for_errors(telemetry, monkeypatch) -> None:
    app = FastAPI()
    app.add_middleware(RequestMetricsMiddleware, telemetry=telemetry)
    recorded: list[dict[str, object]] = []
    original = telemetry.on_request_complete

    def _capture(**kwargs: object) -> None:
        recorded.append(kwargs)
        original(**kwargs)

    monkeypatch.setattr(telemetry, "on_request_complete", _capture)

    @app.get("/ok")
    async def ok() -> dict[str, bool]:
        return {"ok": True}

    @app.get("/teapot")
    async def teapot() -> dict[str, bool]:
        raise HTTPException(status_code=418)

    async with _client(app) as client:
        await client.get("/ok")
        await client.get("/teapot")
        await client.get("/nope")

    assert [(m["status_code"], m["error"]) for m in recorded] == [
        (200, None),
        (418, "I'm a Teapot"),
        (404, "Not Found"),
    ]
    await telemetry.flush()


def test_status_error_handles_unregistered_codes() -> None:
    assert status_error(299) is None
    assert status_error(503) == "Service Unavailable"
    assert status_error(599) == "HTTP 599"


@pytest.mark.asyncio
async def test_rate_limit_middleware_denies_with_standard_headers(store) -> None:
    limiter = FixedWindowRateLimiter(store, RateLimitConfig(window_ms=60_000, max=2, prefix="rl:mw"))
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, limiter=limiter, path_prefixes=("/api",))

    @app.get("/api/ping")
    async def ping() -> dict[str, bool]:
        return {"ok": True}

    @app.get("/health")
    async def health() -> dict[str, bool]:
        return {"ok": True}

    async with _client(app) as client:
        responses = [await client.get("/api/ping") for _ in range(3)]
        unguarded = [await client.get("/health") for _ in range(3)]

    assert [r.status_code for r in responses] == [200, 200, 429]
    assert responses[0].headers["RateLimit-Limit"] == "2"
    assert responses[0].headers["RateLimit-Remaining"] == "1"
    assert 0 < int(responses[0].headers["RateLimit-Reset"]) <= 60

    denied = responses[2]
    assert denied.json() == {
        "success": False,
        "error": {
            "code": "RATE_LIMIT_EXCEEDED",
            "message": "Too many requests, please try again later.",
        },
    }
    assert denied.headers["RateLimit-Remaining"] == "0"
    assert int(denied.headers["Retry-After"]) > 0

    assert all(r.status_code == 200 for r in unguarded)
    assert "RateLimit-Limit" not in unguarded[0].headers


@pytest.mark.asyncio
async def test_rate_limit_middleware_can_skip_failed_requests(store) -> None:
    limiter = FixedWindowRateLimiter(store, RateLimitConfig(window_ms=60_000, max=1, prefix="rl:skip"))
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, limiter=limiter, skip_failed_requests=True)

    @app.post("/login")
    async def login(ok: bool = False) -> dict[str, bool]:
        if not ok:
            raise HTTPException(status_code=401, detail="bad credentials")
        return {"ok": True}

    async with _client(app) as client:
        failures = [await client.post("/login") for _ in range(3)]
        success = await client.post("/login", params={"ok": "true"})
        after_success = await client.post("/login", params={"ok": "true"})

    assert [r.status_code for r in failures] == [401, 401, 401]
    assert success.status_code == 200
    assert after_success.status_code == 429


@pytest.mark.asyncio
async def test_rate_limit_guard_protects_single_routes(store) -> None:
    limiter = FixedWindowRateLimiter(store, RateLimitConfig(window_ms=60_000, max=1, prefix="rl:guard"))
    app = FastAPI()

    @app.exception_handler(RateLimitExceeded)
    async def _on_rate_limited(request, exc: RateLimitExceeded):
        return rate_limited_response(exc.decision, exc.message)

    @app.post("/register", dependencies=[Depends(RateLimitGuard(limiter))])
    async def register() -> dict[str, bool]:
        return {"ok": True}

    @app.get("/open")
    async def open_route() -> dict[str, bool]:
        return {"ok": True}

    async with _client(app) as client:
        first = await client.post("/register")
        second = await client.post("/register")
        other = await client.get("/open")

    assert first.status_code == 200
    assert first.headers["RateLimit-Limit"] == "1"
    assert second.status_code == 429
    assert second.json()["error"]["code"] == "RATE_LIMIT_EXCEEDED"
    assert "Retry-After" in second.headers
    assert other.status_code == 200


@pytest.mark.asyncio
async def test_instrument_engine_reports_queries(telemetry) -> None:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    instrument_engine(engine, telemetry)
    try:
        async with engine.begin() as conn:
            await conn.execute(text("CREATE TABLE jobs (id INTEGER PRIMARY KEY)"))
            await conn.execute(text("INSERT INTO jobs (id) VALUES (1)"))
            await conn.execute(text("SELECT id FROM jobs"))
            await conn.execute(text("SELECT id FROM jobs"))
    finally:
        await engine.dispose()

    await telemetry.flush()
    stats = {s.query: s for s in await telemetry.metrics.queries.query_stats(limit=50)}

    assert stats["jobs:select"].count == 2
    assert stats["jobs:insert"].count == 1
