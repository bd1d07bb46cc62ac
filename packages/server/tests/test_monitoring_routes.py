from __future__ import annotations

import logging
from datetime import UTC, datetime

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from tally_server.config import Settings

ADMIN = "/api/v1/admin/monitoring"


class _DownRedis:
    def __getattr__(self, name):
        async def _fail(*_args, **_kwargs):
            raise RedisConnectionError("down")

        return _fail


@pytest.mark.asyncio
async def test_root_and_health(client) -> None:
    root = await client.get("/")
    assert root.json()["name"] == "Tally API"

    health = await client.get("/health")
    assert health.status_code == 200
    body = health.json()
    assert body["status"] == "ok"
    assert body["readiness"]["redis"]["status"] == "ok"
    assert body["readiness"]["database"]["status"] == "ok"
    assert body["uptime"] >= 0
    assert health.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_ready_is_503_while_redis_is_down(app_factory, client_for) -> None:
    app = await app_factory(redis_client=_DownRedis())

    async with client_for(app) as client:
        ready = await client.get("/ready")
        health = await client.get("/health")

    assert ready.status_code == 503
    assert ready.json()["status"] == "degraded"
    assert ready.json()["readiness"]["redis"]["status"] == "error"
    assert health.status_code == 200


@pytest.mark.asyncio
async def test_system_snapshot_counts_the_request_in_flight(client) -> None:
    response = await client.get(f"{ADMIN}/system")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    data = body["data"]
    assert data["active_connections"] == 1
    assert data["redis"]["status"] == "connected"
    assert data["database"]["status"] == "connected"
    assert data["uptime_formatted"]
    assert data["cpu"]["cores"] > 0


@pytest.mark.asyncio
async def test_request_metrics_routes_reflect_traffic(app, client) -> None:
    await client.get(f"{ADMIN}/system")
    invalid = await client.get(f"{ADMIN}/errors/by-type", params={"date": "2026-13"})
    assert invalid.status_code == 400

    await app.state.services.telemetry.flush()
    endpoints = await client.get(f"{ADMIN}/endpoints", params={"limit": 50})

    stats = {(s["method"], s["endpoint"]): s for s in endpoints.json()["data"]}
    assert stats[("GET", f"{ADMIN}/system")]["count"] == 1
    assert stats[("GET", f"{ADMIN}/errors/by-type")]["error_count"] == 1

    await app.state.services.telemetry.flush()
    overview = (await client.get(f"{ADMIN}/api-metrics")).json()["data"]
    assert overview["total_requests"] == 3
    assert overview["error_count"] == 1
    assert overview["error_rate"] == 33.33

    slowest = await client.get(f"{ADMIN}/endpoints/slowest", params={"limit": 1})
    assert len(slowest.json()["data"]) == 1


@pytest.mark.asyncio
async def test_errors_routes_show_reported_errors(app, client) -> None:
    await client.get(
        f"{ADMIN}/endpoints",
        params={"limit": 0},
        headers={"X-Request-ID": "req-42"},
    )
    await app.state.services.telemetry.flush()

    errors = (await client.get(f"{ADMIN}/errors")).json()["data"]
    [error] = errors["errors"]
    assert error["type"] == "RequestValidationError"
    assert error["code"] == "VALIDATION_ERROR"
    assert error["endpoint"] == f"{ADMIN}/endpoints"
    assert error["status_code"] == 400
    assert error["request_id"] == "req-42"
    assert errors["types"] == ["RequestValidationError"]

    filtered = (await client.get(f"{ADMIN}/errors", params={"type": "KeyError"})).json()
    assert filtered["data"]["errors"] == []

    trends = (await client.get(f"{ADMIN}/errors/trends", params={"days": 3})).json()["data"]
    assert len(trends) == 3
    assert trends[-1]["count"] == 1

    today = datetime.now(UTC).strftime("%Y-%m-%d")
    by_type = await client.get(f"{ADMIN}/errors/by-type", params={"date": today})
    assert by_type.json()["data"] == {"RequestValidationError": 1}


@pytest.mark.asyncio
async def test_queries_route_reports_database_statements(app, client) -> None:
    await client.get("/health")
    await app.state.services.telemetry.flush()

    response = await client.get(f"{ADMIN}/queries")

    data = response.json()["data"]
    assert "unknown:select" in [q["query"] for q in data["frequent_queries"]]
    assert data["raw_slow_queries"] == []


@pytest.mark.asyncio
async def test_logs_route_pages_the_recent_log_buffer(app, client) -> None:
    buffer = app.state.services.log_buffer
    logger = logging.getLogger("tally_server.tests.logs")
    logger.addHandler(buffer)
    logger.setLevel(logging.DEBUG)
    try:
        logger.info("worker started")
        logger.warning("queue backlog growing")
        logger.error("queue backlog critical")
    finally:
        logger.removeHandler(buffer)

    response = await client.get(
        f"{ADMIN}/logs",
        params={"level": "WARNING,ERROR", "search": "backlog", "limit": 1},
    )

    data = response.json()["data"]
    assert data["total"] == 2
    assert [log["message"] for log in data["logs"]] == ["queue backlog critical"]
    assert data["stats"]["INFO"] == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "path",
    [
        f"{ADMIN}/endpoints?limit=501",
        f"{ADMIN}/endpoints?sort=name",
        f"{ADMIN}/errors?limit=101",
        f"{ADMIN}/errors/trends?days=31",
        f"{ADMIN}/queries?limit=0",
    ],
)
async def test_out_of_range_parameters_are_rejected(client, path: str) -> None:
    response = await client.get(path)

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_api_key_guards_monitoring_routes(app_factory, client_for) -> None:
    app = await app_factory(Settings(_env_file=None, api_key="s3cret"))

    async with client_for(app) as client:
        missing = await client.get(f"{ADMIN}/api-metrics")
        wrong = await client.get(
            f"{ADMIN}/api-metrics", headers={"Authorization": "Bearer nope"}
        )
        ok = await client.get(
            f"{ADMIN}/api-metrics", headers={"Authorization": "Bearer s3cret"}
        )
        health = await client.get("/health")

    assert missing.status_code == 401
    assert missing.json() == {
        "success": False,
        "error": {"code": "UNAUTHORIZED", "message": "Missing or invalid Authorization header"},
    }
    assert wrong.status_code == 401
    assert ok.status_code == 200
    assert health.status_code == 200
