from __future__ import annotations

import logging

import pytest
from tally_server.config import Settings
from tally_server.errors import AppError

ADMIN = "/api/v1/admin/monitoring"


class WidgetNotFound(AppError):
    def __init__(self, widget_id: int) -> None:
        super().__init__("NOT_FOUND", f"Widget {widget_id} not found", 404)


def _add_failing_routes(app) -> None:
    @app.get("/api/v1/widgets/{widget_id}")
    async def get_widget(widget_id: int) -> dict[str, int]:
        raise WidgetNotFound(widget_id)

    @app.get("/api/v1/explode")
    async def explode() -> dict[str, str]:
        raise RuntimeError("kaboom")


@pytest.mark.asyncio
async def test_app_errors_use_the_envelope_and_are_tracked(app, client) -> None:
    _add_failing_routes(app)

    response = await client.get("/api/v1/widgets/7")

    assert response.status_code == 404
    assert response.json() == {
        "success": False,
        "error": {"code": "NOT_FOUND", "message": "Widget 7 not found"},
    }

    await app.state.services.telemetry.flush()
    [error] = await app.state.services.telemetry.metrics.errors.recent_errors()
    assert error.type == "WidgetNotFound"
    assert error.endpoint == "/api/v1/widgets/{widget_id}"
    assert error.status_code == 404
    assert error.request_id == response.headers["X-Request-ID"]
    assert "WidgetNotFound" in (error.stack or "")


@pytest.mark.asyncio
async def test_unhandled_errors_return_500_with_the_message_in_dev(app, client, caplog) -> None:
    _add_failing_routes(app)

    with caplog.at_level(logging.ERROR, logger="tally_server.errors"):
        response = await client.get("/api/v1/explode")

    assert response.status_code == 500
    assert response.json()["error"] == {"code": "INTERNAL_ERROR", "message": "kaboom"}
    assert "Unhandled error on GET /api/v1/explode" in caplog.text

    await app.state.services.telemetry.flush()
    [error] = await app.state.services.telemetry.metrics.errors.recent_errors()
    assert (error.type, error.code, error.status_code) == ("RuntimeError", "INTERNAL_ERROR", 500)

    [stats] = [
        s
        for s in await app.state.services.telemetry.metrics.requests.endpoint_stats()
        if s.endpoint == "/api/v1/explode"
    ]
    assert stats.error_count == 1


@pytest.mark.asyncio
async def test_unhandled_error_messages_are_hidden_in_production(app_factory, client_for) -> None:
    app = await app_factory(Settings(_env_file=None, env="production"))
    _add_failing_routes(app)

    async with client_for(app) as client:
        response = await client.get("/api/v1/explode")

    assert response.status_code == 500
    assert response.json()["error"] == {
        "code": "INTERNAL_ERROR",
        "message": "Internal server error",
    }


@pytest.mark.asyncio
async def test_unrouted_paths_are_not_tracked(app, client) -> None:
    response = await client.get("/api/v1/does-not-exist")

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"

    await app.state.services.telemetry.flush()
    assert await app.state.services.telemetry.metrics.errors.recent_errors() == []


@pytest.mark.asyncio
async def test_general_rate_limit_applies_to_api_paths(app_factory, client_for, monkeypatch) -> None:
    monkeypatch.setenv("TALLY_RATE_LIMIT_MAX_REQUESTS", "2")
    app = await app_factory()

    async with client_for(app) as client:
        responses = [await client.get(f"{ADMIN}/api-metrics") for _ in range(3)]
        health = [await client.get("/health") for _ in range(3)]

    assert [r.status_code for r in responses] == [200, 200, 429]
    assert responses[0].headers["RateLimit-Limit"] == "2"
    assert responses[1].headers["RateLimit-Remaining"] == "0"

    denied = responses[2]
    assert denied.json() == {
        "success": False,
        "error": {
            "code": "RATE_LIMIT_EXCEEDED",
            "message": "Too many requests, please try again later.",
        },
    }
    assert int(denied.headers["Retry-After"]) > 0
    assert denied.headers["X-Request-ID"]
    assert all(r.status_code == 200 for r in health)
