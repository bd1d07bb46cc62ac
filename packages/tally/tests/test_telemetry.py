from __future__ import annotations

import pytest
from _fixtures.time import utc_dt
from tally import Telemetry, TelemetryDispatcher

NOW = utc_dt(2026, 10, 18, 9, 30)


@pytest.fixture
def telemetry(fake_redis, clock) -> Telemetry:
    return Telemetry(fake_redis, dispatcher=TelemetryDispatcher(max_pending=100), clock=clock)


@pytest.mark.asyncio
async def test_hooks_record_through_the_dispatcher(telemetry) -> None:
    telemetry.on_request_complete("/jobs", "get", 200, 12.5, request_id="r-1")
    telemetry.on_request_complete("/jobs", "GET", 503, 40.0)
    telemetry.on_error_raised(
        type="StoreUnavailable",
        code="SERVICE_UNAVAILABLE",
        message="redis down",
        endpoint="/jobs",
        method="get",
        status_code=503,
        metadata={"attempt": 1},
    )
    telemetry.on_data_store_query("SELECT * FROM jobs", "jobs", "select", 150.0)

    assert telemetry.dispatcher.pending == 4
    await telemetry.flush()

    overview = await telemetry.metrics.requests.api_overview()
    assert overview.total_requests == 2
    assert overview.error_count == 1

    [error] = await telemetry.metrics.errors.recent_errors()
    assert error.method == "GET"
    assert error.metadata == {"attempt": 1}
    assert error.timestamp == NOW

    [slow] = await telemetry.metrics.queries.raw_slow_queries()
    assert slow.model == "jobs"


@pytest.mark.asyncio
async def test_started_telemetry_records_in_background(telemetry) -> None:
    await telemetry.start()
    try:
        telemetry.on_request_complete("/a", "POST", 201, 3.0)
        await telemetry.flush()
    finally:
        await telemetry.stop()

    [stats] = await telemetry.metrics.requests.endpoint_stats()
    assert (stats.method, stats.endpoint, stats.count) == ("POST", "/a", 1)


def test_connection_hooks_move_the_gauge(telemetry) -> None:
    telemetry.on_connection_opened()
    telemetry.on_connection_opened()
    telemetry.on_connection_closed()

    assert telemetry.connections.value == 1
