from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterator

import pytest
from tally import RecentLogsHandler
from tally_server.config import Environments, Settings
from tally_server.logging import JSONFormatter, configure_logging
from tally_server.middleware import CorrelationIDFilter, correlation_id_var


@pytest.fixture
def restore_root_logger() -> Iterator[None]:
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    try:
        yield
    finally:
        root.handlers = handlers
        root.setLevel(level)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("dev", Environments.DEV),
        ("development", Environments.DEV),
        ("PRODUCTION", Environments.PROD),
        (" prod ", Environments.PROD),
    ],
)
def test_env_aliases(raw: str, expected: Environments) -> None:
    assert Settings(_env_file=None, env=raw).env == expected


def test_settings_read_prefixed_environment(monkeypatch) -> None:
    monkeypatch.setenv("TALLY_ENV", "production")
    monkeypatch.setenv("TALLY_PORT", "9100")
    monkeypatch.setenv("TALLY_RATE_LIMIT_PATHS", "/api, /auth,")
    monkeypatch.setenv("TALLY_CORS_ALLOW_ORIGINS", "https://a.test, ,https://b.test")

    settings = Settings(_env_file=None)

    assert settings.is_production
    assert settings.port == 9100
    assert settings.rate_limit_path_prefixes == ("/api", "/auth")
    assert settings.cors_allow_origins_list == ["https://a.test", "https://b.test"]


def test_database_url_defaults_to_sqlite() -> None:
    settings = Settings(_env_file=None)
    assert settings.effective_database_url == "sqlite+aiosqlite:///tally.db"

    postgres = Settings(_env_file=None, database_url="postgresql+asyncpg://db/tally")
    assert postgres.effective_database_url == "postgresql+asyncpg://db/tally"


def test_json_formatter_includes_correlation_and_error() -> None:
    try:
        raise ValueError("bad value")
    except ValueError:
        exc_info = sys.exc_info()

    record = logging.LogRecord(
        name="tally_server.tests",
        level=logging.ERROR,
        pathname=__file__,
        lineno=1,
        msg="failed %s",
        args=("job",),
        exc_info=exc_info,
    )
    record.correlation_id = "req-1"

    payload = json.loads(JSONFormatter().format(record))

    assert payload["level"] == "ERROR"
    assert payload["message"] == "failed job"
    assert payload["correlation_id"] == "req-1"
    assert payload["error"]["type"] == "ValueError"
    assert "bad value" in payload["error"]["stacktrace"]


def test_correlation_filter_reads_the_context_var() -> None:
    record = logging.LogRecord("t", logging.INFO, __file__, 1, "msg", None, None)
    token = correlation_id_var.set("req-7")
    try:
        CorrelationIDFilter().filter(record)
    finally:
        correlation_id_var.reset(token)

    assert record.correlation_id == "req-7"


@pytest.mark.usefixtures("restore_root_logger")
def test_configure_logging_feeds_the_recent_logs_buffer() -> None:
    buffer = RecentLogsHandler(capacity=10)
    configure_logging(log_format="json", debug=False, log_buffer=buffer)

    logger = logging.getLogger("tally_server.tests.configure")
    token = correlation_id_var.set("req-9")
    try:
        logger.debug("hidden")
        logger.info("visible")
    finally:
        correlation_id_var.reset(token)

    [record] = buffer.get_logs().logs
    assert record.message == "visible"
    assert record.request_id == "req-9"

    root = logging.getLogger()
    assert root.level == logging.INFO
    assert any(isinstance(h.formatter, JSONFormatter) for h in root.handlers)
