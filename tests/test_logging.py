"""Tests for logging configuration."""

import json
import logging
from collections.abc import Iterator

import pytest
import structlog

from portcullis.logging import (
    FRAMEWORK_LOGGERS,
    FrameworkRecordFormatter,
    configure_logging,
    redact_secrets,
)
from portcullis.sessions import fingerprint


def test_redact_secrets() -> None:
    """Credential-bearing keys are masked, fingerprints and others kept."""
    event = redact_secrets(
        None,
        "info",
        {"event": "login", "password": "pw", "ticket": fingerprint("ST-1"), "user": "jo"},
    )

    assert event == {
        "event": "login",
        "password": "***",
        "ticket": fingerprint("ST-1"),
        "user": "jo",
    }


def test_framework_record_formatter() -> None:
    """Standard library records become JSON lines with a level and UTC timestamp."""
    record = logging.LogRecord("starlette", logging.WARNING, __file__, 1, "hello %s", ("jo",), None)

    line = json.loads(FrameworkRecordFormatter().format(record))

    assert line["event"] == "hello jo"
    assert line["level"] == "warning"
    assert line["logger"] == "starlette"
    assert line["timestamp"].endswith("+00:00")


def test_framework_record_formatter_masks_extra() -> None:
    """Fields passed as extra are kept with secrets masked."""
    record = logging.makeLogRecord(
        {"name": "starlette", "msg": "request", "path": "/login", "password": "pw"}
    )

    line = json.loads(FrameworkRecordFormatter().format(record))

    assert line["path"] == "/login"
    assert line["password"] == "***"


@pytest.fixture
def restore_structlog() -> Iterator[None]:
    """Leave structlog unconfigured so other tests can capture events."""
    yield
    structlog.reset_defaults()


def test_configure_logging_level(restore_structlog: None) -> None:
    """The level is applied to the root and framework loggers."""
    configure_logging("debug")

    assert logging.getLogger().level == logging.DEBUG
    for name in FRAMEWORK_LOGGERS:
        assert logging.getLogger(name).level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.WARNING

    configure_logging("INFO")
    assert logging.getLogger().level == logging.INFO
