"""Structured logging setup for applications embedding portcullis.

Portcullis modules log through structlog with keyword context. Values under
:data:`SECRET_KEYS` are masked before rendering; tickets and session ids are
logged as fingerprints by the modules themselves.
"""

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any

import structlog

SECRET_KEYS = frozenset({"password", "authorization", "session_id"})

# Loggers of the web stack that do not go through structlog.
FRAMEWORK_LOGGERS = ("starlette", "uvicorn.error", "uvicorn.access")

_RECORD_FIELDS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def _mask(fields: dict[str, Any]) -> dict[str, Any]:
    return {k: "***" if k in SECRET_KEYS else v for k, v in fields.items()}


class FrameworkRecordFormatter(logging.Formatter):
    """Renders plain stdlib records in the same JSON shape as structlog events.

    Fields passed with ``extra=`` are kept, with secrets masked.
    """

    def format(self, record: logging.LogRecord) -> str:
        extra = {k: v for k, v in vars(record).items() if k not in _RECORD_FIELDS}
        entry: dict[str, Any] = {
            **_mask(extra),
            "event": record.getMessage(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def redact_secrets(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Mask values of keys that may carry credentials."""
    return _mask(event_dict)


def configure_logging(level: str | None = None) -> None:
    """Route structlog and framework loggers to JSON lines on stderr.

    ``level`` defaults to the ``LOG_LEVEL`` environment variable, then INFO.
    """
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=structlog.processors.JSONRenderer())
    )
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            redact_secrets,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    framework_handler = logging.StreamHandler()
    framework_handler.setFormatter(FrameworkRecordFormatter())
    for name in FRAMEWORK_LOGGERS:
        framework_logger = logging.getLogger(name)
        framework_logger.handlers.clear()
        framework_logger.addHandler(framework_handler)
        framework_logger.setLevel(log_level)
        framework_logger.propagate = False

    # Request lines from the CAS validator are noise at INFO
    logging.getLogger("httpx").setLevel(max(log_level, logging.WARNING))
