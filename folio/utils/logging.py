# folio/utils/logging.py
"""
Logging configuration.

Centralized setup with:
- Level from LOG_LEVEL (DEBUG in dev, INFO in prod)
- Correlation ID on every record
- Text or JSON output (LOG_FORMAT)
- Quieter third-party HTTP loggers

Usage:
    from folio.utils import setup_logging

    # In main.py, before creating the FastAPI app
    setup_logging()

Log Levels:
    DEBUG   - Cache hits/misses, per-request valuation details
    INFO    - Business events (transaction recorded, service initialized)
    WARNING - Degraded results (price fallback, over-sold ledger, retries)
    ERROR   - Failures requiring attention (provider down, unexpected errors)
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from folio.config import settings
from folio.utils.context import get_correlation_id

# Default text format: timestamp | level | correlation_id | logger_name | message
DEFAULT_TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(correlation_id)s | %(name)s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

NO_CORRELATION_ID = "no-correlation-id"

# Third-party loggers held at WARNING
NOISY_LOGGERS = [
    "httpx",
    "httpcore",
    "sqlalchemy.engine",
    "uvicorn.access",
]

# LogRecord attributes that are not user-supplied extras
_STANDARD_RECORD_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "correlation_id", "message", "taskName",
})

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


class CorrelationIdFilter(logging.Filter):
    """Adds `correlation_id` to every record (usable as %(correlation_id)s)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or NO_CORRELATION_ID
        return True


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line, for log aggregation.

    Output format:
    {
        "timestamp": "2024-01-15T10:30:00.123456+00:00",
        "level": "WARNING",
        "logger": "folio.services.valuation.history",
        "correlation_id": "abc-123-def",
        "message": "Historical quotes unavailable, ...",
        "extra": { ... }
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "correlation_id": getattr(record, "correlation_id", NO_CORRELATION_ID),
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extra = {}
        for key, value in record.__dict__.items():
            if key in _STANDARD_RECORD_ATTRS:
                continue
            try:
                json.dumps(value)
                extra[key] = value
            except (TypeError, ValueError):
                extra[key] = str(value)

        if extra:
            log_entry["extra"] = extra

        return json.dumps(log_entry)


def setup_logging(
        level: str | None = None,
        log_format: str | None = None,
        suppress_noisy_loggers: bool = True,
) -> None:
    """
    Configure the root logger.

    Call once at startup, before creating the FastAPI application.

    Args:
        level: Log level name; defaults to settings.log_level
        log_format: "text" or "json"; defaults to settings.log_format
        suppress_noisy_loggers: Hold HTTP client loggers at WARNING

    Raises:
        ValueError: If level is not a valid log level name
    """
    level_name = (level or settings.log_level).upper().strip()
    if level_name not in _LEVELS:
        raise ValueError(
            f"Invalid log level: '{level_name}'. "
            f"Valid levels are: {', '.join(_LEVELS)}"
        )

    format_type = (log_format or settings.log_format).lower()
    if format_type == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(fmt=DEFAULT_TEXT_FORMAT, datefmt=DEFAULT_DATE_FORMAT)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(CorrelationIdFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(_LEVELS[level_name])
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    if suppress_noisy_loggers:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        f"Logging configured: level={level_name}, format={format_type}",
        extra={"config": {"level": level_name, "format": format_type}},
    )

