# tests/utils/test_logging.py
"""
Tests for logging configuration and the JSON formatter.
"""

import json
import logging
import sys

import pytest

from folio.utils.context import clear_correlation_id, set_correlation_id
from folio.utils.logging import (
    NO_CORRELATION_ID,
    CorrelationIdFilter,
    JsonFormatter,
    setup_logging,
)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def make_record(message: str = "Recorded buy", **extra) -> logging.LogRecord:
    record = logging.LogRecord("folio.services.ledger", logging.INFO, __file__, 10, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:

    def test_core_fields(self):
        set_correlation_id("req-1")
        record = make_record()
        CorrelationIdFilter().filter(record)
        clear_correlation_id()

        entry = json.loads(JsonFormatter().format(record))

        assert entry["level"] == "INFO"
        assert entry["logger"] == "folio.services.ledger"
        assert entry["correlation_id"] == "req-1"
        assert entry["message"] == "Recorded buy"
        assert "extra" not in entry

    def test_missing_correlation_id(self):
        entry = json.loads(JsonFormatter().format(make_record()))

        assert entry["correlation_id"] == NO_CORRELATION_ID

    def test_extras_serialized(self):
        entry = json.loads(JsonFormatter().format(make_record(portfolio_id=3, amount=object())))

        assert entry["extra"]["portfolio_id"] == 3
        # Non-JSON values fall back to str()
        assert entry["extra"]["amount"].startswith("<object")

    def test_exception_included(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())

        entry = json.loads(JsonFormatter().format(record))

        assert "RuntimeError: boom" in entry["exception"]


class TestSetupLogging:

    def test_level_and_single_handler(self, restore_root_logger: logging.Logger):
        setup_logging(level="warning", log_format="text")

        assert restore_root_logger.level == logging.WARNING
        assert len(restore_root_logger.handlers) == 1

    def test_json_format(self, restore_root_logger: logging.Logger):
        setup_logging(level="INFO", log_format="json")

        assert isinstance(restore_root_logger.handlers[0].formatter, JsonFormatter)

    def test_noisy_loggers_quieted(self, restore_root_logger: logging.Logger):
        setup_logging(level="DEBUG")

        assert logging.getLogger("httpx").level == logging.WARNING

    def test_invalid_level(self, restore_root_logger: logging.Logger):
        with pytest.raises(ValueError, match="Invalid log level"):
            setup_logging(level="LOUD")
