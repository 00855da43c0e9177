"""Tests for logging setup and the logging utilities."""

import json
import logging
from logging.handlers import TimedRotatingFileHandler

import pytest

from core.errors.exceptions import DurableStoreError
from core.logging.context import get_log_context
from core.logging.formatters import ConsoleFormatter, JSONFormatter
from core.logging.setup import NOISY_LOGGERS, parse_log_level, setup_logging
from core.logging.utilities import log_exception, log_startup_banner


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestSetupLogging:
    def test_console_handler_format(self):
        setup_logging(level=logging.DEBUG)
        root = logging.getLogger()

        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, ConsoleFormatter)

    def test_json_format(self):
        setup_logging(json_format=True)

        assert isinstance(logging.getLogger().handlers[0].formatter, JSONFormatter)

    def test_sets_stage_and_worker_context(self):
        setup_logging(stage="consumer", worker_id="consumer-happy-blue-fox")

        context = get_log_context()
        assert context["stage"] == "consumer"
        assert context["worker_id"] == "consumer-happy-blue-fox"

    def test_file_handler_writes_json(self, tmp_path):
        setup_logging(stage="api", log_dir=tmp_path / "logs")
        root = logging.getLogger()
        file_handlers = [h for h in root.handlers if isinstance(h, TimedRotatingFileHandler)]

        assert len(file_handlers) == 1
        logging.getLogger("analytics.test").info("hello file")
        file_handlers[0].flush()

        lines = (tmp_path / "logs" / "api.log").read_text().splitlines()
        assert json.loads(lines[-1])["message"] == "hello file"

    def test_suppresses_noisy_loggers(self):
        setup_logging(level=logging.DEBUG)

        for name in NOISY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING


class TestParseLogLevel:
    @pytest.mark.parametrize(
        "value,expected",
        [("debug", logging.DEBUG), ("INFO", logging.INFO), ("Warning", logging.WARNING), (10, 10)],
    )
    def test_valid_levels(self, value, expected):
        assert parse_log_level(value) == expected

    def test_unknown_level(self):
        with pytest.raises(ValueError, match="Unknown log level"):
            parse_log_level("chatty")


class TestLogException:
    def test_adds_error_fields(self, caplog):
        logger = logging.getLogger("analytics.test")
        error = DurableStoreError("connection refused")

        with caplog.at_level(logging.WARNING, logger="analytics.test"):
            log_exception(logger, error, "Write failed", level=logging.WARNING, event_id="e1")

        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert record.error_category == "transient"
        assert record.error_type == "DurableStoreError"
        assert record.event_id == "e1"
        assert record.exc_info is not None

    def test_truncates_long_messages(self, caplog):
        logger = logging.getLogger("analytics.test")

        with caplog.at_level(logging.ERROR, logger="analytics.test"):
            log_exception(logger, ValueError("x" * 800), "Bad", include_traceback=False)

        record = caplog.records[-1]
        assert len(record.error_message) == 503
        assert record.exc_info is None


def test_startup_banner(caplog):
    logger = logging.getLogger("analytics.test")

    with caplog.at_level(logging.INFO, logger="analytics.test"):
        log_startup_banner(
            logger,
            "Event Consumer",
            topics="user-events, system-events",
            concurrency=3,
            health_port=None,
        )

    text = caplog.records[-1].getMessage()
    assert "Event Consumer" in text
    assert "Topics:       user-events, system-events" in text
    assert "Concurrency:  3" in text
    assert "Health:" not in text
