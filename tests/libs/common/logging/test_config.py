"""Tests for logging configuration.

Tests verify:
- configure_logging sets up JSON logging correctly
- RunIDFilter adds run IDs to log records
- log_with_context adds context fields properly
"""

import json
import logging
from io import StringIO

import pytest

from libs.common.logging.config import (
    RunIDFilter,
    configure_logging,
    get_logger,
    log_with_context,
)
from libs.common.logging.context import RunContext, clear_run_id, set_run_id
from libs.common.logging.formatter import JSONFormatter


def _record() -> logging.LogRecord:
    return logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="/path/to/file.py",
        lineno=42,
        msg="Test",
        args=(),
        exc_info=None,
    )


class TestRunIDFilter:
    """Test suite for RunIDFilter."""

    def setup_method(self) -> None:
        """Clear run ID before each test."""
        clear_run_id()

    def teardown_method(self) -> None:
        """Clear run ID after each test."""
        clear_run_id()

    def test_filter_adds_run_id_to_record(self) -> None:
        """Test that filter adds run ID from context to record."""
        run_filter = RunIDFilter()
        record = _record()

        set_run_id("run-123")
        result = run_filter.filter(record)

        assert result is True  # Filter should always pass through
        assert record.run_id == "run-123"  # type: ignore[attr-defined]

    def test_filter_adds_none_when_no_run_id(self) -> None:
        """Test that filter adds None when no run ID in context."""
        record = _record()

        assert RunIDFilter().filter(record) is True
        assert record.run_id is None  # type: ignore[attr-defined]

    def test_filter_uses_run_context(self) -> None:
        """Records logged inside RunContext carry its id."""
        record = _record()

        with RunContext("sweep-7"):
            RunIDFilter().filter(record)

        assert record.run_id == "sweep-7"  # type: ignore[attr-defined]


class TestConfigureLogging:
    """Test suite for configure_logging."""

    def teardown_method(self) -> None:
        """Clean up logging configuration after each test."""
        root_logger = logging.getLogger()
        root_logger.handlers.clear()
        root_logger.setLevel(logging.WARNING)

    def test_configure_logging_returns_root_logger(self) -> None:
        """Test that configure_logging returns root logger."""
        logger = configure_logging(service_name="backtest")

        assert logger is logging.getLogger()

    def test_configure_logging_sets_log_level(self) -> None:
        """Test that configure_logging sets correct log level."""
        logger = configure_logging(service_name="backtest", log_level="DEBUG")
        assert logger.level == logging.DEBUG

        logger = configure_logging(service_name="backtest", log_level="info")
        assert logger.level == logging.INFO

    def test_configure_logging_invalid_level_raises_error(self) -> None:
        """Test that invalid log level raises ValueError."""
        with pytest.raises(ValueError, match="Invalid log level"):
            configure_logging(service_name="backtest", log_level="INVALID")

    def test_configure_logging_installs_json_handler(self) -> None:
        """The single root handler uses JSONFormatter and RunIDFilter."""
        logger = configure_logging(service_name="backtest")

        assert len(logger.handlers) == 1
        handler = logger.handlers[0]
        assert isinstance(handler.formatter, JSONFormatter)
        assert handler.formatter.service_name == "backtest"
        assert any(isinstance(f, RunIDFilter) for f in handler.filters)

    def test_configure_logging_outputs_json(self) -> None:
        """Test that configured logger outputs valid JSON."""
        stream = StringIO()
        logger = configure_logging(service_name="backtest")
        handler = logger.handlers[0]
        assert isinstance(handler, logging.StreamHandler)
        handler.setStream(stream)

        with RunContext("run-abc"):
            logger.info("Backtest completed")

        log_dict = json.loads(stream.getvalue().strip())

        assert log_dict["service"] == "backtest"
        assert log_dict["level"] == "INFO"
        assert log_dict["message"] == "Backtest completed"
        assert log_dict["run_id"] == "run-abc"

    def test_configure_logging_removes_existing_handlers(self) -> None:
        """Test that configure_logging removes existing handlers."""
        logger = logging.getLogger()
        dummy_handler = logging.StreamHandler()
        logger.addHandler(dummy_handler)

        configure_logging(service_name="backtest")

        assert len(logger.handlers) == 1
        assert logger.handlers[0] is not dummy_handler


class TestGetLogger:
    """Test suite for get_logger."""

    def test_get_logger_returns_logger(self) -> None:
        """Test that get_logger returns a logger instance."""
        logger = get_logger("strategies.backtest.engine")

        assert isinstance(logger, logging.Logger)
        assert logger.name == "strategies.backtest.engine"

    def test_get_logger_none_returns_root(self) -> None:
        """Test that get_logger(None) returns root logger."""
        assert get_logger(None) is logging.getLogger()


class TestLogWithContext:
    """Test suite for log_with_context."""

    def setup_method(self) -> None:
        """Set up logger for testing."""
        self.stream = StringIO()
        self.logger = logging.getLogger("test_log_with_context")
        self.logger.setLevel(logging.DEBUG)
        self.logger.handlers.clear()
        self.logger.propagate = False

        handler = logging.StreamHandler(self.stream)
        handler.setFormatter(JSONFormatter(service_name="backtest"))
        handler.addFilter(RunIDFilter())
        self.logger.addHandler(handler)

        clear_run_id()

    def teardown_method(self) -> None:
        """Clean up after test."""
        self.logger.handlers.clear()
        self.logger.propagate = True
        clear_run_id()

    def test_log_with_context_adds_context_fields(self) -> None:
        """Test that log_with_context adds fields to context dict."""
        log_with_context(
            self.logger,
            "INFO",
            "Backtest started",
            ensemble="consensus",
            bars=252,
            warmup_bars=26,
        )

        log_dict = json.loads(self.stream.getvalue().strip())

        assert log_dict["context"] == {"ensemble": "consensus", "bars": 252, "warmup_bars": 26}

    def test_log_with_context_different_levels(self) -> None:
        """Test log_with_context with different log levels."""
        for level in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            self.stream.truncate(0)
            self.stream.seek(0)

            log_with_context(self.logger, level, f"Test {level} message", test="value")

            log_dict = json.loads(self.stream.getvalue().strip())

            assert log_dict["level"] == level
            assert log_dict["message"] == f"Test {level} message"
