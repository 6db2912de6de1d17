"""Centralized structured logging library.

This package provides structured JSON logging with run ID support so that
logs from concurrently executing backtests can be told apart.

Usage:
    # At process startup
    from libs.common.logging import configure_logging
    configure_logging(service_name="backtest", log_level="INFO")

    # Around a unit of work
    from libs.common.logging import RunContext, get_logger, log_with_context
    logger = get_logger(__name__)
    with RunContext() as run_id:
        log_with_context(logger, "INFO", "Run started", bars=252)
"""

from libs.common.logging.config import (
    RunIDFilter,
    configure_logging,
    get_logger,
    log_with_context,
)
from libs.common.logging.context import (
    RunContext,
    clear_run_id,
    generate_run_id,
    get_run_id,
    set_run_id,
)
from libs.common.logging.formatter import JSONFormatter

__all__ = [
    # Configuration
    "configure_logging",
    "get_logger",
    "log_with_context",
    "RunIDFilter",
    # Run ID management
    "generate_run_id",
    "get_run_id",
    "set_run_id",
    "clear_run_id",
    "RunContext",
    # Formatter (for advanced usage)
    "JSONFormatter",
]
