"""JSON log formatter for structured logging.

This module provides a custom logging formatter that outputs logs in JSON format
with a standardized schema, so backtest and comparison logs can be aggregated
and filtered per run.

Example log output:
    {
        "timestamp": "2025-10-21T10:30:00.000Z",
        "level": "INFO",
        "service": "backtest",
        "run_id": "3f2a9c1b7d4e",
        "message": "Backtest completed",
        "context": {
            "bars": 252,
            "trades": 7
        }
    }
"""

import json
import logging
import traceback
from datetime import UTC, datetime
from types import TracebackType
from typing import Any

# LogRecord attributes that never belong in the "context" block
_RESERVED_FIELDS = frozenset(
    {
        "name",
        "msg",
        "message",
        "asctime",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "run_id",
        "context",
        "exc_info",
        "exc_text",
        "stack_info",
    }
)


class JSONFormatter(logging.Formatter):
    """Custom formatter that outputs logs as JSON.

    Formats log records into structured JSON with a consistent schema:
    timestamp, level, service name, run ID, message, and optional context.

    Attributes:
        service_name: Name of the component emitting logs
        include_context: Whether to include extra context fields

    Example:
        >>> formatter = JSONFormatter(service_name="backtest")
        >>> handler = logging.StreamHandler()
        >>> handler.setFormatter(formatter)
        >>> logger = logging.getLogger(__name__)
        >>> logger.addHandler(handler)
        >>> logger.info("Backtest completed", extra={"context": {"trades": 7}})
    """

    def __init__(
        self, service_name: str, include_context: bool = True, *args: Any, **kwargs: Any
    ) -> None:
        super().__init__(*args, **kwargs)
        self.service_name = service_name
        self.include_context = include_context

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as a single-line JSON string."""
        log_entry: dict[str, Any] = {
            "timestamp": self._format_timestamp(record.created),
            "level": record.levelname,
            "service": self.service_name,
            "run_id": getattr(record, "run_id", None),
            "message": record.getMessage(),
        }

        if self.include_context:
            context = self._extract_context(record)
            if context:
                log_entry["context"] = context

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self._format_exception(record.exc_info),
            }

        log_entry["source"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }

        # default=str keeps datetimes and enums serializable
        return json.dumps(log_entry, default=str)

    def _format_timestamp(self, created: float) -> str:
        """Format timestamp as ISO 8601 in UTC with millisecond precision.

        Example:
            >>> JSONFormatter(service_name="test")._format_timestamp(1697896200.0)
            '2023-10-21T13:50:00.000Z'
        """
        dt = datetime.fromtimestamp(created, tz=UTC)
        return dt.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"

    def _extract_context(self, record: logging.LogRecord) -> dict[str, Any] | None:
        """Extract context from the record.

        An explicit ``extra={"context": {...}}`` dict wins; otherwise every
        non-reserved attribute passed through ``extra`` is collected.
        """
        context = getattr(record, "context", None)
        if context and isinstance(context, dict):
            return dict(context)

        extra = {
            key: value for key, value in record.__dict__.items() if key not in _RESERVED_FIELDS
        }
        return extra if extra else None

    def _format_exception(
        self,
        exc_info: tuple[type[BaseException] | None, BaseException | None, TracebackType | None],
    ) -> str:
        return "".join(traceback.format_exception(*exc_info))
