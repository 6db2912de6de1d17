"""
Exception hierarchy for the backtesting engine.

This module defines all custom exceptions raised by the ensemble and
backtest packages, organized in a hierarchy for precise error handling.

Fatal errors (configuration, insufficient data, invalid actions) abort a run
and surface to the caller. Missing indicator values are NOT exceptions: they
are recorded as ``DegradedBarEvent`` entries and the bar is treated as Hold.
"""

from typing import Any


class BacktestError(Exception):
    """
    Base exception for all backtesting errors.

    All custom exceptions in the engine inherit from this class,
    allowing for catch-all error handling when needed.

    Example:
        >>> try:
        ...     engine.run(bars)
        ... except BacktestError as e:
        ...     logger.error(f"Backtest failed: {e}")
    """

    pass


class ConfigurationError(BacktestError, ValueError):
    """
    Raised when a run or ensemble is configured incorrectly.

    This includes non-positive initial capital, negative commission,
    an empty ensemble, invalid weights, misaligned indicator series,
    or adding a signal source after the ensemble has been frozen.

    Example:
        >>> if initial_capital <= 0:
        ...     raise ConfigurationError(f"initial_capital must be > 0, got {initial_capital}")
    """

    pass


class InsufficientDataError(BacktestError):
    """
    Raised when the price series cannot cover the indicator warm-up window.

    A run needs at least one tradable bar after warm-up, so a series of
    length <= warm-up (including an empty series) is rejected.

    Example:
        >>> if len(bars) <= warmup:
        ...     raise InsufficientDataError(f"{len(bars)} bars, warm-up needs {warmup}")
    """

    pass


class InvalidActionError(BacktestError):
    """
    Raised when a signal source returns a value outside {buy, sell, hold}.

    Attributes:
        source: Name of the offending signal source (None if unknown)
        value: The unrecognized value that was returned
    """

    def __init__(self, value: Any, source: str | None = None) -> None:
        self.value = value
        self.source = source
        where = f" from source '{source}'" if source else ""
        super().__init__(f"Unrecognized action {value!r}{where}")


class DataQualityError(BacktestError):
    """
    Raised when input data violates a structural invariant.

    Currently: price bars whose timestamps are not strictly ascending.

    Example:
        >>> if bars[i].timestamp <= bars[i - 1].timestamp:
        ...     raise DataQualityError(f"Timestamp at bar {i} is not ascending")
    """

    pass


class BacktestCancelled(BacktestError):
    """Raised when a backtest run is cancelled cooperatively."""

    pass
