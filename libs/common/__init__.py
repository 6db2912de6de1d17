"""Common utilities and exceptions."""

from libs.common.exceptions import (
    BacktestCancelled,
    BacktestError,
    ConfigurationError,
    DataQualityError,
    InsufficientDataError,
    InvalidActionError,
)

__all__ = [
    "BacktestError",
    "ConfigurationError",
    "InsufficientDataError",
    "InvalidActionError",
    "DataQualityError",
    "BacktestCancelled",
]
