"""
Per-bar feature snapshots for the backtest engine.

This module turns a price series plus aligned indicator series into one
read-only ``FeatureVector`` per bar. It is the only place the engine reads
market data, so it is also where the point-in-time (no look-ahead) contract
is enforced: the vector for bar i is built from bars[0..i] and indicator
values at i and i-1 only.

Indicator values that are missing or NaN are normalized to ``None``. A bar
past warm-up with any ``None`` indicator is a degraded bar: the engine
treats it as Hold and records a ``DegradedBarEvent``.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from types import MappingProxyType
from typing import Any

from libs.common.exceptions import ConfigurationError, DataQualityError

IndicatorValues = dict[str, list[float | None]]


def _empty_mapping() -> Mapping[str, float | None]:
    return MappingProxyType({})


@dataclass(frozen=True)
class PriceBar:
    """
    One OHLCV observation.

    Attributes:
        timestamp: Bar time (date or datetime); must be strictly ascending in a series
        open, high, low, close: Prices for the interval
        adj_close: Adjusted close (defaults to close)
        volume: Traded volume (defaults to 0)
        extra: Opaque pass-through fields from the data layer (read-only)
    """

    timestamp: date | datetime
    open: float
    high: float
    low: float
    close: float
    adj_close: float | None = None
    volume: float = 0.0
    extra: Mapping[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        if self.adj_close is None:
            object.__setattr__(self, "adj_close", self.close)
        if not isinstance(self.extra, MappingProxyType):
            object.__setattr__(self, "extra", MappingProxyType(dict(self.extra)))


@dataclass(frozen=True)
class FeatureVector:
    """
    Read-only snapshot of one bar and the indicator values known at that bar.

    Attributes:
        index: Bar index in the series
        bar: The PriceBar at ``index``
        indicators: Indicator name -> value at ``index`` (None = unavailable)
        previous: Indicator name -> value at ``index - 1`` (empty at bar 0)
        closes: Trailing closes ending at ``index`` (oldest first)
        volumes: Trailing volumes ending at ``index`` (oldest first)

    Example:
        >>> vector["rsi"]
        27.4
        >>> vector.get("sma_50") is None  # still warming up
        True
    """

    index: int
    bar: PriceBar
    indicators: Mapping[str, float | None] = field(default_factory=_empty_mapping)
    previous: Mapping[str, float | None] = field(default_factory=_empty_mapping)
    closes: tuple[float, ...] = ()
    volumes: tuple[float, ...] = ()

    def __getitem__(self, name: str) -> float | None:
        return self.indicators[name]

    def get(self, name: str, default: float | None = None) -> float | None:
        value = self.indicators.get(name)
        return default if value is None else value

    def get_previous(self, name: str, default: float | None = None) -> float | None:
        value = self.previous.get(name)
        return default if value is None else value

    @property
    def close(self) -> float:
        return self.bar.close

    @property
    def timestamp(self) -> date | datetime:
        return self.bar.timestamp

    @property
    def missing(self) -> tuple[str, ...]:
        """Names of indicators with no usable value at this bar."""
        return tuple(name for name, value in self.indicators.items() if value is None)


@dataclass(frozen=True)
class DegradedBarEvent:
    """A bar traded as Hold because one or more indicators were unavailable."""

    index: int
    timestamp: date | datetime
    indicators: tuple[str, ...]


def validate_price_series(bars: Sequence[PriceBar]) -> None:
    """
    Check that bar timestamps are strictly ascending.

    Raises:
        DataQualityError: On the first duplicate or out-of-order timestamp
    """
    for i in range(1, len(bars)):
        if not bars[i].timestamp > bars[i - 1].timestamp:
            raise DataQualityError(
                f"Price series must be strictly ascending: bar {i} "
                f"({bars[i].timestamp}) does not follow bar {i - 1} ({bars[i - 1].timestamp})"
            )


def _clean_value(value: Any) -> float | None:
    if value is None:
        return None
    number = float(value)
    if math.isnan(number):
        return None
    return number


def normalize_indicators(indicators: Mapping[str, Any] | None, n_bars: int) -> IndicatorValues:
    """
    Normalize indicator series into aligned lists of float-or-None.

    Accepts any sequence per indicator (list, tuple, numpy array, polars
    Series). NaN and None both become None.

    Raises:
        ConfigurationError: If a series length differs from the bar count
    """
    if not indicators:
        return {}

    normalized: IndicatorValues = {}
    for name, series in indicators.items():
        values = series.to_list() if hasattr(series, "to_list") else list(series)
        if len(values) != n_bars:
            raise ConfigurationError(
                f"Indicator '{name}' has {len(values)} values, expected {n_bars} (one per bar)"
            )
        normalized[name] = [_clean_value(v) for v in values]
    return normalized


def detect_warmup(indicators: Mapping[str, Sequence[float | None]]) -> int:
    """
    Number of leading bars before every indicator has produced a value.

    Computed as the largest count of leading unavailable values across all
    series. Gaps after the first value are degraded bars, not warm-up.

    Example:
        >>> detect_warmup({"sma_3": [None, None, 10.0, 11.0], "rsi": [None, 40.0, 42.0, 45.0]})
        2
    """
    warmup = 0
    for values in indicators.values():
        leading = 0
        for value in values:
            if value is not None:
                break
            leading += 1
        warmup = max(warmup, leading)
    return warmup


def build_feature_vector(
    bars: Sequence[PriceBar],
    indicators: Mapping[str, Sequence[float | None]],
    index: int,
    history_window: int = 50,
) -> FeatureVector:
    """
    Build the FeatureVector for bar ``index``.

    Only bars[0..index] and indicator values at ``index`` / ``index - 1`` are
    read, so the result is identical whether ``bars`` is the full series or
    the series truncated at ``index``.

    Args:
        bars: Price series (already validated)
        indicators: Normalized indicator series (see normalize_indicators)
        index: Bar to snapshot
        history_window: Maximum length of the trailing close/volume windows

    Returns:
        Immutable FeatureVector
    """
    if index < 0 or index >= len(bars):
        raise IndexError(f"Bar index {index} out of range for {len(bars)} bars")

    start = max(0, index - history_window + 1)
    window = bars[start : index + 1]

    current = {name: values[index] for name, values in indicators.items()}
    previous = (
        {name: values[index - 1] for name, values in indicators.items()} if index > 0 else {}
    )

    return FeatureVector(
        index=index,
        bar=bars[index],
        indicators=MappingProxyType(current),
        previous=MappingProxyType(previous),
        closes=tuple(bar.close for bar in window),
        volumes=tuple(bar.volume for bar in window),
    )
