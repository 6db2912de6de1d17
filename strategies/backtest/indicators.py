"""
Indicator providers and a shared indicator cache.

The engine treats indicators as a black box: it consumes aligned series (one
value per bar, ``None`` while unavailable) either precomputed by the caller or
produced by an ``IndicatorProvider``. This module defines that protocol, a
reference provider built on polars expressions, and a thread-safe cache so
concurrent backtests over the same series compute each indicator once.

Reference indicators (default parameters):
- rsi: Wilder RSI(14)
- sma_20, sma_50: Simple moving averages
- ema_12, ema_26: Exponential moving averages
- macd, macd_signal, macd_hist: MACD(12, 26, 9)
- bb_upper, bb_middle, bb_lower: Bollinger Bands(20, 2.0)
"""

import hashlib
import logging
import threading
from collections.abc import Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

import polars as pl

from strategies.backtest.features import PriceBar, normalize_indicators

logger = logging.getLogger(__name__)

IndicatorSeries = dict[str, tuple[float | None, ...]]
ProviderKey = tuple[str, tuple[tuple[str, Any], ...]]
CacheKey = tuple[str, ProviderKey, str]


@runtime_checkable
class IndicatorProvider(Protocol):
    """Anything that computes named indicator series aligned to a price series."""

    @property
    def params(self) -> Mapping[str, Any]:
        """Parameters that identify the computed values (used in cache keys)."""
        ...

    def compute(self, bars: Sequence[PriceBar]) -> Mapping[str, Sequence[float | None]]:
        """Return one value per bar for each indicator; None while unavailable."""
        ...


def compute_rsi(close: pl.Expr, period: int = 14) -> pl.Expr:
    """
    Relative Strength Index with Wilder's smoothing.

    Formula:
        RSI = 100 - (100 / (1 + RS))
        where RS = Average Gain / Average Loss over period

    The first ``period`` values are null. When there are no losses RSI is
    100; when the price did not move at all it is undefined (NaN).
    """
    change = close.diff()
    gain = change.clip(lower_bound=0.0)
    loss = (-change).clip(lower_bound=0.0)

    alpha = 1.0 / period
    avg_gain = gain.ewm_mean(alpha=alpha, adjust=False, min_samples=period)
    avg_loss = loss.ewm_mean(alpha=alpha, adjust=False, min_samples=period)

    return 100.0 - (100.0 / (1.0 + avg_gain / avg_loss))


def compute_sma(close: pl.Expr, period: int) -> pl.Expr:
    """Simple moving average; first ``period - 1`` values are null."""
    return close.rolling_mean(window_size=period)


def compute_ema(close: pl.Expr, period: int) -> pl.Expr:
    """Exponential moving average (span = period); first ``period - 1`` values are null."""
    return close.ewm_mean(span=period, adjust=False, min_samples=period)


class PolarsIndicatorProvider:
    """
    Reference indicator provider using polars expressions.

    Example:
        >>> provider = PolarsIndicatorProvider(sma_periods=(10, 30))
        >>> series = provider.compute(bars)
        >>> sorted(series)[:3]
        ['bb_lower', 'bb_middle', 'bb_upper']
        >>> series["sma_10"][:9]
        (None, None, None, None, None, None, None, None, None)
    """

    def __init__(
        self,
        rsi_period: int = 14,
        sma_periods: Sequence[int] = (20, 50),
        ema_periods: Sequence[int] = (12, 26),
        macd_periods: tuple[int, int, int] = (12, 26, 9),
        bb_period: int = 20,
        bb_std: float = 2.0,
    ) -> None:
        fast, slow, signal = macd_periods
        if fast >= slow:
            raise ValueError(f"MACD fast period must be < slow period, got {fast} >= {slow}")
        for period in (rsi_period, *sma_periods, *ema_periods, fast, slow, signal, bb_period):
            if period < 1:
                raise ValueError(f"Indicator periods must be >= 1, got {period}")

        self.rsi_period = rsi_period
        self.sma_periods = tuple(sma_periods)
        self.ema_periods = tuple(ema_periods)
        self.macd_periods = (fast, slow, signal)
        self.bb_period = bb_period
        self.bb_std = bb_std

    @property
    def params(self) -> dict[str, Any]:
        return {
            "rsi_period": self.rsi_period,
            "sma_periods": self.sma_periods,
            "ema_periods": self.ema_periods,
            "macd_periods": self.macd_periods,
            "bb_period": self.bb_period,
            "bb_std": self.bb_std,
        }

    def compute(self, bars: Sequence[PriceBar]) -> IndicatorSeries:
        """
        Compute all reference indicators over the close prices.

        Returns:
            Indicator name -> tuple of values aligned to ``bars`` (None while
            warming up or undefined)
        """
        df = pl.DataFrame({"close": [bar.close for bar in bars]}, schema={"close": pl.Float64})
        close = pl.col("close")
        fast, slow, signal = self.macd_periods

        df = df.with_columns(
            [
                compute_rsi(close, self.rsi_period).alias("rsi"),
                *[compute_sma(close, p).alias(f"sma_{p}") for p in self.sma_periods],
                *[compute_ema(close, p).alias(f"ema_{p}") for p in self.ema_periods],
                (compute_ema(close, fast) - compute_ema(close, slow)).alias("macd"),
                compute_sma(close, self.bb_period).alias("bb_middle"),
                close.rolling_std(window_size=self.bb_period).alias("bb_std"),
            ]
        )
        df = df.with_columns(
            [
                pl.col("macd")
                .ewm_mean(span=signal, adjust=False, min_samples=signal)
                .alias("macd_signal"),
                (pl.col("bb_middle") + self.bb_std * pl.col("bb_std")).alias("bb_upper"),
                (pl.col("bb_middle") - self.bb_std * pl.col("bb_std")).alias("bb_lower"),
            ]
        )
        df = df.with_columns((pl.col("macd") - pl.col("macd_signal")).alias("macd_hist"))
        df = df.drop(["close", "bb_std"])

        normalized = normalize_indicators({name: df[name] for name in df.columns}, len(bars))
        return {name: tuple(values) for name, values in normalized.items()}


def series_fingerprint(bars: Sequence[PriceBar]) -> str:
    """
    SHA-256 fingerprint of a price series.

    Two series with the same timestamps and OHLCV values share a fingerprint,
    so their indicators can be shared from the cache.
    """
    digest = hashlib.sha256()
    for bar in bars:
        digest.update(
            f"{bar.timestamp.isoformat()}|{bar.open!r}|{bar.high!r}|{bar.low!r}|"
            f"{bar.close!r}|{bar.adj_close!r}|{bar.volume!r}\n".encode()
        )
    return digest.hexdigest()


def _freeze_params(params: Mapping[str, Any]) -> tuple[tuple[str, Any], ...]:
    frozen = []
    for key in sorted(params):
        value = params[key]
        if isinstance(value, list):
            value = tuple(value)
        frozen.append((key, value))
    return tuple(frozen)


def _provider_key(provider: IndicatorProvider) -> ProviderKey:
    provider_type = type(provider)
    name = f"{provider_type.__module__}.{provider_type.__qualname__}"
    return name, _freeze_params(provider.params)


class IndicatorCache:
    """
    Thread-safe cache of computed indicator series.

    Entries are keyed by series identity, provider type, provider parameters
    and indicator name, and store immutable tuples, so concurrent backtests can share them read-only.

    Example:
        >>> cache = IndicatorCache()
        >>> first = cache.get_or_compute(bars, provider)
        >>> second = cache.get_or_compute(bars, provider)  # served from cache
        >>> cache.hits, cache.misses
        (1, 1)
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[CacheKey, tuple[float | None, ...]] = {}
        self._names: dict[tuple[str, ProviderKey], tuple[str, ...]] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(
        self, series_id: str, name: str, provider: IndicatorProvider
    ) -> tuple[float | None, ...] | None:
        key = (series_id, _provider_key(provider), name)
        with self._lock:
            return self._entries.get(key)

    def get_or_compute(
        self,
        bars: Sequence[PriceBar],
        provider: IndicatorProvider,
        series_id: str | None = None,
    ) -> IndicatorSeries:
        """
        Return the provider's indicators for ``bars``, computing them on a miss.

        Args:
            bars: Price series
            provider: Indicator provider
            series_id: Identity of the series (default: SHA-256 fingerprint)

        Returns:
            Indicator name -> tuple of values aligned to ``bars``
        """
        if series_id is None:
            series_id = series_fingerprint(bars)
        source = _provider_key(provider)

        with self._lock:
            names = self._names.get((series_id, source))
            if names is not None:
                self.hits += 1
                return {name: self._entries[(series_id, source, name)] for name in names}
            self.misses += 1

        # Computed outside the lock; a concurrent miss on the same key computes
        # the same values and the first writer wins.
        provider_name, params = source
        logger.debug(
            f"Computing indicators for series {series_id[:12]} with {provider_name} {dict(params)}"
        )
        computed = normalize_indicators(provider.compute(bars), len(bars))
        values = {name: tuple(series) for name, series in computed.items()}

        with self._lock:
            names = self._names.setdefault((series_id, source), tuple(values))
            for name in names:
                self._entries.setdefault((series_id, source, name), values[name])
            return {name: self._entries[(series_id, source, name)] for name in names}

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._names.clear()
            self.hits = 0
            self.misses = 0
