"""
Shared fixtures for tests.

Provides small factories for price series, feature vectors and scripted
signal sources so tests can describe scenarios in a line or two.
"""

from collections.abc import Callable, Mapping, Sequence
from datetime import date, timedelta

import pytest

from strategies.backtest.features import FeatureVector, PriceBar
from strategies.signals.base import Action, FunctionSignal

BarFactory = Callable[..., list[PriceBar]]


@pytest.fixture()
def make_bars() -> BarFactory:
    """
    Factory for daily PriceBar series.

    Example:
        bars = make_bars([10, 12])                      # open = high = low = close
        bars = make_bars([10, 12], opens=[9.5, 11.0])   # explicit opens
    """

    def _make(
        closes: Sequence[float],
        opens: Sequence[float] | None = None,
        volumes: Sequence[float] | None = None,
        start: date = date(2024, 1, 1),
    ) -> list[PriceBar]:
        bars = []
        for i, close in enumerate(closes):
            open_ = float(opens[i]) if opens is not None else float(close)
            bars.append(
                PriceBar(
                    timestamp=start + timedelta(days=i),
                    open=open_,
                    high=max(open_, float(close)),
                    low=min(open_, float(close)),
                    close=float(close),
                    volume=float(volumes[i]) if volumes is not None else 1_000.0,
                )
            )
        return bars

    return _make


@pytest.fixture()
def make_vector() -> Callable[..., FeatureVector]:
    """Factory for a single FeatureVector with chosen indicator values."""

    def _make(
        close: float = 100.0,
        indicators: Mapping[str, float | None] | None = None,
        previous: Mapping[str, float | None] | None = None,
        index: int = 0,
        closes: Sequence[float] | None = None,
        volumes: Sequence[float] | None = None,
    ) -> FeatureVector:
        bar = PriceBar(
            timestamp=date(2024, 1, 1) + timedelta(days=index),
            open=close,
            high=close,
            low=close,
            close=close,
            volume=volumes[-1] if volumes else 1_000.0,
        )
        return FeatureVector(
            index=index,
            bar=bar,
            indicators=dict(indicators or {}),
            previous=dict(previous or {}),
            closes=tuple(closes) if closes is not None else (close,),
            volumes=tuple(volumes) if volumes is not None else (bar.volume,),
        )

    return _make


@pytest.fixture()
def scripted_signal() -> Callable[..., FunctionSignal]:
    """
    Factory for a signal source that replays a fixed action per bar index.

    Bars beyond the script vote HOLD.

    Example:
        source = scripted_signal(["buy", "hold", "sell"], name="script")
    """

    def _make(actions: Sequence[Action | str], name: str = "scripted") -> FunctionSignal:
        script = list(actions)

        def replay(vector: FeatureVector) -> Action | str:
            if vector.index < len(script):
                return script[vector.index]
            return Action.HOLD

        return FunctionSignal(replay, name=name)

    return _make
