"""
Rule-based signal sources.

Each rule reads a few named indicator values (or the trailing price/volume
windows) from a ``FeatureVector`` and returns BUY, SELL or HOLD. Indicator
names are constructor arguments so the same rule works with any indicator
provider's naming scheme.

Rules return HOLD when an input they need is unavailable.

Available rules:
- RSIRule: oversold -> BUY, overbought -> SELL
- TrendRule: rising indicator -> BUY, falling -> SELL
- MACDCrossoverRule: MACD crossing its signal line
- BollingerBandsRule: close at/through the lower or upper band
- VolumeBreakoutRule: range breakout confirmed by above-average volume
- RandomSignal: coin flip or thirds, with an injectable seeded generator
"""

from __future__ import annotations

import random
from typing import TYPE_CHECKING, Literal

from libs.common.exceptions import ConfigurationError
from strategies.signals.base import Action, SignalRule

if TYPE_CHECKING:
    from strategies.backtest.features import FeatureVector


class RSIRule(SignalRule):
    """
    Relative Strength Index threshold rule.

    Rules:
    - RSI < oversold → BUY
    - RSI > overbought → SELL
    - Otherwise → HOLD

    Example:
        >>> rule = RSIRule(oversold=30, overbought=70)
        >>> rule.evaluate(vector_with_rsi_25)
        <Action.BUY: 'buy'>
    """

    def __init__(
        self,
        oversold: float = 30.0,
        overbought: float = 70.0,
        indicator: str = "rsi",
        name: str | None = None,
    ) -> None:
        if not 0.0 <= oversold < overbought <= 100.0:
            raise ConfigurationError(
                f"RSI thresholds must satisfy 0 <= oversold < overbought <= 100, "
                f"got oversold={oversold}, overbought={overbought}"
            )
        super().__init__(name)
        self.oversold = oversold
        self.overbought = overbought
        self.indicator = indicator

    def _decide(self, vector: FeatureVector) -> Action:
        rsi = vector.get(self.indicator)
        if rsi is None:
            return Action.HOLD
        if rsi < self.oversold:
            return Action.BUY
        if rsi > self.overbought:
            return Action.SELL
        return Action.HOLD


class TrendRule(SignalRule):
    """
    Direction of a moving average (SMA/EMA) since the previous bar.

    Rules:
    - indicator rose since bar i-1 → BUY
    - indicator fell since bar i-1 → SELL
    - unchanged or unavailable → HOLD
    """

    def __init__(self, indicator: str = "sma_20", name: str | None = None) -> None:
        super().__init__(name or f"TrendRule({indicator})")
        self.indicator = indicator

    def _decide(self, vector: FeatureVector) -> Action:
        current = vector.get(self.indicator)
        previous = vector.get_previous(self.indicator)
        if current is None or previous is None:
            return Action.HOLD
        if current > previous:
            return Action.BUY
        if current < previous:
            return Action.SELL
        return Action.HOLD


class MACDCrossoverRule(SignalRule):
    """
    MACD / signal-line crossover.

    Rules:
    - prev MACD <= prev signal and MACD > signal → BUY (bullish cross)
    - prev MACD >= prev signal and MACD < signal → SELL (bearish cross)
    - Otherwise → HOLD
    """

    def __init__(
        self,
        macd: str = "macd",
        signal: str = "macd_signal",
        name: str | None = None,
    ) -> None:
        super().__init__(name)
        self.macd = macd
        self.signal = signal

    def _decide(self, vector: FeatureVector) -> Action:
        macd_now = vector.get(self.macd)
        signal_now = vector.get(self.signal)
        macd_prev = vector.get_previous(self.macd)
        signal_prev = vector.get_previous(self.signal)
        if None in (macd_now, signal_now, macd_prev, signal_prev):
            return Action.HOLD

        if macd_prev <= signal_prev and macd_now > signal_now:  # type: ignore[operator]
            return Action.BUY
        if macd_prev >= signal_prev and macd_now < signal_now:  # type: ignore[operator]
            return Action.SELL
        return Action.HOLD


class BollingerBandsRule(SignalRule):
    """
    Bollinger Bands touch rule.

    Rules:
    - close <= lower band → BUY (oversold)
    - close >= upper band → SELL (overbought)
    - Otherwise → HOLD
    """

    def __init__(
        self,
        upper: str = "bb_upper",
        lower: str = "bb_lower",
        name: str | None = None,
    ) -> None:
        super().__init__(name)
        self.upper = upper
        self.lower = lower

    def _decide(self, vector: FeatureVector) -> Action:
        upper = vector.get(self.upper)
        lower = vector.get(self.lower)
        if upper is None or lower is None:
            return Action.HOLD
        if vector.close <= lower:
            return Action.BUY
        if vector.close >= upper:
            return Action.SELL
        return Action.HOLD


class VolumeBreakoutRule(SignalRule):
    """
    Price breakout through the recent range on high volume.

    Uses the trailing windows on the feature vector, so it needs
    ``lookback + 1`` bars of history (the current bar plus the range).

    Rules:
    - close > max(prior lookback closes), previous close <= that high,
      volume > multiplier × mean(prior lookback volumes) → BUY
    - symmetric breakdown below the prior low → SELL
    - Otherwise → HOLD
    """

    def __init__(
        self,
        lookback: int = 20,
        volume_multiplier: float = 1.5,
        name: str | None = None,
    ) -> None:
        if lookback < 2:
            raise ConfigurationError(f"lookback must be >= 2, got {lookback}")
        if volume_multiplier <= 0:
            raise ConfigurationError(f"volume_multiplier must be > 0, got {volume_multiplier}")
        super().__init__(name)
        self.lookback = lookback
        self.volume_multiplier = volume_multiplier

    def _decide(self, vector: FeatureVector) -> Action:
        if len(vector.closes) < self.lookback + 1 or len(vector.volumes) < self.lookback + 1:
            return Action.HOLD

        prior_closes = vector.closes[-self.lookback - 1 : -1]
        prior_volumes = vector.volumes[-self.lookback - 1 : -1]
        recent_high = max(prior_closes)
        recent_low = min(prior_closes)
        previous_close = prior_closes[-1]
        threshold = self.volume_multiplier * (sum(prior_volumes) / self.lookback)

        high_volume = vector.volumes[-1] > threshold
        if high_volume and vector.close > recent_high and previous_close <= recent_high:
            return Action.BUY
        if high_volume and vector.close < recent_low and previous_close >= recent_low:
            return Action.SELL
        return Action.HOLD


class RandomSignal(SignalRule):
    """
    Random benchmark signal.

    Modes:
    - "coin_flip": BUY or SELL with equal probability
    - "thirds": BUY, SELL, HOLD with probability 1/3 each

    Reproducibility requires an injected generator or a seed; with neither, a
    fresh system-seeded ``random.Random`` is used.

    Example:
        >>> a = RandomSignal(seed=7)
        >>> b = RandomSignal(seed=7)
        >>> [a.evaluate(v) for v in vectors] == [b.evaluate(v) for v in vectors]
        True
    """

    def __init__(
        self,
        mode: Literal["coin_flip", "thirds"] = "coin_flip",
        rng: random.Random | None = None,
        seed: int | None = None,
        name: str | None = None,
    ) -> None:
        if mode not in ("coin_flip", "thirds"):
            raise ConfigurationError(f"Unknown random mode: {mode}")
        if rng is not None and seed is not None:
            raise ConfigurationError("Pass either rng or seed, not both")
        super().__init__(name)
        self.mode = mode
        self._rng = rng if rng is not None else random.Random(seed)

    def _decide(self, vector: FeatureVector) -> Action:
        if self.mode == "coin_flip":
            return Action.BUY if self._rng.randrange(2) == 0 else Action.SELL

        draw = self._rng.randrange(9)
        if draw <= 2:
            return Action.BUY
        if draw <= 5:
            return Action.SELL
        return Action.HOLD
