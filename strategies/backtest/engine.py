"""
Bar-by-bar backtest engine.

The engine walks a price series in chronological order and, for each bar:

1. Builds the FeatureVector from bars[0..i] and indicator values at i / i-1.
2. Asks the ensemble for a decision (Hold during warm-up and on degraded bars).
3. Applies the decision to a private Portfolio:
   - Flat + Buy  → open long (Flat + Sell → open short when allowed)
   - Long + Sell → close long, emitting a Trade
   - Short + Buy → cover short, emitting a Trade
   - Anything else → no change
4. Records equity = cash + quantity × close.

A single run is strictly sequential. Runs share nothing mutable except the
read-only inputs, so independent runs can execute in parallel (see
``strategies.backtest.comparison``).
"""

import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from libs.common.exceptions import BacktestError, InsufficientDataError
from libs.common.logging import RunContext, log_with_context
from strategies.backtest.config import BacktestConfig, FillPolicy
from strategies.backtest.features import (
    DegradedBarEvent,
    IndicatorValues,
    PriceBar,
    build_feature_vector,
    detect_warmup,
    normalize_indicators,
    validate_price_series,
)
from strategies.backtest.indicators import IndicatorCache, IndicatorProvider
from strategies.backtest.portfolio import Portfolio, PositionState, Trade
from strategies.backtest.result import BacktestRun, PerformanceAnalyzer
from strategies.ensemble.ensemble import StrategyEnsemble
from strategies.signals.base import Action

logger = logging.getLogger(__name__)


class BacktestEngine:
    """
    Simulate an ensemble's decisions over a price series.

    Args:
        ensemble: The decision maker; use StrategyEnsemble.wrap for a single
                  signal source
        config: Run configuration (default: BacktestConfig())

    Raises:
        ConfigurationError: If the configuration is invalid

    Example:
        >>> ensemble = StrategyEnsemble([RSIRule(), MACDCrossoverRule()], policy="unanimous")
        >>> engine = BacktestEngine(ensemble, BacktestConfig(initial_capital=10_000))
        >>> run = engine.run(bars, provider=PolarsIndicatorProvider())
        >>> print(run.result.summary())
    """

    def __init__(
        self,
        ensemble: StrategyEnsemble,
        config: BacktestConfig | None = None,
    ) -> None:
        self.config = config or BacktestConfig()
        self.config.validate()

        self.ensemble = ensemble
        self.analyzer = PerformanceAnalyzer(
            periods_per_year=self.config.periods_per_year,
            risk_free_rate=self.config.risk_free_rate,
        )

    @staticmethod
    def prepare_indicators(
        bars: Sequence[PriceBar],
        indicators: Mapping[str, Any] | None = None,
        provider: IndicatorProvider | None = None,
        cache: IndicatorCache | None = None,
    ) -> IndicatorValues:
        """
        Materialize all indicator series for a run.

        Provider output (through the cache when given) is merged with the
        caller's precomputed series; precomputed series win on name clashes.

        Raises:
            ConfigurationError: If any series is not aligned with ``bars``
        """
        merged: dict[str, Any] = {}
        if provider is not None:
            if cache is not None:
                merged.update(cache.get_or_compute(bars, provider))
            else:
                merged.update(provider.compute(bars))
        if indicators:
            merged.update(indicators)
        return normalize_indicators(merged, len(bars))

    def run(
        self,
        bars: Sequence[PriceBar],
        indicators: Mapping[str, Any] | None = None,
        provider: IndicatorProvider | None = None,
        cache: IndicatorCache | None = None,
        cancel_check: Callable[[], None] | None = None,
        run_id: str | None = None,
    ) -> BacktestRun:
        """
        Run the backtest.

        Args:
            bars: Price series, strictly ascending by timestamp
            indicators: Precomputed indicator series aligned to ``bars``
                        (None or NaN = unavailable)
            provider: Indicator provider to compute series from ``bars``
            cache: Shared cache for provider output
            cancel_check: Called once per bar; raise BacktestCancelled to abort
            run_id: Log correlation id (generated when omitted)

        Returns:
            BacktestRun with the result, trades, equity curve and degraded bars

        Raises:
            DataQualityError: If timestamps are not strictly ascending
            ConfigurationError: If indicators are misaligned or the ensemble is empty
            InsufficientDataError: If there is no tradable bar after warm-up
            InvalidActionError: If a source returns an unrecognized action
            BacktestCancelled: If ``cancel_check`` requests cancellation
        """
        with RunContext(run_id) as active_run_id:
            try:
                return self._run(bars, indicators, provider, cache, cancel_check, active_run_id)
            except BacktestError as e:
                log_with_context(
                    logger,
                    "ERROR",
                    f"Backtest aborted: {e}",
                    error_type=type(e).__name__,
                    ensemble=self.ensemble.name,
                )
                raise

    def _run(
        self,
        bars: Sequence[PriceBar],
        indicators: Mapping[str, Any] | None,
        provider: IndicatorProvider | None,
        cache: IndicatorCache | None,
        cancel_check: Callable[[], None] | None,
        run_id: str,
    ) -> BacktestRun:
        config = self.config
        validate_price_series(bars)
        series = self.prepare_indicators(bars, indicators, provider, cache)

        warmup = config.warmup_bars if config.warmup_bars is not None else detect_warmup(series)
        if len(bars) <= warmup:
            raise InsufficientDataError(
                f"Price series has {len(bars)} bars; at least {warmup + 1} needed "
                f"to cover a warm-up of {warmup}"
            )

        self.ensemble.freeze()

        log_with_context(
            logger,
            "INFO",
            "Backtest started",
            ensemble=self.ensemble.name,
            policy=self.ensemble.policy.value,
            bars=len(bars),
            warmup_bars=warmup,
            indicators=sorted(series),
            fill_policy=config.fill_policy.value,
        )

        portfolio = Portfolio(config.initial_capital, config.commission, config.commission_rate)
        degraded: list[DegradedBarEvent] = []
        pending: Action | None = None
        last = len(bars) - 1

        for i, bar in enumerate(bars):
            if cancel_check is not None:
                cancel_check()

            if pending is not None:
                self._execute(portfolio, pending, i, bar, bar.open)
                pending = None

            if i >= warmup:
                vector = build_feature_vector(bars, series, i, config.history_window)
                missing = vector.missing
                if missing:
                    degraded.append(DegradedBarEvent(i, bar.timestamp, missing))
                    logger.debug(f"Bar {i} ({bar.timestamp}) degraded: missing {list(missing)}")
                    decision = Action.HOLD
                else:
                    decision = self.ensemble.decide(vector)

                if decision != Action.HOLD:
                    if config.fill_policy == FillPolicy.CLOSE:
                        self._execute(portfolio, decision, i, bar, bar.close)
                    elif i < last:
                        pending = decision
                    else:
                        logger.warning(
                            f"Dropping {decision.value} decided on final bar {i}: "
                            "no next bar to fill at"
                        )

            if i == last and config.close_at_end and portfolio.position is not None:
                portfolio.close(i, bar.timestamp, bar.close, reason="end_of_data")

            portfolio.mark(bar.close)

        result = self.analyzer.analyze(
            portfolio.equity_curve,
            portfolio.trades,
            initial_capital=config.initial_capital,
            total_commission=portfolio.total_commission,
            degraded_bars=len(degraded),
            start=bars[0].timestamp,
            end=bars[-1].timestamp,
        )

        log_with_context(
            logger,
            "INFO",
            "Backtest completed",
            ensemble=self.ensemble.name,
            total_return=result.total_return,
            sharpe_ratio=result.sharpe_ratio,
            max_drawdown=result.max_drawdown,
            total_trades=result.total_trades,
            degraded_bars=result.degraded_bars,
            open_position=portfolio.state.value,
        )

        return BacktestRun(
            result=result,
            trades=tuple(portfolio.trades),
            equity_curve=tuple(portfolio.equity_curve),
            timestamps=tuple(bar.timestamp for bar in bars),
            degraded_events=tuple(degraded),
            warmup_bars=warmup,
            run_id=run_id,
        )

    def _execute(
        self,
        portfolio: Portfolio,
        action: Action,
        index: int,
        bar: PriceBar,
        price: float,
    ) -> Trade | None:
        """Apply one decision at ``price``; returns the Trade when a position closes."""
        state = portfolio.state

        if action == Action.BUY:
            if state == PositionState.SHORT:
                return portfolio.close(index, bar.timestamp, price)
            if state == PositionState.FLAT:
                self._enter(portfolio, action, index, bar, price)
        elif action == Action.SELL:
            if state == PositionState.LONG:
                return portfolio.close(index, bar.timestamp, price)
            if state == PositionState.FLAT and self.config.allow_short:
                self._enter(portfolio, action, index, bar, price)
        return None

    def _enter(
        self,
        portfolio: Portfolio,
        action: Action,
        index: int,
        bar: PriceBar,
        price: float,
    ) -> None:
        quantity = portfolio.size_order(price, self.config.position_fraction)
        if quantity <= 0:
            logger.debug(
                f"Skipping {action.value} on bar {index}: cash {portfolio.cash:.2f} "
                f"buys no whole units at {price:.4f}"
            )
            return

        if action == Action.BUY:
            portfolio.open_long(index, bar.timestamp, price, quantity)
        else:
            portfolio.open_short(index, bar.timestamp, price, quantity)
