"""
Backtesting framework for strategy ensembles.

This module simulates an ensemble's decisions bar by bar over a historical
price series with a single-instrument portfolio, then derives standard
performance metrics from the equity curve and closed trades.

Key Features:
- Strict point-in-time feature vectors (no look-ahead)
- Long-only or long/short, same-bar close or next-bar open fills
- Flat and proportional commissions, whole-unit position sizing
- Degraded-bar handling for missing indicator values
- Parallel comparison of independent strategies

Components:
- features: PriceBar, FeatureVector, warm-up detection
- indicators: Indicator provider protocol, polars reference provider, cache
- config / settings: Run configuration and environment defaults
- portfolio: Cash, position and trade accounting
- metrics: Performance metric calculations
- result: BacktestResult, BacktestRun, PerformanceAnalyzer
- engine: BacktestEngine
- comparison: Parallel multi-strategy runs

Example:
    >>> from strategies.backtest import BacktestConfig, BacktestEngine
    >>> engine = BacktestEngine(ensemble, BacktestConfig(initial_capital=10_000))
    >>> run = engine.run(bars, provider=PolarsIndicatorProvider())
    >>> print(f"Sharpe Ratio: {run.result.sharpe_ratio:.2f}")
"""

from strategies.backtest.comparison import (
    ComparisonResult,
    compare_strategies,
    compare_with_members,
    deadline_check,
)
from strategies.backtest.config import BacktestConfig, FillPolicy
from strategies.backtest.engine import BacktestEngine
from strategies.backtest.features import DegradedBarEvent, FeatureVector, PriceBar
from strategies.backtest.indicators import (
    IndicatorCache,
    IndicatorProvider,
    PolarsIndicatorProvider,
)
from strategies.backtest.portfolio import Portfolio, Position, PositionState, Trade
from strategies.backtest.result import BacktestResult, BacktestRun, PerformanceAnalyzer

__version__ = "0.1.0"

__all__ = [
    "BacktestConfig",
    "FillPolicy",
    "BacktestEngine",
    "PriceBar",
    "FeatureVector",
    "DegradedBarEvent",
    "IndicatorProvider",
    "IndicatorCache",
    "PolarsIndicatorProvider",
    "Portfolio",
    "Position",
    "PositionState",
    "Trade",
    "BacktestResult",
    "BacktestRun",
    "PerformanceAnalyzer",
    "ComparisonResult",
    "compare_strategies",
    "compare_with_members",
    "deadline_check",
]
