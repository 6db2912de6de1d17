"""
Parallel comparison of independent backtests over one price series.

Each strategy is supplied as a zero-argument factory so that every run
builds its own sources (and random generators) inside its worker thread.
Runs share only read-only inputs: the bars and the indicator series, which
are materialized once before any run starts.

Example:
    >>> comparison = compare_strategies(
    ...     bars,
    ...     {
    ...         "rsi": lambda: StrategyEnsemble([RSIRule()], name="rsi"),
    ...         "consensus": lambda: StrategyEnsemble(
    ...             [RSIRule(), MACDCrossoverRule(), BollingerBandsRule()], name="consensus"
    ...         ),
    ...     },
    ...     provider=PolarsIndicatorProvider(),
    ...     timeout=30.0,
    ... )
    >>> comparison.ranking("sharpe_ratio")
    [('consensus', 1.42), ('rsi', 0.87)]
"""

import time
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any

import polars as pl
import structlog

from libs.common.exceptions import BacktestCancelled, ConfigurationError
from strategies.backtest.config import BacktestConfig
from strategies.backtest.engine import BacktestEngine
from strategies.backtest.features import PriceBar
from strategies.backtest.indicators import IndicatorCache, IndicatorProvider
from strategies.backtest.result import BacktestResult, BacktestRun
from strategies.ensemble.ensemble import StrategyEnsemble

logger = structlog.get_logger(__name__)

EnsembleFactory = Callable[[], StrategyEnsemble]


def deadline_check(timeout: float) -> Callable[[], None]:
    """
    Build a cancel-check callable for a cooperative timeout.

    The returned callable raises BacktestCancelled once ``timeout`` seconds
    (monotonic clock) have passed since this function was called.
    """
    if timeout <= 0:
        raise ConfigurationError(f"timeout must be > 0, got {timeout}")

    deadline = time.monotonic() + timeout

    def check() -> None:
        if time.monotonic() >= deadline:
            raise BacktestCancelled(f"Backtest exceeded timeout of {timeout:.1f}s")

    return check


@dataclass(frozen=True)
class ComparisonResult:
    """
    Outcome of a strategy comparison.

    Attributes:
        runs: Completed runs by strategy name, in submission order
        errors: Failed runs by strategy name (only with return_exceptions=True)
    """

    runs: dict[str, BacktestRun] = field(default_factory=dict)
    errors: dict[str, BaseException] = field(default_factory=dict)

    @property
    def results(self) -> dict[str, BacktestResult]:
        return {name: run.result for name, run in self.runs.items()}

    def ranking(self, metric: str = "sharpe_ratio", descending: bool = True) -> list[tuple[str, float]]:
        """Strategy names ordered by a BacktestResult metric."""
        if metric not in BacktestResult.__dataclass_fields__:
            raise ConfigurationError(f"Unknown result metric: {metric!r}")
        scored = [(name, float(getattr(run.result, metric))) for name, run in self.runs.items()]
        return sorted(scored, key=lambda item: item[1], reverse=descending)

    def best(self, metric: str = "sharpe_ratio") -> str | None:
        ranking = self.ranking(metric)
        return ranking[0][0] if ranking else None

    def summary_frame(self) -> pl.DataFrame:
        """One row of headline metrics per completed strategy."""
        rows = [
            {
                "strategy": name,
                "total_return": run.result.total_return,
                "annualized_return": run.result.annualized_return,
                "sharpe_ratio": run.result.sharpe_ratio,
                "max_drawdown": run.result.max_drawdown,
                "win_rate": run.result.win_rate,
                "total_trades": run.result.total_trades,
                "profit_factor": run.result.profit_factor,
                "final_equity": run.result.final_equity,
            }
            for name, run in self.runs.items()
        ]
        return pl.DataFrame(rows)


def _run_one(
    factory: EnsembleFactory,
    bars: Sequence[PriceBar],
    indicators: Mapping[str, Any],
    config: BacktestConfig,
    cancel_check: Callable[[], None] | None,
) -> BacktestRun:
    engine = BacktestEngine(factory(), config)
    return engine.run(bars, indicators=indicators, cancel_check=cancel_check)


def compare_strategies(
    bars: Sequence[PriceBar],
    factories: Mapping[str, EnsembleFactory],
    config: BacktestConfig | None = None,
    indicators: Mapping[str, Any] | None = None,
    provider: IndicatorProvider | None = None,
    cache: IndicatorCache | None = None,
    max_workers: int | None = None,
    timeout: float | None = None,
    return_exceptions: bool = False,
) -> ComparisonResult:
    """
    Backtest several strategies over the same series in parallel.

    Args:
        bars: Price series shared read-only by every run
        factories: Strategy name -> zero-argument factory returning an
                   ensemble
        config: Run configuration shared by every run
        indicators: Precomputed indicator series
        provider: Indicator provider, computed once for all runs
        cache: Indicator cache (default: a fresh one for this comparison)
        max_workers: Thread pool size (default: executor default)
        timeout: Cooperative per-comparison timeout in seconds; runs still
                 going when it expires raise BacktestCancelled
        return_exceptions: Collect failures in ``errors`` instead of raising

    Returns:
        ComparisonResult with one BacktestRun per successful strategy

    Raises:
        ConfigurationError: If no factories are given
        Exception: The first failing run's exception (in ``factories`` order)
                   once every run has settled, unless return_exceptions=True
    """
    if not factories:
        raise ConfigurationError("compare_strategies needs at least one strategy factory")

    config = config or BacktestConfig()
    config.validate()
    shared = BacktestEngine.prepare_indicators(
        bars, indicators, provider, cache if cache is not None else IndicatorCache()
    )
    frozen_indicators = {name: tuple(values) for name, values in shared.items()}
    cancel_check = deadline_check(timeout) if timeout is not None else None

    logger.info(
        "comparison_started",
        strategies=list(factories),
        bars=len(bars),
        indicators=sorted(frozen_indicators),
        max_workers=max_workers,
        timeout=timeout,
    )

    futures: dict[str, Future[BacktestRun]] = {}
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="backtest") as pool:
        for name, factory in factories.items():
            futures[name] = pool.submit(
                _run_one, factory, bars, frozen_indicators, config, cancel_check
            )
        wait(futures.values())

    runs: dict[str, BacktestRun] = {}
    errors: dict[str, BaseException] = {}
    for name, future in futures.items():
        error = future.exception()
        if error is not None:
            errors[name] = error
            logger.warning(
                "comparison_run_failed",
                strategy=name,
                error_type=type(error).__name__,
                error=str(error),
            )
        else:
            runs[name] = future.result()

    logger.info(
        "comparison_completed",
        completed=list(runs),
        failed=list(errors),
        best=ComparisonResult(runs=runs).best(),
    )

    if errors and not return_exceptions:
        raise next(iter(errors.values()))

    return ComparisonResult(runs=runs, errors=errors)


def compare_with_members(
    bars: Sequence[PriceBar],
    factory: Callable[[], StrategyEnsemble],
    config: BacktestConfig | None = None,
    indicators: Mapping[str, Any] | None = None,
    provider: IndicatorProvider | None = None,
    cache: IndicatorCache | None = None,
    max_workers: int | None = None,
    timeout: float | None = None,
    return_exceptions: bool = False,
) -> ComparisonResult:
    """
    Backtest an ensemble alongside each of its members on their own.

    Every member runs as a single-source ensemble built from a fresh call to
    ``factory``, so members never share state with the full ensemble run.

    Returns:
        ComparisonResult keyed by the ensemble's name and each member's name
    """
    template = factory()
    member_names = [source.name for source in template.sources]
    if template.name in member_names:
        raise ConfigurationError(
            f"Ensemble name '{template.name}' collides with a member name; rename the ensemble"
        )

    def member_factory(position: int) -> EnsembleFactory:
        def build() -> StrategyEnsemble:
            return StrategyEnsemble.wrap(factory().sources[position])

        return build

    factories: dict[str, EnsembleFactory] = {template.name: factory}
    for position, name in enumerate(member_names):
        factories[name] = member_factory(position)

    return compare_strategies(
        bars,
        factories,
        config=config,
        indicators=indicators,
        provider=provider,
        cache=cache,
        max_workers=max_workers,
        timeout=timeout,
        return_exceptions=return_exceptions,
    )
