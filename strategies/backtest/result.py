"""
Backtest results and the performance analyzer.

``PerformanceAnalyzer`` turns a completed run (equity curve plus closed
trades) into an immutable ``BacktestResult``. ``BacktestRun`` bundles that
result with the raw trade list, equity curve and degraded-bar events for
external reporting.
"""

from collections.abc import Sequence
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any

import polars as pl

from strategies.backtest import metrics
from strategies.backtest.features import DegradedBarEvent
from strategies.backtest.portfolio import Trade


@dataclass(frozen=True)
class BacktestResult:
    """
    Summary metrics of one backtest run.

    Attributes:
        total_return: final equity / initial_capital - 1
        annualized_return: Compounded to ``periods_per_year``
        sharpe_ratio: Annualized; 0.0 when returns have no variance
        max_drawdown: Largest peak-to-trough decline, positive fraction
        win_rate: Winning trades / closed trades; 0.0 with no trades
        total_trades: Closed trades (an open position left at the end is excluded)
        profit_factor: Gross profit / gross loss; inf with only winners
        avg_win: Mean pnl of winning trades (0.0 if none)
        avg_loss: Mean pnl of losing trades, negative (0.0 if none)
        winning_trades, losing_trades: Counts by pnl sign
        initial_capital: Starting cash
        final_equity: Last point of the equity curve
        total_commission: All commission charged, including an open position's entry
        degraded_bars: Bars traded as Hold because an indicator was missing
        bars_processed: Length of the equity curve
        start, end: Timestamps of the first and last processed bar
    """

    total_return: float
    annualized_return: float
    sharpe_ratio: float
    max_drawdown: float
    win_rate: float
    total_trades: int
    profit_factor: float
    avg_win: float
    avg_loss: float
    winning_trades: int = 0
    losing_trades: int = 0
    initial_capital: float = 0.0
    final_equity: float = 0.0
    total_commission: float = 0.0
    degraded_bars: int = 0
    bars_processed: int = 0
    start: date | datetime | None = None
    end: date | datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def summary(self) -> str:
        """
        Human-readable multi-line report.

        Example:
            >>> print(result.summary())
            Backtest 2024-01-02 → 2024-12-31 (252 bars)
              Total return:       12.34%
              ...
        """
        profit_factor = "inf" if self.profit_factor == float("inf") else f"{self.profit_factor:.2f}"
        lines = [
            f"Backtest {self.start} → {self.end} ({self.bars_processed} bars)",
            f"  Initial capital:    {self.initial_capital:,.2f}",
            f"  Final equity:       {self.final_equity:,.2f}",
            f"  Total return:       {self.total_return:.2%}",
            f"  Annualized return:  {self.annualized_return:.2%}",
            f"  Sharpe ratio:       {self.sharpe_ratio:.2f}",
            f"  Max drawdown:       {self.max_drawdown:.2%}",
            f"  Trades:             {self.total_trades} "
            f"({self.winning_trades} won, {self.losing_trades} lost)",
            f"  Win rate:           {self.win_rate:.1%}",
            f"  Profit factor:      {profit_factor}",
            f"  Avg win / loss:     {self.avg_win:,.2f} / {self.avg_loss:,.2f}",
            f"  Commission:         {self.total_commission:,.2f}",
        ]
        if self.degraded_bars:
            lines.append(f"  Degraded bars:      {self.degraded_bars}")
        return "\n".join(lines)


class PerformanceAnalyzer:
    """
    Derive a BacktestResult from an equity curve and closed trades.

    Example:
        >>> analyzer = PerformanceAnalyzer(periods_per_year=252)
        >>> result = analyzer.analyze([100.0, 120.0, 90.0, 110.0], trades=[])
        >>> result.max_drawdown
        0.25
    """

    def __init__(self, periods_per_year: int = 252, risk_free_rate: float = 0.0) -> None:
        self.periods_per_year = periods_per_year
        self.risk_free_rate = risk_free_rate

    def analyze(
        self,
        equity_curve: Sequence[float],
        trades: Sequence[Trade],
        initial_capital: float | None = None,
        total_commission: float | None = None,
        degraded_bars: int = 0,
        start: date | datetime | None = None,
        end: date | datetime | None = None,
    ) -> BacktestResult:
        equity = pl.Series("equity", list(equity_curve), dtype=pl.Float64)
        pnl = pl.Series("pnl", [trade.pnl for trade in trades], dtype=pl.Float64)
        returns = metrics.calculate_period_returns(equity)

        if initial_capital is None:
            initial_capital = float(equity[0]) if len(equity) else 0.0
        if total_commission is None:
            total_commission = sum(trade.commission for trade in trades)

        return BacktestResult(
            total_return=metrics.calculate_total_return(equity, initial_capital),
            annualized_return=metrics.calculate_annualized_return(
                equity, self.periods_per_year, initial_capital
            ),
            sharpe_ratio=metrics.calculate_sharpe_ratio(
                returns, self.risk_free_rate, self.periods_per_year
            ),
            max_drawdown=metrics.calculate_max_drawdown(equity),
            win_rate=metrics.calculate_win_rate(pnl),
            total_trades=len(trades),
            profit_factor=metrics.calculate_profit_factor(pnl),
            avg_win=metrics.calculate_average_win(pnl),
            avg_loss=metrics.calculate_average_loss(pnl),
            winning_trades=sum(1 for trade in trades if trade.pnl > 0),
            losing_trades=sum(1 for trade in trades if trade.pnl < 0),
            initial_capital=float(initial_capital),
            final_equity=float(equity[-1]) if len(equity) else float(initial_capital),
            total_commission=float(total_commission),
            degraded_bars=degraded_bars,
            bars_processed=len(equity),
            start=start,
            end=end,
        )


_TRADE_SCHEMA = {
    "entry_index": pl.Int64,
    "exit_index": pl.Int64,
    "side": pl.Utf8,
    "quantity": pl.Int64,
    "entry_price": pl.Float64,
    "exit_price": pl.Float64,
    "commission": pl.Float64,
    "pnl": pl.Float64,
    "exit_reason": pl.Utf8,
}


@dataclass(frozen=True)
class BacktestRun:
    """
    Everything a completed run produced.

    Attributes:
        result: Summary metrics
        trades: Closed trades in chronological order
        equity_curve: Equity after each processed bar
        timestamps: Timestamp of each processed bar
        degraded_events: Bars traded as Hold because of missing indicators
        warmup_bars: Leading bars skipped for trading
        run_id: Correlation id used in this run's log records
    """

    result: BacktestResult
    trades: tuple[Trade, ...] = ()
    equity_curve: tuple[float, ...] = ()
    timestamps: tuple[date | datetime, ...] = ()
    degraded_events: tuple[DegradedBarEvent, ...] = ()
    warmup_bars: int = 0
    run_id: str | None = field(default=None, compare=False)

    def trades_frame(self) -> pl.DataFrame:
        """Trades as a polars DataFrame (one row per trade)."""
        columns: dict[str, list[Any]] = {
            "entry_timestamp": [t.entry_timestamp for t in self.trades],
            "exit_timestamp": [t.exit_timestamp for t in self.trades],
        }
        for name in _TRADE_SCHEMA:
            columns[name] = [getattr(t, name) for t in self.trades]
        return pl.DataFrame(columns, schema_overrides=_TRADE_SCHEMA)

    def equity_frame(self) -> pl.DataFrame:
        """Equity curve as a polars DataFrame with timestamp, equity and period return."""
        equity = pl.Series("equity", list(self.equity_curve), dtype=pl.Float64)
        returns = metrics.calculate_period_returns(equity)
        return pl.DataFrame(
            {
                "timestamp": list(self.timestamps),
                "equity": equity,
                "return": [0.0, *returns.to_list()] if len(equity) else [],
            },
            schema_overrides={"return": pl.Float64},
        )
