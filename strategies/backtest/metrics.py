"""
Performance metrics for backtesting evaluation.

This module provides the trading performance metrics derived from a completed
backtest. Curve metrics take the equity curve (one value per processed bar);
trade metrics take the realized profit/loss of each closed trade. Every
function returns a plain float and never NaN: degenerate inputs map to a
documented sentinel instead.

Educational Note:
- Sharpe Ratio: Risk-adjusted return (higher is better)
- Max Drawdown: Largest peak-to-trough decline (lower is better)
- Win Rate: Percentage of profitable trades
- Profit Factor: Ratio of gross profits to gross losses
"""

from typing import cast

import numpy as np
import polars as pl

STD_EPSILON = 1e-12


def calculate_period_returns(equity: pl.Series) -> pl.Series:
    """
    Per-period simple returns of an equity curve.

    r_t = E_t / E_{t-1} - 1, for t = 1..N

    Args:
        equity: Equity curve E[0..N]

    Returns:
        Series of N returns (empty for fewer than two points). A period whose
        previous equity is not positive has return 0.

    Example:
        >>> returns = calculate_period_returns(pl.Series([100.0, 110.0, 99.0]))
        >>> returns.to_list()
        [0.1, -0.1]
    """
    if len(equity) < 2:
        return pl.Series("returns", [], dtype=pl.Float64)

    frame = pl.DataFrame({"equity": equity.cast(pl.Float64)})
    previous = pl.col("equity").shift(1)
    returns = frame.select(
        pl.when(previous > 0)
        .then(pl.col("equity") / previous - 1.0)
        .otherwise(pl.lit(0.0))
        .alias("returns")
    )
    return returns["returns"].slice(1)


def calculate_total_return(equity: pl.Series, initial_capital: float | None = None) -> float:
    """
    Calculate total return over the equity curve.

    Total Return = E[N] / Capital - 1

    Args:
        equity: Equity curve E[0..N]
        initial_capital: Starting capital (default: E[0]). Pass it when E[0]
                         already reflects bar-0 fills, so their commission counts.

    Returns:
        Total return as decimal (0.25 = 25%); 0.0 for an empty curve or a
        non-positive starting capital

    Example:
        >>> total = calculate_total_return(pl.Series([100.0, 90.0, 120.0]))
        >>> print(f"Total Return: {total:.2%}")
        Total Return: 20.00%
    """
    if len(equity) == 0:
        return 0.0

    base = float(equity[0]) if initial_capital is None else float(initial_capital)
    if base <= 0:
        return 0.0

    return float(equity[-1]) / base - 1.0


def calculate_annualized_return(
    equity: pl.Series,
    periods_per_year: int = 252,
    initial_capital: float | None = None,
) -> float:
    """
    Calculate annualized return.

    Annualized Return = (1 + Total Return) ^ (periods_per_year / N) - 1

    where N is the number of periods (one less than the number of equity
    points).

    Args:
        equity: Equity curve E[0..N]
        periods_per_year: Trading periods per year (default: 252 days)
        initial_capital: Starting capital (default: E[0])

    Returns:
        Annualized return as decimal (0.15 = 15% per year)

    Example:
        >>> equity = pl.Series([100.0 * 1.001 ** i for i in range(101)])
        >>> ann_ret = calculate_annualized_return(equity)
        >>> print(f"Annualized: {ann_ret:.2%}")
        Annualized: 28.64%

    Notes:
        - N = 0 (single bar) gives 0.0
        - A total loss (1 + total return <= 0) gives -1.0
        - Assumes constant compounding
    """
    num_periods = len(equity) - 1
    if num_periods <= 0:
        return 0.0

    growth = 1.0 + calculate_total_return(equity, initial_capital)
    if growth <= 0:
        return -1.0

    return float(growth ** (periods_per_year / num_periods) - 1.0)


def calculate_sharpe_ratio(
    returns: pl.Series,
    risk_free_rate: float = 0.0,
    periods_per_year: int = 252,
) -> float:
    """
    Calculate annualized Sharpe ratio.

    Sharpe = (Mean Return - Risk Free Rate / periods) / Std Dev of Returns * sqrt(periods)

    Args:
        returns: Per-period returns series (see calculate_period_returns)
        risk_free_rate: Annual risk-free rate (default: 0.0)
        periods_per_year: Trading periods per year (default: 252)

    Returns:
        Annualized Sharpe ratio; 0.0 when the standard deviation is zero or
        undefined (fewer than two returns)

    Example:
        >>> returns = pl.Series([0.01, -0.005, 0.02, 0.01])
        >>> sharpe = calculate_sharpe_ratio(returns)
        >>> print(f"Sharpe: {sharpe:.2f}")
        Sharpe: 15.56

    Notes:
        - Uses the population standard deviation (ddof=0)
        - Returns should be in decimal form (0.01 = 1%)
        - Sharpe > 1 is good, > 2 is very good, > 3 is exceptional
    """
    if len(returns) < 2:
        return 0.0

    mean_return = returns.mean()
    std_return = returns.std(ddof=0)

    if mean_return is None or std_return is None:
        return 0.0

    # Type narrowing for mypy (Polars returns should be numeric for numeric series)
    mean_val = cast(float, mean_return)
    std_val = cast(float, std_return)

    if std_val <= STD_EPSILON:
        return 0.0

    period_rf = risk_free_rate / periods_per_year
    sharpe = (mean_val - period_rf) / std_val * np.sqrt(periods_per_year)

    return float(sharpe)


def calculate_max_drawdown(equity: pl.Series) -> float:
    """
    Calculate maximum drawdown from an equity curve.

    Max Drawdown = max over j of (Peak_j - E_j) / Peak_j, Peak_j = max(E[0..j])

    Args:
        equity: Equity curve E[0..N]

    Returns:
        Maximum drawdown as a positive decimal (0.15 = 15% decline)

    Example:
        >>> mdd = calculate_max_drawdown(pl.Series([100.0, 120.0, 90.0, 110.0]))
        >>> print(f"Max Drawdown: {mdd:.2%}")
        Max Drawdown: 25.00%

    Notes:
        - Always zero or positive
        - Points whose running peak is not positive are ignored
    """
    if len(equity) == 0:
        return 0.0

    frame = pl.DataFrame({"equity": equity.cast(pl.Float64)})
    peak = pl.col("equity").cum_max()
    drawdown = frame.select(
        pl.when(peak > 0)
        .then((peak - pl.col("equity")) / peak)
        .otherwise(pl.lit(0.0))
        .alias("drawdown")
    )["drawdown"]

    max_dd = drawdown.max()

    # Type narrowing for mypy
    if max_dd is not None:
        return max(0.0, float(cast(float, max_dd)))
    return 0.0


def calculate_win_rate(pnl: pl.Series) -> float:
    """
    Calculate fraction of profitable trades.

    Win Rate = Number of trades with pnl > 0 / Total trades

    Args:
        pnl: Realized profit/loss per closed trade

    Returns:
        Win rate as decimal (0.55 = 55%); 0.0 with no trades

    Example:
        >>> win_rate = calculate_win_rate(pl.Series([20.0, -5.0, 10.0, 0.0, -1.0]))
        >>> print(f"Win Rate: {win_rate:.1%}")
        Win Rate: 40.0%
    """
    if len(pnl) == 0:
        return 0.0

    winning_trades = (pnl > 0).sum()
    return float(winning_trades) / len(pnl)


def calculate_profit_factor(pnl: pl.Series) -> float:
    """
    Calculate profit factor (gross profits / gross losses).

    Profit Factor = Sum of winning pnl / Abs(Sum of losing pnl)

    Args:
        pnl: Realized profit/loss per closed trade

    Returns:
        Profit factor (1.5 means $1.50 profit per $1 loss)

    Example:
        >>> pf = calculate_profit_factor(pl.Series([20.0, -10.0, 30.0, -10.0]))
        >>> print(f"Profit Factor: {pf:.2f}")
        Profit Factor: 2.50

    Notes:
        - inf when there are winners and no losers
        - 0.0 with no trades, only losers, or only break-even trades
        - < 1.0 means losing strategy
    """
    if len(pnl) == 0:
        return 0.0

    gains = float(pnl.filter(pnl > 0).sum())
    losses = float(pnl.filter(pnl < 0).sum())

    if losses == 0:
        # All gains, no losses
        return float("inf") if gains > 0 else 0.0

    return gains / abs(losses)


def calculate_average_win(pnl: pl.Series) -> float:
    """Mean pnl of winning trades; 0.0 when there are none."""
    winners = pnl.filter(pnl > 0)
    if len(winners) == 0:
        return 0.0
    return float(cast(float, winners.mean()))


def calculate_average_loss(pnl: pl.Series) -> float:
    """Mean pnl of losing trades (a negative number); 0.0 when there are none."""
    losers = pnl.filter(pnl < 0)
    if len(losers) == 0:
        return 0.0
    return float(cast(float, losers.mean()))
