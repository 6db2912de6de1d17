"""
Tests for simulated portfolio accounting.
"""

from datetime import date

import pytest

from libs.common.exceptions import ConfigurationError
from strategies.backtest.portfolio import Portfolio, PositionState, Trade

DAY0 = date(2024, 1, 1)
DAY1 = date(2024, 1, 2)
DAY2 = date(2024, 1, 3)


class TestPortfolioInit:
    """Test construction and validation."""

    def test_starts_flat_with_all_cash(self) -> None:
        portfolio = Portfolio(initial_capital=10_000.0)

        assert portfolio.cash == 10_000.0
        assert portfolio.state is PositionState.FLAT
        assert portfolio.quantity == 0
        assert portfolio.trades == []
        assert portfolio.equity_curve == []

    @pytest.mark.parametrize("capital", [0.0, -100.0])
    def test_non_positive_capital_raises(self, capital: float) -> None:
        with pytest.raises(ConfigurationError, match="initial_capital"):
            Portfolio(initial_capital=capital)

    def test_negative_commission_raises(self) -> None:
        with pytest.raises(ConfigurationError, match="Commission"):
            Portfolio(initial_capital=100.0, commission=-1.0)


class TestSizing:
    """Test order sizing."""

    def test_all_cash(self) -> None:
        assert Portfolio(initial_capital=100.0).size_order(10.0) == 10

    def test_rounds_down_to_whole_units(self) -> None:
        assert Portfolio(initial_capital=105.0).size_order(10.0) == 10

    def test_reserves_commission(self) -> None:
        portfolio = Portfolio(initial_capital=1_000.0, commission=1.0, commission_rate=0.001)

        assert portfolio.size_order(10.0) == 99

    def test_fraction_of_cash(self) -> None:
        assert Portfolio(initial_capital=1_000.0).size_order(10.0, fraction=0.25) == 25

    def test_unaffordable_is_zero(self) -> None:
        portfolio = Portfolio(initial_capital=5.0, commission=10.0)

        assert portfolio.size_order(1.0) == 0
        assert portfolio.size_order(0.0) == 0


class TestLongRoundTrip:
    """Test Flat → Long → Flat."""

    def test_profitable_trade_without_costs(self) -> None:
        portfolio = Portfolio(initial_capital=100.0)

        portfolio.open_long(0, DAY0, price=10.0, quantity=10)
        assert portfolio.state is PositionState.LONG
        assert portfolio.cash == pytest.approx(0.0)
        assert portfolio.mark(10.0) == pytest.approx(100.0)

        trade = portfolio.close(1, DAY1, price=12.0)

        assert trade.side == "long"
        assert trade.quantity == 10
        assert trade.pnl == pytest.approx(20.0)
        assert trade.return_pct == pytest.approx(0.2)
        assert trade.bars_held == 1
        assert trade.exit_reason == "signal"
        assert portfolio.state is PositionState.FLAT
        assert portfolio.cash == pytest.approx(120.0)

    def test_commission_is_included_in_pnl(self) -> None:
        portfolio = Portfolio(initial_capital=1_000.0, commission=1.0, commission_rate=0.001)

        portfolio.open_long(0, DAY0, price=10.0, quantity=99)
        trade = portfolio.close(1, DAY1, price=12.0)

        assert trade.commission == pytest.approx(1.99 + 2.188)
        assert trade.pnl == pytest.approx(198.0 - 1.99 - 2.188)
        assert portfolio.total_commission == pytest.approx(trade.commission)

    def test_cash_changes_by_sum_of_trade_pnl(self) -> None:
        portfolio = Portfolio(initial_capital=1_000.0, commission=2.0, commission_rate=0.0005)

        for entry_bar, entry, exit_ in [(0, 10.0, 11.0), (2, 11.0, 9.5), (4, 9.0, 9.9)]:
            qty = portfolio.size_order(entry)
            portfolio.open_long(entry_bar, DAY0, price=entry, quantity=qty)
            portfolio.close(entry_bar + 1, DAY1, price=exit_)

        total_pnl = sum(trade.pnl for trade in portfolio.trades)
        assert portfolio.cash - 1_000.0 == pytest.approx(total_pnl)
        assert sum(t.commission for t in portfolio.trades) == pytest.approx(
            portfolio.total_commission
        )


class TestShortRoundTrip:
    """Test Flat → Short → Flat."""

    def test_short_profits_when_price_falls(self) -> None:
        portfolio = Portfolio(initial_capital=1_000.0)

        portfolio.open_short(0, DAY0, price=50.0, quantity=10)
        assert portfolio.state is PositionState.SHORT
        assert portfolio.quantity == -10
        assert portfolio.cash == pytest.approx(1_500.0)
        assert portfolio.market_value(40.0) == pytest.approx(-400.0)
        assert portfolio.mark(40.0) == pytest.approx(1_100.0)

        trade = portfolio.close(2, DAY2, price=40.0)

        assert trade.side == "short"
        assert trade.quantity == 10
        assert trade.pnl == pytest.approx(100.0)
        assert portfolio.cash == pytest.approx(1_100.0)

    def test_short_loses_when_price_rises(self) -> None:
        portfolio = Portfolio(initial_capital=1_000.0, commission=1.0)

        portfolio.open_short(0, DAY0, price=50.0, quantity=10)
        trade = portfolio.close(1, DAY1, price=55.0)

        assert trade.pnl == pytest.approx(-50.0 - 2.0)
        assert portfolio.cash == pytest.approx(1_000.0 + trade.pnl)


class TestTransitions:
    """Test illegal state transitions."""

    def test_open_twice_raises(self) -> None:
        portfolio = Portfolio(initial_capital=100.0)
        portfolio.open_long(0, DAY0, price=10.0, quantity=1)

        with pytest.raises(RuntimeError, match="already long"):
            portfolio.open_short(1, DAY1, price=10.0, quantity=1)

    def test_close_when_flat_raises(self) -> None:
        with pytest.raises(RuntimeError, match="flat"):
            Portfolio(initial_capital=100.0).close(0, DAY0, price=10.0)

    def test_zero_quantity_raises(self) -> None:
        with pytest.raises(ValueError, match="zero units"):
            Portfolio(initial_capital=100.0).open_long(0, DAY0, price=10.0, quantity=0)

    def test_forced_close_reason(self) -> None:
        portfolio = Portfolio(initial_capital=100.0)
        portfolio.open_long(0, DAY0, price=10.0, quantity=5)

        trade = portfolio.close(3, DAY2, price=9.0, reason="end_of_data")

        assert trade.exit_reason == "end_of_data"
        assert trade.pnl == pytest.approx(-5.0)


class TestMarking:
    """Test equity curve recording."""

    def test_mark_appends_equity(self) -> None:
        portfolio = Portfolio(initial_capital=100.0)

        portfolio.mark(10.0)
        portfolio.open_long(1, DAY1, price=10.0, quantity=10)
        portfolio.mark(11.0)
        portfolio.mark(9.0)

        assert portfolio.equity_curve == pytest.approx([100.0, 110.0, 90.0])

    def test_trade_is_immutable(self) -> None:
        portfolio = Portfolio(initial_capital=100.0)
        portfolio.open_long(0, DAY0, price=10.0, quantity=1)
        trade = portfolio.close(1, DAY1, price=10.0)

        assert isinstance(trade, Trade)
        with pytest.raises(AttributeError):
            trade.pnl = 1.0  # type: ignore[misc]
