"""
Simulated portfolio accounting for a single instrument.

The portfolio holds cash and at most one open position. It is mutated only by
the backtest engine, one bar at a time, through four transitions:

- open_long:  Flat → Long   (cash -= price × qty + commission)
- open_short: Flat → Short  (cash += price × qty − commission)
- close:      Long/Short → Flat, emitting a Trade
- mark:       record equity = cash + qty × close for the bar

Commissions are charged on every fill and included in each Trade's pnl, so
the sum of trade commissions equals ``total_commission`` whenever no position
is open.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Literal

from libs.common.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class PositionState(str, Enum):
    """Portfolio state machine states."""

    FLAT = "flat"
    LONG = "long"
    SHORT = "short"


@dataclass(frozen=True)
class Position:
    """
    An open position.

    Attributes:
        quantity: Units held; positive = long, negative = short
        avg_cost: Fill price of the entry
        entry_index: Bar index of the entry fill
        entry_timestamp: Timestamp of the entry bar
        entry_commission: Commission charged on entry
    """

    quantity: int
    avg_cost: float
    entry_index: int
    entry_timestamp: date | datetime
    entry_commission: float

    @property
    def side(self) -> Literal["long", "short"]:
        return "long" if self.quantity > 0 else "short"


@dataclass(frozen=True)
class Trade:
    """
    A closed round trip.

    Attributes:
        entry_index, exit_index: Bar indices of the two fills
        entry_timestamp, exit_timestamp: Timestamps of those bars
        side: "long" or "short"
        quantity: Units traded (always positive)
        entry_price, exit_price: Fill prices
        commission: Entry plus exit commission
        pnl: Realized profit/loss net of both commissions
        exit_reason: "signal", or "end_of_data" for a forced close
    """

    entry_index: int
    exit_index: int
    entry_timestamp: date | datetime
    exit_timestamp: date | datetime
    side: Literal["long", "short"]
    quantity: int
    entry_price: float
    exit_price: float
    commission: float
    pnl: float
    exit_reason: Literal["signal", "end_of_data"] = "signal"

    @property
    def return_pct(self) -> float:
        """pnl as a fraction of the entry notional."""
        notional = self.entry_price * self.quantity
        if notional == 0:
            return 0.0
        return self.pnl / notional

    @property
    def bars_held(self) -> int:
        return self.exit_index - self.entry_index


class Portfolio:
    """
    Cash, at most one open position, closed trades, and the equity curve.

    Example:
        >>> portfolio = Portfolio(initial_capital=100.0)
        >>> qty = portfolio.size_order(price=10.0)
        >>> portfolio.open_long(0, day0, price=10.0, quantity=qty)
        >>> portfolio.mark(10.0)
        100.0
        >>> trade = portfolio.close(1, day1, price=12.0)
        >>> trade.pnl
        20.0
    """

    def __init__(
        self,
        initial_capital: float,
        commission: float = 0.0,
        commission_rate: float = 0.0,
    ) -> None:
        if initial_capital <= 0:
            raise ConfigurationError(f"initial_capital must be > 0, got {initial_capital}")
        if commission < 0 or commission_rate < 0:
            raise ConfigurationError(
                f"Commission must be >= 0, got commission={commission}, rate={commission_rate}"
            )

        self.initial_capital = float(initial_capital)
        self.commission = float(commission)
        self.commission_rate = float(commission_rate)

        self.cash = float(initial_capital)
        self.position: Position | None = None
        self.trades: list[Trade] = []
        self.equity_curve: list[float] = []
        self.total_commission = 0.0

    @property
    def state(self) -> PositionState:
        if self.position is None:
            return PositionState.FLAT
        return PositionState.LONG if self.position.quantity > 0 else PositionState.SHORT

    @property
    def quantity(self) -> int:
        return 0 if self.position is None else self.position.quantity

    def fill_commission(self, price: float, quantity: int) -> float:
        """Commission for one fill: flat amount plus rate × notional."""
        return self.commission + self.commission_rate * price * abs(quantity)

    def size_order(self, price: float, fraction: float = 1.0) -> int:
        """
        Whole units affordable with ``fraction`` of current cash.

        quantity = floor((cash × fraction − commission) / (price × (1 + rate)))

        Returns 0 (never negative) when nothing is affordable.
        """
        if price <= 0:
            return 0
        budget = self.cash * fraction - self.commission
        quantity = math.floor(budget / (price * (1.0 + self.commission_rate)))
        return max(quantity, 0)

    def open_long(
        self, index: int, timestamp: date | datetime, price: float, quantity: int
    ) -> Position:
        """Buy ``quantity`` units at ``price``; the portfolio must be flat."""
        return self._open(index, timestamp, price, quantity)

    def open_short(
        self, index: int, timestamp: date | datetime, price: float, quantity: int
    ) -> Position:
        """Sell short ``quantity`` units at ``price``; the portfolio must be flat."""
        return self._open(index, timestamp, price, -quantity)

    def close(
        self,
        index: int,
        timestamp: date | datetime,
        price: float,
        reason: Literal["signal", "end_of_data"] = "signal",
    ) -> Trade:
        """
        Close the open position at ``price`` and record the Trade.

        Raises:
            RuntimeError: If there is no open position
        """
        position = self.position
        if position is None:
            raise RuntimeError("Cannot close: portfolio is flat")

        units = abs(position.quantity)
        exit_commission = self.fill_commission(price, units)

        if position.quantity > 0:
            self.cash += price * units - exit_commission
            gross = (price - position.avg_cost) * units
        else:
            self.cash -= price * units + exit_commission
            gross = (position.avg_cost - price) * units

        self.total_commission += exit_commission
        commission = position.entry_commission + exit_commission

        trade = Trade(
            entry_index=position.entry_index,
            exit_index=index,
            entry_timestamp=position.entry_timestamp,
            exit_timestamp=timestamp,
            side=position.side,
            quantity=units,
            entry_price=position.avg_cost,
            exit_price=price,
            commission=commission,
            pnl=gross - commission,
            exit_reason=reason,
        )
        self.trades.append(trade)
        self.position = None

        logger.debug(
            f"Closed {trade.side} {units} @ {price:.4f} on bar {index} "
            f"(pnl={trade.pnl:.2f}, reason={reason})"
        )
        return trade

    def market_value(self, price: float) -> float:
        """Signed value of the open position at ``price`` (negative when short)."""
        return self.quantity * price

    def equity(self, price: float) -> float:
        return self.cash + self.market_value(price)

    def mark(self, price: float) -> float:
        """Record and return this bar's equity at close ``price``."""
        value = self.equity(price)
        self.equity_curve.append(value)
        return value

    def _open(
        self, index: int, timestamp: date | datetime, price: float, signed_quantity: int
    ) -> Position:
        if self.position is not None:
            raise RuntimeError(f"Cannot open: already {self.state.value}")
        if signed_quantity == 0:
            raise ValueError("Cannot open a position of zero units")

        units = abs(signed_quantity)
        commission = self.fill_commission(price, units)
        if signed_quantity > 0:
            self.cash -= price * units + commission
        else:
            self.cash += price * units - commission
        self.total_commission += commission

        self.position = Position(
            quantity=signed_quantity,
            avg_cost=price,
            entry_index=index,
            entry_timestamp=timestamp,
            entry_commission=commission,
        )

        logger.debug(
            f"Opened {self.position.side} {units} @ {price:.4f} on bar {index} "
            f"(commission={commission:.2f}, cash={self.cash:.2f})"
        )
        return self.position
