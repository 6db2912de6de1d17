"""
Configuration for backtest runs.

A ``BacktestConfig`` is an explicit, immutable value passed to the engine at
construction. It controls capital, commissions, position sizing, the fill
policy, end-of-data handling, warm-up, and metric annualization.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal

from libs.common.exceptions import ConfigurationError
from strategies.backtest.settings import BacktestSettings, get_settings


class FillPolicy(str, Enum):
    """
    Execution price for a decision made at bar i.

    Attributes:
        CLOSE: Fill at bar i's close (default)
        NEXT_OPEN: Fill at bar i+1's open, before bar i+1's own decision
    """

    CLOSE = "close"
    NEXT_OPEN = "next_open"


ALL_CASH = "all_cash"


@dataclass(frozen=True)
class BacktestConfig:
    """
    Configuration for a single backtest run.

    Attributes:
        initial_capital: Starting cash (must be > 0)
                        Default: 10,000

        commission: Flat commission charged per fill (entry and exit)
                   Default: 0.0

        commission_rate: Commission as a fraction of fill notional
                        Default: 0.0

        position_size: "all_cash" to spend all available cash on entry, or a
                      fraction of cash in (0, 1]. Quantity is truncated to
                      whole units.
                      Default: "all_cash"

        fill_policy: Execution price (same-bar close or next-bar open)
                    Default: FillPolicy.CLOSE

        close_at_end: Force-close an open position at the final bar's close
                     Default: True

        allow_short: Let Sell from flat open a short position
                    Default: False

        warmup_bars: Leading bars skipped for trading. None = detect from
                    leading unavailable indicator values.
                    Default: None

        history_window: Length of trailing close/volume windows on each
                       FeatureVector
                       Default: 50

        periods_per_year: Bars per year for annualization
                         Default: 252

        risk_free_rate: Annual risk-free rate for the Sharpe ratio
                       Default: 0.0

    Example:
        >>> config = BacktestConfig(initial_capital=100.0, commission=1.0)
        >>> config.validate()
        >>> config.position_fraction
        1.0
    """

    initial_capital: float = 10_000.0
    commission: float = 0.0
    commission_rate: float = 0.0
    position_size: float | Literal["all_cash"] = ALL_CASH
    fill_policy: FillPolicy = FillPolicy.CLOSE
    close_at_end: bool = True
    allow_short: bool = False
    warmup_bars: int | None = None
    history_window: int = 50
    periods_per_year: int = 252
    risk_free_rate: float = 0.0

    def __post_init__(self) -> None:
        if not isinstance(self.fill_policy, FillPolicy):
            try:
                object.__setattr__(self, "fill_policy", FillPolicy(self.fill_policy))
            except ValueError:
                raise ConfigurationError(f"Unknown fill policy: {self.fill_policy!r}") from None

    @property
    def position_fraction(self) -> float:
        """Fraction of cash committed per entry."""
        if self.position_size == ALL_CASH:
            return 1.0
        return float(self.position_size)

    def validate(self) -> None:
        """
        Validate configuration parameters.

        Raises:
            ConfigurationError: If configuration is invalid

        Example:
            >>> BacktestConfig(initial_capital=0).validate()
            Traceback (most recent call last):
            ...
            libs.common.exceptions.ConfigurationError: initial_capital must be > 0, got 0
        """
        if self.initial_capital <= 0:
            raise ConfigurationError(f"initial_capital must be > 0, got {self.initial_capital}")

        if self.commission < 0:
            raise ConfigurationError(f"commission must be >= 0, got {self.commission}")

        if not 0.0 <= self.commission_rate < 1.0:
            raise ConfigurationError(f"commission_rate must be in [0, 1), got {self.commission_rate}")

        if self.position_size != ALL_CASH:
            if isinstance(self.position_size, str) or not 0.0 < self.position_size <= 1.0:
                raise ConfigurationError(
                    f"position_size must be 'all_cash' or a fraction in (0, 1], "
                    f"got {self.position_size!r}"
                )

        if self.warmup_bars is not None and self.warmup_bars < 0:
            raise ConfigurationError(f"warmup_bars must be >= 0, got {self.warmup_bars}")

        if self.history_window < 1:
            raise ConfigurationError(f"history_window must be >= 1, got {self.history_window}")

        if self.periods_per_year < 1:
            raise ConfigurationError(f"periods_per_year must be >= 1, got {self.periods_per_year}")

    @classmethod
    def from_settings(cls, settings: BacktestSettings | None = None, **overrides: object) -> BacktestConfig:
        """
        Build a config from environment settings.

        Args:
            settings: Settings to use (default: cached ``get_settings()``)
            **overrides: Field values that take precedence over settings

        Example:
            >>> config = BacktestConfig.from_settings(warmup_bars=30)
        """
        if settings is None:
            settings = get_settings()

        values: dict[str, object] = {
            "initial_capital": settings.initial_capital,
            "commission": settings.commission,
            "commission_rate": settings.commission_rate,
            "position_size": (
                ALL_CASH if settings.position_fraction is None else settings.position_fraction
            ),
            "fill_policy": FillPolicy(settings.fill_policy),
            "close_at_end": settings.close_at_end,
            "allow_short": settings.allow_short,
            "history_window": settings.history_window,
            "periods_per_year": settings.periods_per_year,
            "risk_free_rate": settings.risk_free_rate,
        }
        values.update(overrides)
        return cls(**values)  # type: ignore[arg-type]
