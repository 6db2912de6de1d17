"""
Backtest defaults loaded from environment variables.

Uses Pydantic Settings for type-safe configuration with validation. All
settings can be overridden via ``BACKTEST_``-prefixed environment variables
or a .env file.

The engine never reads these implicitly; build a run configuration from them
with ``BacktestConfig.from_settings()``.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BacktestSettings(BaseSettings):
    """
    Backtest configuration defaults.

    Example:
        $ export BACKTEST_INITIAL_CAPITAL=50000
        $ export BACKTEST_FILL_POLICY=next_open
    """

    model_config = SettingsConfigDict(
        env_prefix="BACKTEST_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extraneous env vars from broader platform configs
    )

    # Capital and costs
    initial_capital: float = Field(
        default=10_000.0,
        gt=0,
        description="Starting cash for each run",
    )
    commission: float = Field(
        default=0.0,
        ge=0,
        description="Flat commission charged per fill",
    )
    commission_rate: float = Field(
        default=0.0,
        ge=0,
        lt=1,
        description="Commission as a fraction of fill notional (0.001 = 10 bps)",
    )

    # Execution
    position_fraction: float | None = Field(
        default=None,
        gt=0,
        le=1,
        description="Fraction of cash committed per entry (unset = all available cash)",
    )
    fill_policy: Literal["close", "next_open"] = Field(
        default="close",
        description="Execution price: same bar close or next bar open",
    )
    close_at_end: bool = Field(
        default=True,
        description="Force-close an open position at the final bar",
    )
    allow_short: bool = Field(
        default=False,
        description="Allow Sell from flat to open a short position",
    )
    history_window: int = Field(
        default=50,
        ge=1,
        le=10_000,
        description="Length of the trailing close/volume windows on each feature vector",
    )

    # Metrics
    periods_per_year: int = Field(
        default=252,
        ge=1,
        description="Bars per year used to annualize returns and Sharpe ratio",
    )
    risk_free_rate: float = Field(
        default=0.0,
        description="Annual risk-free rate for the Sharpe ratio",
    )


@lru_cache
def get_settings() -> BacktestSettings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once.

    Returns:
        BacktestSettings instance with all configuration loaded.

    Example:
        >>> settings = get_settings()
        >>> print(settings.initial_capital)
        10000.0
    """
    return BacktestSettings()
