"""
Tests for backtest run configuration and environment settings.
"""

from collections.abc import Iterator

import pytest
from pydantic import ValidationError

from libs.common.exceptions import ConfigurationError
from strategies.backtest.config import ALL_CASH, BacktestConfig, FillPolicy
from strategies.backtest.settings import BacktestSettings, get_settings


class TestBacktestConfig:
    """Test BacktestConfig defaults and validation."""

    def test_defaults(self) -> None:
        config = BacktestConfig()

        assert config.initial_capital == 10_000.0
        assert config.commission == 0.0
        assert config.position_size == ALL_CASH
        assert config.position_fraction == 1.0
        assert config.fill_policy is FillPolicy.CLOSE
        assert config.close_at_end is True
        assert config.allow_short is False
        assert config.warmup_bars is None
        config.validate()

    def test_fill_policy_from_string(self) -> None:
        config = BacktestConfig(fill_policy="next_open")  # type: ignore[arg-type]

        assert config.fill_policy is FillPolicy.NEXT_OPEN

    def test_unknown_fill_policy_raises(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown fill policy"):
            BacktestConfig(fill_policy="vwap")  # type: ignore[arg-type]

    def test_fractional_position_size(self) -> None:
        config = BacktestConfig(position_size=0.5)

        config.validate()
        assert config.position_fraction == 0.5

    @pytest.mark.parametrize(
        ("overrides", "match"),
        [
            ({"initial_capital": 0.0}, "initial_capital"),
            ({"initial_capital": -1.0}, "initial_capital"),
            ({"commission": -0.01}, "commission must be"),
            ({"commission_rate": 1.0}, "commission_rate"),
            ({"position_size": 0.0}, "position_size"),
            ({"position_size": 1.5}, "position_size"),
            ({"position_size": "half"}, "position_size"),
            ({"warmup_bars": -1}, "warmup_bars"),
            ({"history_window": 0}, "history_window"),
            ({"periods_per_year": 0}, "periods_per_year"),
        ],
    )
    def test_invalid_values(self, overrides: dict[str, object], match: str) -> None:
        config = BacktestConfig(**overrides)  # type: ignore[arg-type]

        with pytest.raises(ConfigurationError, match=match):
            config.validate()

    def test_is_immutable(self) -> None:
        config = BacktestConfig()

        with pytest.raises(AttributeError):
            config.initial_capital = 5.0  # type: ignore[misc]


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[pytest.MonkeyPatch]:
    """Remove BACKTEST_ variables and the settings cache around a test."""
    for name in list(BacktestSettings.model_fields):
        monkeypatch.delenv(f"BACKTEST_{name.upper()}", raising=False)
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()


class TestBacktestSettings:
    """Test environment-driven defaults."""

    def test_defaults_match_config(self, clean_env: pytest.MonkeyPatch) -> None:
        settings = BacktestSettings(_env_file=None)  # type: ignore[call-arg]

        assert BacktestConfig.from_settings(settings) == BacktestConfig()

    def test_reads_prefixed_environment(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("BACKTEST_INITIAL_CAPITAL", "50000")
        clean_env.setenv("BACKTEST_FILL_POLICY", "next_open")
        clean_env.setenv("BACKTEST_POSITION_FRACTION", "0.25")
        clean_env.setenv("BACKTEST_ALLOW_SHORT", "true")

        settings = BacktestSettings(_env_file=None)  # type: ignore[call-arg]

        assert settings.initial_capital == 50_000.0
        assert settings.fill_policy == "next_open"
        assert settings.position_fraction == 0.25
        assert settings.allow_short is True

    @pytest.mark.parametrize(
        ("name", "value"),
        [
            ("BACKTEST_INITIAL_CAPITAL", "0"),
            ("BACKTEST_COMMISSION_RATE", "1.5"),
            ("BACKTEST_FILL_POLICY", "vwap"),
            ("BACKTEST_POSITION_FRACTION", "2"),
        ],
    )
    def test_rejects_invalid_environment(
        self, clean_env: pytest.MonkeyPatch, name: str, value: str
    ) -> None:
        clean_env.setenv(name, value)

        with pytest.raises(ValidationError):
            BacktestSettings(_env_file=None)  # type: ignore[call-arg]

    def test_from_settings_applies_overrides(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("BACKTEST_COMMISSION", "1.5")
        clean_env.setenv("BACKTEST_FILL_POLICY", "next_open")
        clean_env.setenv("BACKTEST_POSITION_FRACTION", "0.5")
        settings = BacktestSettings(_env_file=None)  # type: ignore[call-arg]

        config = BacktestConfig.from_settings(settings, warmup_bars=30, commission=2.0)

        assert config.commission == 2.0
        assert config.warmup_bars == 30
        assert config.fill_policy is FillPolicy.NEXT_OPEN
        assert config.position_fraction == 0.5

    def test_from_settings_uses_cached_settings(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("BACKTEST_INITIAL_CAPITAL", "2500")

        config = BacktestConfig.from_settings()

        assert config.initial_capital == 2_500.0
        assert get_settings() is get_settings()
