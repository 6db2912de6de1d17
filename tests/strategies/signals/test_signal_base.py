"""
Tests for signal source abstractions.

Covers the Action vocabulary, Vote, and every SignalSource variant.
"""

from collections.abc import Callable

import pytest

from libs.common.exceptions import InvalidActionError
from strategies.backtest.features import FeatureVector
from strategies.signals.base import (
    Action,
    FunctionSignal,
    InvertedSignal,
    SignalRule,
    SignalSource,
    StaticSignal,
    Vote,
)


class TestActionCoerce:
    """Test conversion of raw signal values into Actions."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (Action.BUY, Action.BUY),
            ("buy", Action.BUY),
            ("SELL", Action.SELL),
            (" Hold ", Action.HOLD),
            (1, Action.BUY),
            (0, Action.HOLD),
            (-1, Action.SELL),
        ],
    )
    def test_recognized_values(self, raw: object, expected: Action) -> None:
        assert Action.coerce(raw) is expected

    @pytest.mark.parametrize("raw", ["short", "", 2, -2, 0.5, None, True, False])
    def test_unrecognized_values_raise(self, raw: object) -> None:
        with pytest.raises(InvalidActionError) as exc_info:
            Action.coerce(raw, source="custom")

        assert exc_info.value.value == raw
        assert exc_info.value.source == "custom"

    def test_inverse(self) -> None:
        assert Action.BUY.inverse() is Action.SELL
        assert Action.SELL.inverse() is Action.BUY
        assert Action.HOLD.inverse() is Action.HOLD

    def test_is_string_enum(self) -> None:
        assert Action.BUY == "buy"


class TestVote:
    """Test the Vote value object."""

    def test_defaults(self) -> None:
        vote = Vote("rsi", Action.BUY)

        assert vote.weight == 1.0
        assert vote.confidence is None

    def test_is_immutable(self) -> None:
        vote = Vote("rsi", Action.BUY)

        with pytest.raises(AttributeError):
            vote.action = Action.SELL  # type: ignore[misc]


class TestFunctionSignal:
    """Test the closure / plain function variant."""

    def test_wraps_closure(self, make_vector: Callable[..., FeatureVector]) -> None:
        threshold = 30.0
        source = FunctionSignal(lambda v: "buy" if v["rsi"] < threshold else "hold", name="rsi30")

        assert source.name == "rsi30"
        assert source.evaluate(make_vector(indicators={"rsi": 25.0})) is Action.BUY
        assert source.evaluate(make_vector(indicators={"rsi": 50.0})) is Action.HOLD

    def test_name_defaults_to_function_name(self) -> None:
        def always_sell(vector: FeatureVector) -> str:
            return "sell"

        assert FunctionSignal(always_sell).name == "always_sell"

    def test_invalid_output_names_source(self, make_vector: Callable[..., FeatureVector]) -> None:
        source = FunctionSignal(lambda v: "moon", name="broken")

        with pytest.raises(InvalidActionError, match="broken"):
            source.evaluate(make_vector())

    def test_satisfies_protocol(self) -> None:
        assert isinstance(FunctionSignal(lambda v: 0, name="x"), SignalSource)


class _Contrarian:
    @staticmethod
    def trade(vector: FeatureVector) -> int:
        return -1 if vector.close > 100 else 1


class TestStaticSignal:
    """Test the static / bound method adapter."""

    def test_name_is_qualified_name(self) -> None:
        assert StaticSignal(_Contrarian.trade).name == "_Contrarian.trade"

    def test_numeric_output(self, make_vector: Callable[..., FeatureVector]) -> None:
        source = StaticSignal(_Contrarian.trade)

        assert source.evaluate(make_vector(close=120.0)) is Action.SELL
        assert source.evaluate(make_vector(close=80.0)) is Action.BUY


class _AlwaysBuy(SignalRule):
    def _decide(self, vector: FeatureVector) -> Action:
        return Action.BUY


class _Garbage(SignalRule):
    def _decide(self, vector: FeatureVector) -> str:
        return "maybe"


class TestSignalRule:
    """Test the rule object base class."""

    def test_name_defaults_to_class_name(self) -> None:
        assert _AlwaysBuy().name == "_AlwaysBuy"
        assert _AlwaysBuy(name="custom").name == "custom"

    def test_evaluate_validates(self, make_vector: Callable[..., FeatureVector]) -> None:
        with pytest.raises(InvalidActionError, match="_Garbage"):
            _Garbage().evaluate(make_vector())

    def test_cannot_instantiate_base(self) -> None:
        with pytest.raises(TypeError):
            SignalRule()  # type: ignore[abstract]


class TestInvertedSignal:
    """Test the trade-against adapter."""

    def test_swaps_buy_and_sell(self, make_vector: Callable[..., FeatureVector]) -> None:
        inverted = InvertedSignal(_AlwaysBuy())

        assert inverted.name == "inverse(_AlwaysBuy)"
        assert inverted.evaluate(make_vector()) is Action.SELL

    def test_hold_stays_hold(self, make_vector: Callable[..., FeatureVector]) -> None:
        inverted = InvertedSignal(FunctionSignal(lambda v: "hold", name="flat"))

        assert inverted.evaluate(make_vector()) is Action.HOLD

    def test_propagates_invalid_action(self, make_vector: Callable[..., FeatureVector]) -> None:
        with pytest.raises(InvalidActionError):
            InvertedSignal(_Garbage()).evaluate(make_vector())
