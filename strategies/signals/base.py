"""
Signal source abstractions.

A signal source maps one bar's ``FeatureVector`` to a discrete ``Action``.
Sources come in a small set of fixed variants, chosen when the ensemble is
built:

- FunctionSignal: wraps a closure or plain function
- SignalRule: base class for rule objects with one evaluation entry point
- StaticSignal: adapter around a bound or static method reference
- InvertedSignal: "trade against" adapter that swaps buy and sell

Every variant validates its raw output through ``Action.coerce`` so an
unrecognized value surfaces as ``InvalidActionError`` naming the source.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from numbers import Integral
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from libs.common.exceptions import InvalidActionError

if TYPE_CHECKING:
    from strategies.backtest.features import FeatureVector


class Action(str, Enum):
    """
    Trading action vocabulary.

    Attributes:
        BUY: Open a long position (or cover a short)
        SELL: Close a long position (or open a short when shorting is enabled)
        HOLD: No state change
    """

    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"

    @classmethod
    def coerce(cls, value: Any, source: str | None = None) -> Action:
        """
        Convert a raw signal value into an Action.

        Accepts an Action, a case-insensitive name ("buy", "SELL"), or the
        numeric convention used by signal DataFrames (+1 buy, 0 hold, -1 sell).

        Raises:
            InvalidActionError: If value is not in the vocabulary

        Example:
            >>> Action.coerce("BUY")
            <Action.BUY: 'buy'>
            >>> Action.coerce(-1)
            <Action.SELL: 'sell'>
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                raise InvalidActionError(value, source) from None
        # bool is an int subclass; True/False are not signals
        if isinstance(value, Integral) and not isinstance(value, bool):
            numeric = {1: cls.BUY, 0: cls.HOLD, -1: cls.SELL}
            if int(value) in numeric:
                return numeric[int(value)]
        raise InvalidActionError(value, source)

    def inverse(self) -> Action:
        """Swap BUY and SELL; HOLD stays HOLD."""
        if self is Action.BUY:
            return Action.SELL
        if self is Action.SELL:
            return Action.BUY
        return Action.HOLD


@dataclass(frozen=True)
class Vote:
    """One source's action for one bar, with its aggregation weight/confidence."""

    source: str
    action: Action
    weight: float = 1.0
    confidence: float | None = None


@runtime_checkable
class SignalSource(Protocol):
    """Protocol for anything that turns a feature vector into an action.

    Implementations must be deterministic for identical input; sources that
    use randomness must take an injectable, seedable generator.
    """

    @property
    def name(self) -> str:
        """Unique identifier of the source within an ensemble."""
        ...

    def evaluate(self, vector: FeatureVector) -> Action:
        """Return the action for this bar."""
        ...


class FunctionSignal:
    """
    Signal source wrapping a closure or plain function.

    Example:
        >>> oversold = FunctionSignal(lambda v: "buy" if v["rsi"] < 30 else "hold", name="rsi30")
        >>> oversold.evaluate(vector)
        <Action.BUY: 'buy'>
    """

    def __init__(self, fn: Callable[[FeatureVector], Any], name: str | None = None) -> None:
        self._fn = fn
        self._name = name or getattr(fn, "__name__", None) or repr(fn)

    @property
    def name(self) -> str:
        return self._name

    def evaluate(self, vector: FeatureVector) -> Action:
        return Action.coerce(self._fn(vector), self._name)

    def __repr__(self) -> str:
        return f"FunctionSignal(name={self._name!r})"


class StaticSignal:
    """
    Adapter around a bound or static method reference.

    Lets strategy classes that expose a ``trade`` static/class method be used
    without instantiating them.

    Example:
        >>> class Contrarian:
        ...     @staticmethod
        ...     def trade(vector):
        ...         return "sell" if vector.close > vector["sma_20"] else "buy"
        >>> source = StaticSignal(Contrarian.trade)
        >>> source.name
        'Contrarian.trade'
    """

    def __init__(self, method: Callable[[FeatureVector], Any], name: str | None = None) -> None:
        self._method = method
        self._name = name or getattr(method, "__qualname__", None) or repr(method)

    @property
    def name(self) -> str:
        return self._name

    def evaluate(self, vector: FeatureVector) -> Action:
        return Action.coerce(self._method(vector), self._name)

    def __repr__(self) -> str:
        return f"StaticSignal(name={self._name!r})"


class SignalRule(ABC):
    """
    Base class for rule objects.

    Subclasses implement ``_decide``; ``evaluate`` validates the result so
    every rule reports invalid output the same way. ``name`` defaults to the
    class name and can be overridden per instance.
    """

    def __init__(self, name: str | None = None) -> None:
        self._name = name or type(self).__name__

    @property
    def name(self) -> str:
        return self._name

    def evaluate(self, vector: FeatureVector) -> Action:
        return Action.coerce(self._decide(vector), self._name)

    @abstractmethod
    def _decide(self, vector: FeatureVector) -> Action | str | int:
        """Compute the raw action for one bar."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self._name!r})"


class InvertedSignal:
    """Trade against another source: its BUY becomes SELL and vice versa."""

    def __init__(self, source: SignalSource, name: str | None = None) -> None:
        self._source = source
        self._name = name or f"inverse({source.name})"

    @property
    def name(self) -> str:
        return self._name

    def evaluate(self, vector: FeatureVector) -> Action:
        action = Action.coerce(self._source.evaluate(vector), self._source.name)
        return action.inverse()

    def __repr__(self) -> str:
        return f"InvertedSignal(source={self._source!r})"
