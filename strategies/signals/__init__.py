"""
Signal sources for the strategy ensemble.

A signal source turns one bar's FeatureVector into BUY, SELL or HOLD.

Components:
- base: Action vocabulary, Vote, SignalSource protocol and its variants
  (FunctionSignal, StaticSignal, SignalRule, InvertedSignal)
- rules: Concrete rules (RSI, trend, MACD crossover, Bollinger Bands,
  volume breakout, random benchmark)
"""

from strategies.signals.base import (
    Action,
    FunctionSignal,
    InvertedSignal,
    SignalRule,
    SignalSource,
    StaticSignal,
    Vote,
)
from strategies.signals.rules import (
    BollingerBandsRule,
    MACDCrossoverRule,
    RandomSignal,
    RSIRule,
    TrendRule,
    VolumeBreakoutRule,
)

__all__ = [
    "Action",
    "Vote",
    "SignalSource",
    "FunctionSignal",
    "StaticSignal",
    "SignalRule",
    "InvertedSignal",
    "RSIRule",
    "TrendRule",
    "MACDCrossoverRule",
    "BollingerBandsRule",
    "VolumeBreakoutRule",
    "RandomSignal",
]
