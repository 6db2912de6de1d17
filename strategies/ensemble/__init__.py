"""
Ensemble framework for combining multiple signal sources.

This module provides the voting layer that turns the votes of several
independent signal sources (RSI, MACD, Bollinger Bands, custom functions, ...)
into one trading decision per bar.

Ensemble methods help reduce false signals by requiring agreement between
different approaches and reducing individual source weaknesses.

Components:
- combiner: Pure vote-combination policies
- config: Ensemble configuration (policy, weights, confidence parameters)
- ensemble: StrategyEnsemble holding sources, confidence and adaptive weights

Voting Policies:
- majority: Action with a strict plurality (ties → HOLD)
- weighted: Action with the largest summed weight (ties → HOLD)
- unanimous: Only trade when all sources agree
- confidence: Action with the largest summed confidence score
"""

from strategies.ensemble.combiner import VotingPolicy, combine_votes, tally_votes
from strategies.ensemble.config import EnsembleConfig
from strategies.ensemble.ensemble import StrategyEnsemble

__version__ = "0.1.0"

__all__ = [
    "VotingPolicy",
    "combine_votes",
    "tally_votes",
    "EnsembleConfig",
    "StrategyEnsemble",
]
