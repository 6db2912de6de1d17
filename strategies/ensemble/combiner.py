"""
Core ensemble logic for combining signal votes.

This module provides the vote aggregation policies that reduce the votes of
several signal sources for one bar into a single action. The functions here
are pure: they hold no state and have no side effects, so the stateful
``StrategyEnsemble`` and tests can call them directly.

Each policy has different characteristics suitable for different market
conditions and risk preferences. Every policy resolves ties and conflicts to
HOLD, the conservative default.
"""

import math
from collections.abc import Sequence
from enum import Enum
from typing import Literal

from libs.common.exceptions import ConfigurationError
from strategies.signals.base import Action, Vote

DEFAULT_CONFIDENCE = 0.5


class VotingPolicy(str, Enum):
    """
    Available policies for combining signal votes.

    Attributes:
        MAJORITY: Action with a strict plurality of votes
                  Best for: Reducing false positives
                  Ties: HOLD

        WEIGHTED: Action with the largest summed source weight
                  Best for: Favoring proven sources
                  Ties: HOLD

        UNANIMOUS: Only act when ALL sources agree
                   Best for: Very conservative, high-confidence trades
                   Disagreement: HOLD

        CONFIDENCE: Action with the largest summed confidence score
                    Best for: Adapting to which sources have been right lately
                    Ties: HOLD
    """

    MAJORITY = "majority"
    WEIGHTED = "weighted"
    UNANIMOUS = "unanimous"
    CONFIDENCE = "confidence"


PolicyLike = VotingPolicy | Literal["majority", "weighted", "unanimous", "confidence"]


def resolve_policy(policy: PolicyLike) -> VotingPolicy:
    """Convert a policy name into a VotingPolicy."""
    if isinstance(policy, VotingPolicy):
        return policy
    try:
        return VotingPolicy(policy)
    except ValueError:
        valid = [p.value for p in VotingPolicy]
        raise ConfigurationError(
            f"Unknown voting policy: {policy!r} (expected one of {valid})"
        ) from None


def combine_votes(
    votes: Sequence[Vote],
    policy: PolicyLike = VotingPolicy.MAJORITY,
) -> Action:
    """
    Combine votes from multiple sources into one action.

    This is the main entry point for vote combination.

    Args:
        votes: One Vote per source for the current bar. Must not be empty.
        policy: Aggregation policy (default: majority)

    Returns:
        The aggregated Action. Always one of BUY, SELL, HOLD.

    Raises:
        ConfigurationError: If votes is empty or policy is unknown

    Example:
        >>> votes = [
        ...     Vote("rsi", Action.BUY),
        ...     Vote("macd", Action.BUY),
        ...     Vote("bollinger", Action.SELL),
        ... ]
        >>> combine_votes(votes, "majority")
        <Action.BUY: 'buy'>
        >>> combine_votes(votes, "unanimous")
        <Action.HOLD: 'hold'>

    Notes:
        - Majority is a strict plurality among BUY/SELL/HOLD, not >50%
        - HOLD votes count toward their own bucket under every policy
    """
    policy = resolve_policy(policy)
    if not votes:
        raise ConfigurationError("Cannot combine an empty set of votes")

    if policy == VotingPolicy.UNANIMOUS:
        return _unanimous(votes)

    return _plurality(tally_votes(votes, policy))


def tally_votes(votes: Sequence[Vote], policy: PolicyLike) -> dict[Action, float]:
    """
    Score each action under a counting policy.

    MAJORITY counts votes, WEIGHTED sums vote weights, CONFIDENCE sums
    confidence scores (missing confidence counts as 0.5). UNANIMOUS is scored
    like MAJORITY.

    Example:
        >>> tally_votes([Vote("a", Action.BUY, weight=2.0), Vote("b", Action.SELL)], "weighted")
        {<Action.BUY: 'buy'>: 2.0, <Action.SELL: 'sell'>: 1.0, <Action.HOLD: 'hold'>: 0.0}
    """
    policy = resolve_policy(policy)
    scores = {Action.BUY: 0.0, Action.SELL: 0.0, Action.HOLD: 0.0}

    for vote in votes:
        if policy == VotingPolicy.WEIGHTED:
            score = vote.weight
        elif policy == VotingPolicy.CONFIDENCE:
            score = DEFAULT_CONFIDENCE if vote.confidence is None else vote.confidence
        else:
            score = 1.0
        scores[vote.action] += score

    return scores


def _plurality(scores: dict[Action, float]) -> Action:
    """
    Pick the action with the single highest score.

    Scores within floating-point tolerance of the maximum are tied; a tie
    between two or more actions resolves to HOLD.

    Example:
        BUY=2, SELL=1, HOLD=0 → BUY
        BUY=1, SELL=1, HOLD=1 → HOLD (no plurality)
    """
    best = max(scores.values())
    leaders = [action for action, score in scores.items() if math.isclose(score, best)]
    if len(leaders) != 1:
        return Action.HOLD
    return leaders[0]


def _unanimous(votes: Sequence[Vote]) -> Action:
    """
    Require unanimous agreement.

    Example:
        [BUY, BUY, BUY] → BUY
        [BUY, BUY, HOLD] → HOLD
    """
    first = votes[0].action
    if all(vote.action == first for vote in votes[1:]):
        return first
    return Action.HOLD
