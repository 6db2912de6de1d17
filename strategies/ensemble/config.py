"""
Configuration for the strategy ensemble.

This module defines the settings that control how an ensemble aggregates the
votes of its signal sources: the voting policy, per-source weights, and the
parameters of the confidence and adaptive-weight updates.

Configuration is an explicit value passed to ``StrategyEnsemble``; there is no
process-wide shared configuration object.
"""

from dataclasses import dataclass, field

from libs.common.exceptions import ConfigurationError
from strategies.ensemble.combiner import PolicyLike, VotingPolicy, resolve_policy


@dataclass
class EnsembleConfig:
    """
    Configuration for ensemble vote aggregation.

    Attributes:
        voting_policy: Policy for combining votes
                      Options: majority, weighted, unanimous, confidence
                      Default: majority

        weights: Initial weight per source name (non-negative)
                Sources without an entry use the weight passed to add()
                Default: {} (all sources weigh 1.0)

        default_confidence: Starting confidence score for every source (0.0-1.0)
                           Default: 0.5

        confidence_alpha: EMA smoothing for confidence updates (0.0-1.0]
                         new = old * (1-α) + outcome * α
                         Default: 0.1

        performance_window: Number of most recent performance values per
                           source used to compute adaptive weights
                           Default: 10

    Example:
        >>> config = EnsembleConfig(
        ...     voting_policy=VotingPolicy.WEIGHTED,
        ...     weights={"rsi": 2.0, "macd": 1.0},
        ... )
        >>> config.validate()
        >>> print(config.voting_policy)
        VotingPolicy.WEIGHTED
    """

    voting_policy: PolicyLike = VotingPolicy.MAJORITY
    weights: dict[str, float] = field(default_factory=dict)

    # Confidence voting
    default_confidence: float = 0.5
    confidence_alpha: float = 0.1

    # Adaptive weighting
    performance_window: int = 10

    def __post_init__(self) -> None:
        self.voting_policy = resolve_policy(self.voting_policy)

    def validate(self) -> None:
        """
        Validate configuration parameters.

        Raises:
            ConfigurationError: If configuration is invalid

        Example:
            >>> config = EnsembleConfig()
            >>> config.validate()  # Passes
            >>> config.confidence_alpha = 0.0
            >>> config.validate()  # Raises ConfigurationError
        """
        negative = {k: v for k, v in self.weights.items() if v < 0}
        if negative:
            raise ConfigurationError(f"Weights must be non-negative: {negative}")

        if not 0.0 <= self.default_confidence <= 1.0:
            raise ConfigurationError(
                f"default_confidence must be in [0, 1], got {self.default_confidence}"
            )

        if not 0.0 < self.confidence_alpha <= 1.0:
            raise ConfigurationError(
                f"confidence_alpha must be in (0, 1], got {self.confidence_alpha}"
            )

        if self.performance_window < 1:
            raise ConfigurationError(
                f"performance_window must be >= 1, got {self.performance_window}"
            )
