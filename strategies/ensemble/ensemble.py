"""
Stateful strategy ensemble.

``StrategyEnsemble`` holds an ordered collection of signal sources and reduces
their votes into one action per bar using a ``VotingPolicy`` from
``strategies.ensemble.combiner``. Besides the static configuration it tracks
two pieces of learned state per source:

- confidence scores, moved by ``update_confidence`` and used by the
  confidence policy
- adaptive weights, recomputed from recent performance by
  ``record_performance`` and used by the weighted policy

The set of sources is frozen when a backtest starts; adding a source after
that raises ``ConfigurationError``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from libs.common.exceptions import ConfigurationError
from strategies.ensemble.combiner import PolicyLike, VotingPolicy, combine_votes, resolve_policy
from strategies.ensemble.config import EnsembleConfig
from strategies.signals.base import Action, SignalSource, Vote

if TYPE_CHECKING:
    from strategies.backtest.features import FeatureVector

logger = logging.getLogger(__name__)


class StrategyEnsemble:
    """
    Ordered, non-empty set of signal sources with a voting policy.

    The ensemble itself satisfies the SignalSource protocol (``name`` and
    ``evaluate``), so ensembles can be nested inside other ensembles.

    Args:
        sources: Initial sources, in voting order
        config: Ensemble configuration (default: EnsembleConfig())
        policy: Overrides ``config.voting_policy`` when given
        name: Identifier used when this ensemble votes inside another one

    Example:
        >>> ensemble = StrategyEnsemble(
        ...     [RSIRule(), MACDCrossoverRule(), BollingerBandsRule()],
        ...     policy="majority",
        ... )
        >>> ensemble.decide(vector)
        <Action.BUY: 'buy'>
    """

    def __init__(
        self,
        sources: Iterable[SignalSource] = (),
        config: EnsembleConfig | None = None,
        policy: PolicyLike | None = None,
        name: str = "ensemble",
    ) -> None:
        self.config = config or EnsembleConfig()
        self.config.validate()
        self.policy: VotingPolicy = resolve_policy(
            policy if policy is not None else self.config.voting_policy
        )
        self._name = name
        self._sources: list[SignalSource] = []
        self._weights: dict[str, float] = {}
        self._confidence: dict[str, float] = {}
        self._performance: dict[str, list[float]] = {}
        self._frozen = False

        for source in sources:
            self.add(source)

    @classmethod
    def wrap(cls, source: SignalSource, config: EnsembleConfig | None = None) -> StrategyEnsemble:
        """
        Single-source ensemble named after ``source``.

        Example:
            >>> engine = BacktestEngine(StrategyEnsemble.wrap(RSIRule()))
        """
        return cls([source], config=config, name=source.name)

    @property
    def name(self) -> str:
        return self._name

    @property
    def sources(self) -> tuple[SignalSource, ...]:
        return tuple(self._sources)

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    @property
    def weights(self) -> dict[str, float]:
        return dict(self._weights)

    @property
    def confidence_scores(self) -> dict[str, float]:
        return dict(self._confidence)

    def __len__(self) -> int:
        return len(self._sources)

    def add(self, source: SignalSource, weight: float | None = None) -> StrategyEnsemble:
        """
        Append a source to the ensemble.

        Args:
            source: Signal source with a name unique within this ensemble
            weight: Voting weight; defaults to ``config.weights[source.name]``
                    or 1.0

        Returns:
            self, so calls can be chained

        Raises:
            ConfigurationError: If the ensemble is frozen, the name is already
                                used, or the weight is negative
        """
        if self._frozen:
            raise ConfigurationError(
                f"Cannot add source '{source.name}': ensemble '{self._name}' is frozen "
                "because a run has started"
            )
        if not isinstance(source, SignalSource):
            raise ConfigurationError(
                f"{source!r} is not a signal source (needs a name and evaluate(vector))"
            )
        if source.name in self._weights:
            raise ConfigurationError(f"Duplicate source name in ensemble: '{source.name}'")

        if weight is None:
            weight = self.config.weights.get(source.name, 1.0)
        if weight < 0:
            raise ConfigurationError(f"Weight for '{source.name}' must be non-negative, got {weight}")

        self._sources.append(source)
        self._weights[source.name] = float(weight)
        self._confidence[source.name] = self.config.default_confidence
        self._performance[source.name] = []
        return self

    def freeze(self) -> None:
        """
        Lock the set of sources.

        Called by the engine when a run starts. Nested ensembles are frozen
        too. Freezing twice is a no-op.

        Raises:
            ConfigurationError: If the ensemble is empty or ``config.weights``
                                names a source that was never added
        """
        if self._frozen:
            return
        if not self._sources:
            raise ConfigurationError(f"Ensemble '{self._name}' has no signal sources")

        unknown = set(self.config.weights) - set(self._weights)
        if unknown:
            raise ConfigurationError(f"Weights configured for unknown sources: {sorted(unknown)}")

        for source in self._sources:
            if isinstance(source, StrategyEnsemble):
                source.freeze()

        self._frozen = True
        logger.debug(
            f"Ensemble '{self._name}' frozen with {len(self._sources)} sources "
            f"(policy={self.policy.value})"
        )

    def vote(self, vector: FeatureVector) -> tuple[Vote, ...]:
        """
        Collect one Vote per source for this bar.

        Raises:
            ConfigurationError: If the ensemble is empty
            InvalidActionError: If a source returns an unrecognized action
        """
        if not self._sources:
            raise ConfigurationError(f"Ensemble '{self._name}' has no signal sources")

        return tuple(
            Vote(
                source=source.name,
                action=Action.coerce(source.evaluate(vector), source.name),
                weight=self._weights[source.name],
                confidence=self._confidence[source.name],
            )
            for source in self._sources
        )

    def decide(self, vector: FeatureVector) -> Action:
        """Aggregate all votes for this bar into one action."""
        return combine_votes(self.vote(vector), self.policy)

    def evaluate(self, vector: FeatureVector) -> Action:
        return self.decide(vector)

    def update_confidence(self, name: str, correct: bool) -> float:
        """
        Move a source's confidence toward 1 (correct) or 0 (incorrect).

        Uses an exponential moving average:
            new = old + α × (1 − old)   if correct
            new = old − α × old         otherwise

        Returns:
            The updated confidence score
        """
        current = self._lookup(self._confidence, name)
        alpha = self.config.confidence_alpha
        if correct:
            updated = current + alpha * (1.0 - current)
        else:
            updated = current - alpha * current
        self._confidence[name] = updated
        return updated

    def record_performance(self, name: str, value: float) -> dict[str, float]:
        """
        Record a performance observation (e.g. a trade return) for a source
        and recompute adaptive weights for all sources.

        Weights are the mean of each source's last ``performance_window``
        values (0 with no history), shifted so the smallest is 0.01 when any
        mean is negative, then normalized to sum to 1. If every mean is zero
        all sources get equal weight.

        Returns:
            The new weights by source name
        """
        self._lookup(self._performance, name).append(float(value))
        self._recalculate_weights()
        return self.weights

    def statistics(self) -> dict[str, Any]:
        """
        Summary of the ensemble's configuration and learned state.

        Returns:
            Dict with num_sources, policy, weights, confidence_scores,
            best_source, worst_source and performance_history. Best/worst are
            by mean recorded performance; the first source when nothing has
            been recorded.
        """
        means = self._mean_performance()
        has_history = any(self._performance.values())
        names = [source.name for source in self._sources]

        best = max(names, key=lambda n: means[n]) if has_history else (names[0] if names else None)
        worst = min(names, key=lambda n: means[n]) if has_history else (names[0] if names else None)

        return {
            "name": self._name,
            "num_sources": len(self._sources),
            "policy": self.policy.value,
            "weights": self.weights,
            "confidence_scores": self.confidence_scores,
            "best_source": best,
            "worst_source": worst,
            "performance_history": {n: list(h) for n, h in self._performance.items()},
        }

    def _recalculate_weights(self) -> None:
        window = self.config.performance_window
        recent = {
            name: (sum(history[-window:]) / len(history[-window:]) if history else 0.0)
            for name, history in self._performance.items()
        }

        lowest = min(recent.values())
        if lowest < 0:
            recent = {name: value - lowest + 0.01 for name, value in recent.items()}

        total = sum(recent.values())
        if total == 0:
            self._weights = {name: 1.0 / len(recent) for name in recent}
        else:
            self._weights = {name: value / total for name, value in recent.items()}

    def _mean_performance(self) -> dict[str, float]:
        return {
            name: (sum(history) / len(history) if history else 0.0)
            for name, history in self._performance.items()
        }

    def _lookup(self, table: dict[str, Any], name: str) -> Any:
        if name not in table:
            raise ConfigurationError(f"Unknown source in ensemble '{self._name}': '{name}'")
        return table[name]

    def __repr__(self) -> str:
        return (
            f"StrategyEnsemble(name={self._name!r}, policy={self.policy.value!r}, "
            f"sources={[s.name for s in self._sources]!r})"
        )
