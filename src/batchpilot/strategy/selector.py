"""Adaptive strategy selection.

Scores each configured strategy for an identity from its recorded history
and picks the best one before every attempt:

    score          = 0.7 * success_rate + 0.2 * recency_bonus + 0.1 * stability_bonus
    success_rate   = successes / max(attempts, 1)
    recency_bonus  = max(0, 1 - days_since_last_success / 30)   # 0 if never succeeded
    stability_bonus = 0.1 if consecutive_successes >= 2 else 0

A strategy with no recorded attempts scores its configured prior instead,
so new strategies are never starved. Ties go to the earlier-declared
strategy.

Escalation: a ``strategy_failed`` failure marks the strategy exhausted for
the identity. Once ``escalation_threshold`` distinct strategies are
exhausted without an intervening success, the identity needs manual
handling and the orchestrator stops cycling strategies.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime

from batchpilot.core.config import DEFAULT_STRATEGIES, StrategySpec
from batchpilot.core.errors import ErrorKind
from batchpilot.core.logging import get_logger
from batchpilot.core.models import Failure, StrategyMetrics
from batchpilot.strategy.metrics import MetricsStore
from batchpilot.utils.time import days_between, utc_now

_logger = get_logger("strategy.selector")

SUCCESS_WEIGHT = 0.7
RECENCY_WEIGHT = 0.2
STABILITY_WEIGHT = 0.1
RECENCY_WINDOW_DAYS = 30.0
STABILITY_STREAK = 2
STABILITY_BONUS = 0.1


@dataclass(frozen=True)
class StrategyScore:
    """A strategy's score for one identity, as used for ranking."""

    strategy: StrategySpec
    score: float
    attempts: int
    exhausted: bool = False


class StrategySelector:
    """Chooses a strategy per identity from observed success.

    Selection and recording are O(number of strategies).
    """

    def __init__(
        self,
        strategies: Sequence[StrategySpec] = DEFAULT_STRATEGIES,
        metrics: MetricsStore | None = None,
        *,
        escalation_threshold: int = 2,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if not strategies:
            raise ValueError("at least one strategy is required")
        names = [s.name for s in strategies]
        if len(set(names)) != len(names):
            raise ValueError(f"strategy names must be unique: {names}")
        if escalation_threshold < 1:
            raise ValueError("escalation_threshold must be at least 1")

        self._strategies: tuple[StrategySpec, ...] = tuple(strategies)
        self._by_name = {s.name: s for s in self._strategies}
        self._metrics = metrics if metrics is not None else MetricsStore(clock=clock)
        self._escalation_threshold = escalation_threshold
        self._clock = clock
        self._exhausted: dict[str, set[str]] = {}
        self._exhausted_lock = threading.Lock()

    @property
    def strategies(self) -> tuple[StrategySpec, ...]:
        return self._strategies

    @property
    def metrics(self) -> MetricsStore:
        return self._metrics

    def get(self, name: str) -> StrategySpec:
        """Look up a configured strategy by name.

        Raises:
            KeyError: If the strategy is not configured.
        """
        return self._by_name[name]

    # ─── Scoring ───────────────────────────────────────────────────────

    def recency_bonus(self, metrics: StrategyMetrics) -> float:
        if metrics.last_success_at is None:
            return 0.0
        days = days_between(metrics.last_success_at, self._clock())
        return max(0.0, 1.0 - days / RECENCY_WINDOW_DAYS)

    @staticmethod
    def stability_bonus(metrics: StrategyMetrics) -> float:
        return STABILITY_BONUS if metrics.consecutive_successes >= STABILITY_STREAK else 0.0

    def score(self, identity: str, strategy: StrategySpec) -> float:
        """Score one strategy for an identity."""
        metrics = self._metrics.get(identity, strategy.name)
        if metrics is None or metrics.attempts == 0:
            return strategy.prior
        return (
            SUCCESS_WEIGHT * metrics.success_rate
            + RECENCY_WEIGHT * self.recency_bonus(metrics)
            + STABILITY_WEIGHT * self.stability_bonus(metrics)
        )

    def rankings(self, identity: str) -> list[StrategyScore]:
        """All strategies for an identity, best first (stable on ties)."""
        exhausted = self.exhausted_for(identity)
        scored = []
        for spec in self._strategies:
            metrics = self._metrics.get(identity, spec.name)
            scored.append(
                StrategyScore(
                    strategy=spec,
                    score=self.score(identity, spec),
                    attempts=metrics.attempts if metrics else 0,
                    exhausted=spec.name in exhausted,
                )
            )
        # sorted() is stable, so declaration order breaks ties
        return sorted(scored, key=lambda s: s.score, reverse=True)

    def select(self, identity: str) -> StrategySpec:
        """Pick the strategy for the next attempt of ``identity``.

        Exhausted strategies are passed over while any other remains.
        """
        exhausted = self.exhausted_for(identity)
        candidates = [s for s in self._strategies if s.name not in exhausted]
        if not candidates:
            candidates = list(self._strategies)

        best = candidates[0]
        best_score = self.score(identity, best)
        for spec in candidates[1:]:
            score = self.score(identity, spec)
            if score > best_score:
                best, best_score = spec, score

        _logger.debug(
            "selector.strategy_selected",
            identity=identity,
            strategy=best.name,
            score=round(best_score, 3),
        )
        return best

    # ─── Recording ─────────────────────────────────────────────────────

    def record_success(self, identity: str, strategy: StrategySpec, duration: float) -> None:
        self._metrics.record_success(identity, strategy.name, duration)
        with self._exhausted_lock:
            self._exhausted.pop(identity, None)

    def record_failure(self, identity: str, strategy: StrategySpec, failure: Failure) -> None:
        self._metrics.record_failure(identity, strategy.name, failure.message)
        if failure.kind is ErrorKind.STRATEGY_FAILED:
            with self._exhausted_lock:
                self._exhausted.setdefault(identity, set()).add(strategy.name)
            _logger.info(
                "selector.strategy_exhausted",
                identity=identity,
                strategy=strategy.name,
            )

    def exhausted_for(self, identity: str) -> frozenset[str]:
        with self._exhausted_lock:
            return frozenset(self._exhausted.get(identity, ()))

    def requires_manual_intervention(self, identity: str) -> bool:
        """True once enough distinct strategies failed without a success."""
        exhausted = self.exhausted_for(identity)
        threshold = min(self._escalation_threshold, len(self._strategies))
        return len(exhausted) >= threshold


__all__ = [
    "StrategyScore",
    "StrategySelector",
]
