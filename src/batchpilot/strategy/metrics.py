"""Per-(identity, strategy) attempt statistics.

The store is injected into the selector and orchestrator rather than held
as module state. Updates lock only the key being changed, so attempts for
unrelated identities never serialize behind each other.

History is process-lifetime only: nothing is persisted and entries are
never deleted while the process runs.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import datetime

from batchpilot.core.logging import get_logger
from batchpilot.core.models import StrategyMetrics
from batchpilot.utils.time import utc_now

_logger = get_logger("strategy.metrics")

MetricsKey = tuple[str, str]


class MetricsStore:
    """Thread-safe map of (identity, strategy) -> StrategyMetrics.

    Each key has its own lock; a registry lock is held only while a key's
    lock is created, never during an update.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock
        self._entries: dict[MetricsKey, StrategyMetrics] = {}
        self._locks: dict[MetricsKey, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, key: MetricsKey) -> threading.Lock:
        lock = self._locks.get(key)
        if lock is None:
            with self._registry_lock:
                lock = self._locks.get(key)
                if lock is None:
                    lock = threading.Lock()
                    # entry must exist before the lock becomes visible
                    self._entries[key] = StrategyMetrics()
                    self._locks[key] = lock
        return lock

    def record_success(self, identity: str, strategy: str, duration: float) -> StrategyMetrics:
        """Record a successful attempt and return a copy of the updated entry."""
        key = (identity, strategy)
        with self._lock_for(key):
            metrics = self._entries[key]
            metrics.attempts += 1
            metrics.successes += 1
            metrics.total_duration += duration
            metrics.consecutive_successes += 1
            metrics.last_success_at = self._clock()
            updated = metrics.copy()
        _logger.debug(
            "metrics.success_recorded",
            identity=identity,
            strategy=strategy,
            success_rate=round(updated.success_rate, 3),
        )
        return updated

    def record_failure(
        self,
        identity: str,
        strategy: str,
        error: str | None = None,
    ) -> StrategyMetrics:
        """Record a failed attempt and return a copy of the updated entry."""
        key = (identity, strategy)
        with self._lock_for(key):
            metrics = self._entries[key]
            metrics.attempts += 1
            metrics.failures += 1
            metrics.consecutive_successes = 0
            metrics.last_failure_at = self._clock()
            metrics.last_error = error
            updated = metrics.copy()
        _logger.debug(
            "metrics.failure_recorded",
            identity=identity,
            strategy=strategy,
            success_rate=round(updated.success_rate, 3),
        )
        return updated

    def get(self, identity: str, strategy: str) -> StrategyMetrics | None:
        """Return a copy of the entry, or None if nothing was recorded."""
        key = (identity, strategy)
        lock = self._locks.get(key)
        if lock is None:
            return None
        with lock:
            return self._entries[key].copy()

    def snapshot(self) -> dict[MetricsKey, StrategyMetrics]:
        """Copy every entry; each entry is read under its own lock."""
        with self._registry_lock:
            keys = list(self._locks)
        return {key: metrics for key in keys if (metrics := self.get(*key)) is not None}

    def __len__(self) -> int:
        return len(self._locks)


__all__ = ["MetricsKey", "MetricsStore"]
