"""Live batch progress: counters and the periodic reporter.

``ProgressAggregator`` owns the batch counters and hands out consistent
``BatchStats`` snapshots. ``ProgressReporter`` is a background loop that
pushes a snapshot to every registered observer at a fixed interval.
"""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Callable, Sequence
from contextlib import suppress
from datetime import datetime

from batchpilot.core.logging import get_logger
from batchpilot.core.models import BatchStats, Cancelled, Failure, Outcome, Skipped, Success
from batchpilot.execution.control import ControlChannel
from batchpilot.execution.protocol import ProgressObserver, maybe_await
from batchpilot.execution.task_utils import log_task_exception
from batchpilot.utils.time import utc_now

_logger = get_logger("progress")


class ProgressAggregator:
    """Thread-safe batch counters.

    Every mutation and every snapshot takes the same lock, so a snapshot
    always satisfies ``succeeded + failed + skipped == completed``.
    """

    def __init__(
        self,
        total: int,
        *,
        monotonic: Callable[[], float] = time.monotonic,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if total < 0:
            raise ValueError("total must be >= 0")
        self._total = total
        self._monotonic = monotonic
        self._lock = threading.Lock()
        self._started_at = clock()
        self._started_mono = monotonic()
        self._succeeded = 0
        self._failed = 0
        self._skipped = 0
        self._cancelled = 0
        self._in_progress = 0
        self._attempts = 0
        self._retries = 0

    @property
    def total(self) -> int:
        return self._total

    def record_start(self) -> None:
        """A task was dispatched and is now in flight."""
        with self._lock:
            self._in_progress += 1

    def record_attempt(self) -> None:
        with self._lock:
            self._attempts += 1

    def record_retry(self) -> None:
        with self._lock:
            self._retries += 1

    def record_outcome(self, outcome: Outcome) -> None:
        """Fold a task's terminal outcome into the counters.

        ``Skipped`` tasks were never dispatched, so only the other variants
        leave the in-progress count.
        """
        with self._lock:
            if isinstance(outcome, Success):
                self._succeeded += 1
            elif isinstance(outcome, Failure):
                self._failed += 1
            elif isinstance(outcome, Cancelled):
                self._skipped += 1
                self._cancelled += 1
            elif isinstance(outcome, Skipped):
                self._skipped += 1
            else:
                raise TypeError(f"not an outcome: {outcome!r}")
            if not isinstance(outcome, Skipped):
                self._in_progress = max(0, self._in_progress - 1)

    def snapshot(self) -> BatchStats:
        with self._lock:
            completed = self._succeeded + self._failed + self._skipped
            return BatchStats(
                total=self._total,
                completed=completed,
                succeeded=self._succeeded,
                failed=self._failed,
                skipped=self._skipped,
                cancelled=self._cancelled,
                in_progress=self._in_progress,
                attempts=self._attempts,
                retries=self._retries,
                started_at=self._started_at,
                elapsed_seconds=self._monotonic() - self._started_mono,
            )


class ProgressReporter:
    """Background loop that publishes snapshots to observers.

    Observer errors are logged and never stop the loop. Observers may be
    plain or ``async def`` callbacks.
    """

    def __init__(
        self,
        aggregator: ProgressAggregator,
        observers: Sequence[ProgressObserver] = (),
        control: ControlChannel | None = None,
        interval: float = 1.5,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self._aggregator = aggregator
        self._observers = list(observers)
        self._control = control
        self._interval = interval
        self._task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._task is not None

    def _cancelled(self) -> bool:
        return self._control is not None and self._control.is_cancelled

    async def start(self) -> None:
        if self._task is not None or not self._observers:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop(), name="progress-reporter")
        self._task.add_done_callback(self._on_loop_done)
        _logger.debug("progress.started", interval=self._interval)

    async def stop(self) -> None:
        """Stop the loop and, unless the batch was cancelled, publish once more."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        if self._observers and not self._cancelled():
            await self.publish()
        _logger.debug("progress.stopped")

    async def publish(self) -> None:
        """Send the current snapshot to every observer."""
        stats = self._aggregator.snapshot()
        for observer in self._observers:
            try:
                await maybe_await(observer.on_snapshot(stats))
            except Exception as e:
                _logger.warning(
                    "progress.observer_failed",
                    observer=type(observer).__name__,
                    error=str(e),
                )

    def _on_loop_done(self, task: asyncio.Task[None]) -> None:
        log_task_exception(task, _logger, "progress.loop_died")

    async def _loop(self) -> None:
        while self._running and not self._cancelled():
            await asyncio.sleep(self._interval)
            if not self._running or self._cancelled():
                break
            await self.publish()


__all__ = ["ProgressAggregator", "ProgressReporter"]
