"""Test executors and sinks shared across orchestrator tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from batchpilot.core.config import StrategySpec
from batchpilot.core.models import BatchStats, Outcome, Success, Task
from batchpilot.execution.control import CancelHook

Behaviour = Callable[[Task, StrategySpec, int], Any]


class ScriptedExecutor:
    """Executor whose per-attempt behaviour is scripted by a callback.

    ``behaviour(task, strategy, attempt_number)`` may return an outcome or a
    value, or raise. Tracks calls and the peak number of concurrent
    attempts.
    """

    def __init__(self, behaviour: Behaviour | None = None, duration: float = 0.01) -> None:
        self._behaviour = behaviour
        self._duration = duration
        self.calls: list[tuple[str, str]] = []
        self.attempts: dict[str, int] = {}
        self.running = 0
        self.peak_running = 0

    async def execute(self, task: Task, strategy: StrategySpec, hook: CancelHook) -> Any:
        number = self.attempts.get(task.task_id, 0) + 1
        self.attempts[task.task_id] = number
        self.calls.append((task.task_id, strategy.name))
        self.running += 1
        self.peak_running = max(self.peak_running, self.running)
        try:
            await asyncio.sleep(self._duration)
            if self._behaviour is None:
                return Success(result=task.task_id)
            return self._behaviour(task, strategy, number)
        finally:
            self.running -= 1


class RecordingSink:
    """Result sink that remembers every outcome it receives."""

    def __init__(self) -> None:
        self.received: list[tuple[str, Outcome]] = []

    def on_outcome(self, task: Task, outcome: Outcome) -> None:
        self.received.append((task.task_id, outcome))

    def count_for(self, task_id: str) -> int:
        return sum(1 for tid, _ in self.received if tid == task_id)


class TimedSink:
    """Result sink that stamps each outcome with the loop time it arrived."""

    def __init__(self) -> None:
        self.received: list[tuple[str, Outcome, float]] = []

    def on_outcome(self, task: Task, outcome: Outcome) -> None:
        self.received.append((task.task_id, outcome, asyncio.get_running_loop().time()))

    def times(self, outcome_type: type) -> list[float]:
        return [at for _, outcome, at in self.received if isinstance(outcome, outcome_type)]

    def times_other_than(self, outcome_type: type) -> list[float]:
        return [at for _, outcome, at in self.received if not isinstance(outcome, outcome_type)]


class RecordingObserver:
    """Progress observer that keeps every snapshot."""

    def __init__(self) -> None:
        self.snapshots: list[BatchStats] = []

    def on_snapshot(self, stats: BatchStats) -> None:
        self.snapshots.append(stats)


def make_task_list(count: int) -> list[Task]:
    return [Task(task_id=f"task-{i}") for i in range(1, count + 1)]
