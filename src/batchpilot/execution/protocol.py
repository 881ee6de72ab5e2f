"""Interfaces between the orchestrator and its external collaborators.

The orchestrator never knows how a task is actually performed. It calls a
``TaskExecutor`` once per attempt, reports each task's terminal outcome to a
``ResultSink`` and pushes progress snapshots to ``ProgressObserver``s.
Protocols are structural; any object with the right method works.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from batchpilot.core.config import StrategySpec
from batchpilot.core.models import BatchStats, Outcome, Success, Task, is_outcome

if TYPE_CHECKING:
    from batchpilot.execution.control import CancelHook


@runtime_checkable
class TaskExecutor(Protocol):
    """Performs one attempt of a task with a given strategy.

    Implementations must not retry internally; the orchestrator owns retry.
    They may raise, return an ``Outcome``, or return any other value (taken
    as the result of a ``Success``). Long-running executors should call
    ``hook.before_step()`` between steps so a batch cancel is observed.
    """

    async def execute(self, task: Task, strategy: StrategySpec, hook: CancelHook) -> Any: ...


@runtime_checkable
class ResultSink(Protocol):
    """Receives exactly one terminal outcome per task. May be sync or async."""

    def on_outcome(self, task: Task, outcome: Outcome) -> Any: ...


@runtime_checkable
class ProgressObserver(Protocol):
    """Receives periodic BatchStats snapshots. May be sync or async."""

    def on_snapshot(self, stats: BatchStats) -> Any: ...


ExecuteFn = Callable[[Task, StrategySpec, "CancelHook"], Awaitable[Any]]


class CallableExecutor:
    """Adapts a plain ``async def fn(task, strategy, hook)`` to TaskExecutor."""

    def __init__(self, fn: ExecuteFn) -> None:
        self._fn = fn

    async def execute(self, task: Task, strategy: StrategySpec, hook: CancelHook) -> Any:
        return await self._fn(task, strategy, hook)


def as_executor(executor: TaskExecutor | ExecuteFn) -> TaskExecutor:
    """Accept either an executor object or an async callable."""
    if isinstance(executor, TaskExecutor):
        return executor
    if callable(executor):
        return CallableExecutor(executor)
    raise TypeError(f"not a task executor: {executor!r}")


def as_outcome(value: Any) -> Outcome:
    """Executors may return a bare result; wrap it as a Success."""
    if is_outcome(value):
        return value
    return Success(result=value)


class ListResultSink:
    """In-memory sink, handy for tests and the simulate command."""

    def __init__(self) -> None:
        self.outcomes: list[tuple[Task, Outcome]] = []

    def on_outcome(self, task: Task, outcome: Outcome) -> None:
        self.outcomes.append((task, outcome))

    def outcome_for(self, task_id: str) -> Outcome | None:
        for task, outcome in self.outcomes:
            if task.task_id == task_id:
                return outcome
        return None

    def __len__(self) -> int:
        return len(self.outcomes)


async def maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


__all__ = [
    "CallableExecutor",
    "ExecuteFn",
    "ListResultSink",
    "ProgressObserver",
    "ResultSink",
    "TaskExecutor",
    "as_executor",
    "as_outcome",
    "maybe_await",
]
