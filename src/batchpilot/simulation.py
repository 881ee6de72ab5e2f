"""Synthetic executor for dry runs and tests.

``SimulatedExecutor`` stands in for the browser farm: each attempt sleeps
in small steps (checking the cancel hook between them) and then fails or
succeeds at random according to configured odds. Seeded runs are
reproducible.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Mapping

from batchpilot.core.config import StrategySpec
from batchpilot.core.errors import StrategyFailedError, TransientTaskError
from batchpilot.core.models import Success, Task
from batchpilot.execution.control import CancelHook

DEFAULT_STEPS = 4


class SimulatedExecutor:
    """Executor with randomised duration and failures.

    Args:
        min_duration: Shortest attempt, in seconds.
        max_duration: Longest attempt, in seconds.
        failure_rate: Probability an attempt fails transiently.
        strategy_success: Probability, per strategy name, that the strategy
            works once no transient failure occurred. Unlisted strategies
            always work.
        seed: Seed for the random generator.
        steps: Number of sleeps per attempt; the hook is checked before each.
    """

    def __init__(
        self,
        min_duration: float = 0.05,
        max_duration: float = 0.2,
        failure_rate: float = 0.1,
        strategy_success: Mapping[str, float] | None = None,
        seed: int | None = None,
        steps: int = DEFAULT_STEPS,
    ) -> None:
        if min_duration < 0 or max_duration < min_duration:
            raise ValueError("need 0 <= min_duration <= max_duration")
        if not 0.0 <= failure_rate <= 1.0:
            raise ValueError("failure_rate must be within [0, 1]")
        self._min = min_duration
        self._max = max_duration
        self._failure_rate = failure_rate
        self._strategy_success = dict(strategy_success or {})
        self._random = random.Random(seed)
        self._steps = max(1, steps)
        self.calls = 0

    async def execute(self, task: Task, strategy: StrategySpec, hook: CancelHook) -> Success:
        self.calls += 1
        duration = self._random.uniform(self._min, self._max)
        transient = self._random.random() < self._failure_rate
        works = self._random.random() < self._strategy_success.get(strategy.name, 1.0)

        for _ in range(self._steps):
            hook.before_step()
            await asyncio.sleep(duration / self._steps)
        hook.before_step()

        if transient:
            raise TransientTaskError(f"browser session for {task.task_id} disconnected")
        if not works:
            raise StrategyFailedError(f"login failed with strategy {strategy.name}")
        return Success(result={"task_id": task.task_id, "strategy": strategy.name})


def make_tasks(count: int, prefix: str = "profile") -> list[Task]:
    """Build ``count`` tasks named ``<prefix>-1`` .. ``<prefix>-<count>``."""
    return [Task(task_id=f"{prefix}-{i}") for i in range(1, count + 1)]


__all__ = ["SimulatedExecutor", "make_tasks"]
