"""Batch orchestrator.

Drives a batch of tasks to exactly one terminal outcome each:

    Pending -> Dispatched -> Running -> Succeeded
                                     -> Retrying -> (backoff) -> Dispatched
                                     -> Failed | Cancelled
    Pending -> Skipped                 (batch cancelled before dispatch)

Each attempt holds a limiter slot from dispatch until it finishes, runs
under the per-attempt timeout with a strategy picked by the selector, and
has any exception classified into a ``Failure``. The slot is released
before backoff so a waiting retry never blocks other tasks.

Two scheduling modes share the same per-task loop:

- ``in-process``: a dispatcher acquires a slot and only then spawns the
  task's coroutine, so there is never more live work than slots.
- ``worker-pool``: ``WorkerPool`` feeds a fixed set of workers from a
  bounded queue.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Iterable, Sequence

from batchpilot.core.classifier import ErrorClassifier
from batchpilot.core.config import BatchConfig, ExecutionMode, StrategySpec
from batchpilot.core.errors import AttemptCancelledError, BatchCancelledError, ErrorKind
from batchpilot.core.logging import ExecutionContext, get_logger, with_context
from batchpilot.core.models import (
    Attempt,
    BatchReport,
    Cancelled,
    ControlState,
    Failure,
    Outcome,
    Skipped,
    Success,
    Task,
    TaskResult,
    describe_outcome,
)
from batchpilot.execution.control import ControlChannel
from batchpilot.execution.limiter import ConcurrencyLimiter, resolve_max_concurrency
from batchpilot.execution.progress import ProgressAggregator, ProgressReporter
from batchpilot.execution.protocol import (
    ExecuteFn,
    ProgressObserver,
    ResultSink,
    TaskExecutor,
    as_executor,
    as_outcome,
    maybe_await,
)
from batchpilot.execution.retry import RetryPolicy
from batchpilot.execution.task_utils import wait_with_grace
from batchpilot.execution.workers import WorkerPool
from batchpilot.strategy.metrics import MetricsStore
from batchpilot.strategy.selector import StrategySelector

_logger = get_logger("orchestrator")


class BatchOrchestrator:
    """Runs batches of tasks against an executor.

    Collaborators are injected; anything not supplied is built from
    ``config``. The metrics store (and therefore strategy history) outlives
    individual ``run()`` calls, the control channel does not reset.

    Example:
        orchestrator = BatchOrchestrator(executor, BatchConfig(max_concurrency=4))
        report = await orchestrator.run(tasks)
    """

    def __init__(
        self,
        executor: TaskExecutor | ExecuteFn,
        config: BatchConfig | None = None,
        *,
        sink: ResultSink | None = None,
        observers: Sequence[ProgressObserver] = (),
        control: ControlChannel | None = None,
        metrics: MetricsStore | None = None,
        selector: StrategySelector | None = None,
        retry_policy: RetryPolicy | None = None,
        classifier: ErrorClassifier | None = None,
        max_concurrency: int | None = None,
    ) -> None:
        self._executor = as_executor(executor)
        self._config = config or BatchConfig()
        self._sink = sink
        self._observers = list(observers)
        self._control = control or ControlChannel()
        self._metrics = metrics or MetricsStore()
        self._selector = selector or StrategySelector(
            self._config.strategies,
            self._metrics,
            escalation_threshold=self._config.escalation_threshold,
        )
        self._retry = retry_policy or RetryPolicy.from_config(self._config)
        self._classifier = classifier or ErrorClassifier()
        self._max_concurrency_override = max_concurrency

        # per-run state, set by run()
        self._limiter: ConcurrencyLimiter | None = None
        self._aggregator: ProgressAggregator | None = None
        self._context: ExecutionContext | None = None

    @property
    def control(self) -> ControlChannel:
        return self._control

    @property
    def selector(self) -> StrategySelector:
        return self._selector

    @property
    def metrics(self) -> MetricsStore:
        return self._metrics

    @property
    def limiter(self) -> ConcurrencyLimiter | None:
        """Limiter of the current (or last) run."""
        return self._limiter

    @property
    def aggregator(self) -> ProgressAggregator | None:
        """Progress counters of the current (or last) run."""
        return self._aggregator

    def _resolve_limit(self) -> int:
        if self._max_concurrency_override is not None:
            return self._max_concurrency_override
        if self._config.mode is ExecutionMode.WORKER_POOL and self._config.worker_count:
            return self._config.worker_count
        return resolve_max_concurrency(self._config)

    # ─── Public API ────────────────────────────────────────────────────

    async def run(self, tasks: Iterable[Task], batch_id: str | None = None) -> BatchReport:
        """Process every task and return the batch report.

        Never raises for task-level failures; each task ends with exactly
        one outcome, delivered once to the sink.
        """
        task_list = list(tasks)
        limit = self._resolve_limit()
        self._limiter = ConcurrencyLimiter(limit, self._control)
        self._aggregator = ProgressAggregator(len(task_list))
        self._context = ExecutionContext(
            batch_id=batch_id or f"batch-{uuid.uuid4().hex[:8]}",
            component="orchestrator",
        )
        reporter = ProgressReporter(
            self._aggregator,
            self._observers,
            self._control,
            interval=self._config.progress_interval_seconds,
        )

        with with_context(self._context):
            _logger.info(
                "orchestrator.batch_started",
                tasks=len(task_list),
                max_concurrency=limit,
                mode=self._config.mode.value,
            )
            await reporter.start()
            try:
                if self._config.mode is ExecutionMode.WORKER_POOL:
                    results = await self._run_worker_pool(task_list, limit)
                else:
                    results = await self._run_in_process(task_list)
            finally:
                await reporter.stop()

            report = BatchReport(
                stats=self._aggregator.snapshot(),
                results=results,
                cancelled=self._control.is_cancelled,
                max_concurrency=limit,
            )
            _logger.info(
                "orchestrator.batch_finished",
                ok=report.ok,
                batch_cancelled=report.cancelled,
                peak_concurrency=self._limiter.peak_in_use,
                **report.stats.to_dict(),
            )
        return report

    # ─── Scheduling modes ──────────────────────────────────────────────

    async def _run_in_process(self, tasks: list[Task]) -> list[TaskResult]:
        in_flight: list[asyncio.Task[TaskResult]] = []
        skipped: list[TaskResult] = []

        for index, task in enumerate(tasks):
            try:
                await self._acquire_dispatch_slot()
            except BatchCancelledError:
                for rest in tasks[index:]:
                    skipped.append(await self._skip(rest))
                _logger.info("orchestrator.dispatch_stopped", skipped=len(tasks) - index)
                break
            in_flight.append(
                asyncio.create_task(
                    self._process_task(task, holding_slot=True),
                    name=f"task-{task.task_id}",
                )
            )

        await wait_with_grace(
            in_flight,
            self._control.wait_cancelled(),
            self._config.cancel_grace_seconds,
            _logger,
        )
        return [t.result() for t in in_flight] + skipped

    async def _run_worker_pool(self, tasks: list[Task], limit: int) -> list[TaskResult]:
        pool = WorkerPool(
            self._process_task,
            self._skip,
            self._config.worker_count or limit,
            self._control,
            cancel_grace_seconds=self._config.cancel_grace_seconds,
        )
        return await pool.run(tasks)

    # ─── Per-task loop ─────────────────────────────────────────────────

    async def _acquire_dispatch_slot(self) -> None:
        """Wait out any pause, then take a limiter slot.

        Pause is re-checked after the slot is granted; a slot won while the
        batch was being paused is handed back.

        Raises:
            BatchCancelledError: The batch was cancelled.
        """
        assert self._limiter is not None
        while True:
            await self._control.wait_until_runnable()
            await self._limiter.acquire()
            if self._control.state is ControlState.RUNNING:
                return
            self._limiter.release()

    async def _process_task(self, task: Task, holding_slot: bool = False) -> TaskResult:
        """Drive one task to its terminal outcome. Never raises."""
        assert self._limiter is not None and self._aggregator is not None
        held = holding_slot
        dispatched = False
        attempts = 0
        strategy: StrategySpec | None = None
        started = time.monotonic()
        outcome: Outcome

        try:
            while True:
                if not held:
                    try:
                        await self._acquire_dispatch_slot()
                    except BatchCancelledError:
                        outcome = Cancelled() if dispatched else Skipped()
                        break
                    held = True
                if not dispatched:
                    dispatched = True
                    self._aggregator.record_start()

                attempts += 1
                try:
                    strategy = self._selector.select(task.key)
                    outcome = await self._run_attempt(task, strategy, attempts)
                finally:
                    self._limiter.release()
                    held = False

                if not isinstance(outcome, Failure):
                    break
                if (
                    outcome.kind is ErrorKind.STRATEGY_FAILED
                    and self._selector.requires_manual_intervention(task.key)
                ):
                    outcome = Failure(
                        kind=ErrorKind.REQUIRES_MANUAL_INTERVENTION,
                        message=f"all automated strategies exhausted; last: {outcome.message}",
                        retryable=False,
                    )
                    break
                if not self._retry.should_retry(attempts, outcome):
                    outcome = self._retry.exhausted(outcome, attempts)
                    break

                delay = self._retry.delay_for(attempts)
                _logger.info(
                    "orchestrator.retry_scheduled",
                    task_id=task.task_id,
                    attempt=attempts,
                    delay_seconds=delay,
                    error_kind=outcome.kind.value,
                )
                if not await self._control.sleep(delay):
                    outcome = Cancelled()
                    break
                self._aggregator.record_retry()
        except Exception as e:
            # the task still gets exactly one outcome
            _logger.exception("orchestrator.task_loop_error", task_id=task.task_id, error=str(e))
            if held:
                self._limiter.release()
                held = False
            if not dispatched:
                self._aggregator.record_start()
            outcome = Failure(ErrorKind.PERMANENT, f"{type(e).__name__}: {e}")

        return await self._finish(
            task,
            outcome,
            attempts=attempts,
            strategy=strategy.name if strategy else None,
            duration=time.monotonic() - started if dispatched else 0.0,
        )

    async def _run_attempt(self, task: Task, strategy: StrategySpec, number: int) -> Outcome:
        assert self._aggregator is not None and self._context is not None
        attempt = Attempt(task=task, strategy=strategy.name, number=number)
        self._aggregator.record_attempt()

        with with_context(self._context.with_task(task.task_id, attempt=number)):
            _logger.debug("orchestrator.attempt_started", strategy=strategy.name)
            try:
                value = await asyncio.wait_for(
                    self._executor.execute(task, strategy, self._control.hook()),
                    timeout=self._retry.attempt_timeout,
                )
                outcome = as_outcome(value)
            except TimeoutError:
                outcome = self._retry.timeout_failure()
            except AttemptCancelledError:
                outcome = Cancelled(reason="attempt observed batch cancel")
            except Exception as e:
                outcome = self._classifier.classify(e)
            attempt.finish(outcome)

            if isinstance(outcome, Success):
                self._selector.record_success(task.key, strategy, attempt.duration_seconds)
            elif isinstance(outcome, Failure):
                self._selector.record_failure(task.key, strategy, outcome)
            _logger.debug(
                "orchestrator.attempt_finished",
                strategy=strategy.name,
                outcome=describe_outcome(outcome),
                duration_seconds=round(attempt.duration_seconds, 3),
            )
        return outcome

    async def _skip(self, task: Task) -> TaskResult:
        return await self._finish(task, Skipped(), attempts=0, strategy=None, duration=0.0)

    async def _finish(
        self,
        task: Task,
        outcome: Outcome,
        *,
        attempts: int,
        strategy: str | None,
        duration: float,
    ) -> TaskResult:
        assert self._aggregator is not None
        self._aggregator.record_outcome(outcome)
        _logger.info(
            "orchestrator.task_finished",
            task_id=task.task_id,
            status=outcome.status.value,
            attempts=attempts,
            strategy=strategy,
            detail=describe_outcome(outcome),
        )
        if self._sink is not None:
            try:
                await maybe_await(self._sink.on_outcome(task, outcome))
            except Exception as e:
                _logger.error(
                    "orchestrator.sink_failed",
                    task_id=task.task_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
        return TaskResult(
            task=task,
            outcome=outcome,
            attempts=attempts,
            strategy=strategy,
            duration_seconds=duration,
        )


__all__ = ["BatchOrchestrator"]
