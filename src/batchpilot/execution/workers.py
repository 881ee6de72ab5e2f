"""Worker-pool execution mode.

A fixed number of workers pull tasks from a bounded queue, run each one
through the orchestrator's per-task loop and push the ``TaskResult`` onto
an outcome queue drained by a single collector. The bounded queue gives
backpressure: the producer never runs more than one queue's worth ahead of
the workers.

On cancel, workers stop taking new items and the tasks still sitting in
the queue are skipped at once rather than when a worker next frees up.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from contextlib import suppress

from batchpilot.core.errors import BatchCancelledError
from batchpilot.core.logging import get_logger
from batchpilot.core.models import Task, TaskResult
from batchpilot.execution.control import ControlChannel
from batchpilot.execution.task_utils import log_task_exception, wait_with_grace

_logger = get_logger("workers")

ProcessFn = Callable[[Task], Awaitable[TaskResult]]
SkipFn = Callable[[Task], Awaitable[TaskResult]]

_Item = tuple[int, Task]
_Result = tuple[int, TaskResult]


class WorkerPool:
    """Runs tasks on ``worker_count`` workers fed by a bounded queue.

    Args:
        process: Runs one task to its terminal result (never raises).
        skip: Produces the result for a task that is never dispatched.
        worker_count: Number of workers.
        control: Batch control channel.
        cancel_grace_seconds: How long workers get to wind down after a
            cancel before they are reported as still running.
        queue_size: Task queue bound; defaults to ``worker_count``.
    """

    def __init__(
        self,
        process: ProcessFn,
        skip: SkipFn,
        worker_count: int,
        control: ControlChannel,
        *,
        cancel_grace_seconds: float = 10.0,
        queue_size: int | None = None,
    ) -> None:
        if worker_count < 1:
            raise ValueError("worker_count must be at least 1")
        self._process = process
        self._skip = skip
        self._worker_count = worker_count
        self._control = control
        self._grace = cancel_grace_seconds
        self._queue_size = queue_size or worker_count

    @property
    def worker_count(self) -> int:
        return self._worker_count

    async def run(self, tasks: Sequence[Task]) -> list[TaskResult]:
        """Process every task; results come back in input order."""
        queue: asyncio.Queue[_Item | None] = asyncio.Queue(maxsize=self._queue_size)
        outcomes: asyncio.Queue[_Result | None] = asyncio.Queue()
        results: dict[int, TaskResult] = {}

        collector = asyncio.create_task(self._collect(outcomes, results), name="collector")
        collector.add_done_callback(self._on_collector_done)
        workers = [
            asyncio.create_task(self._worker(i, queue, outcomes), name=f"worker-{i}")
            for i in range(self._worker_count)
        ]
        for worker in workers:
            worker.add_done_callback(self._on_worker_done)
        drainer = asyncio.create_task(self._skip_queued_on_cancel(queue, outcomes), name="drainer")
        drainer.add_done_callback(self._on_drainer_done)
        _logger.info("workers.started", worker_count=self._worker_count, tasks=len(tasks))

        try:
            await self._produce(tasks, queue, outcomes)
            await self._close(queue)
            await wait_with_grace(
                workers, self._control.wait_cancelled(), self._grace, _logger
            )
        finally:
            for worker in workers:
                if not worker.done():
                    worker.cancel()
            if self._control.is_cancelled:
                await drainer
                # a put that landed alongside the cancel
                await self._drain(queue, outcomes)
            else:
                drainer.cancel()
                with suppress(asyncio.CancelledError):
                    await drainer
            await outcomes.put(None)
            await collector

        _logger.info("workers.finished", results=len(results))
        return [results[i] for i in sorted(results)]

    async def _produce(
        self,
        tasks: Sequence[Task],
        queue: asyncio.Queue[_Item | None],
        outcomes: asyncio.Queue[_Result | None],
    ) -> None:
        for index, task in enumerate(tasks):
            try:
                await self._control.wait_until_runnable()
                await self._put_or_cancel(queue, (index, task))
            except BatchCancelledError:
                for rest_index in range(index, len(tasks)):
                    result = await self._skip(tasks[rest_index])
                    await outcomes.put((rest_index, result))
                _logger.info("workers.producer_cancelled", skipped=len(tasks) - index)
                return

    async def _close(self, queue: asyncio.Queue[_Item | None]) -> None:
        """Send one stop marker per worker; workers exit on cancel without them."""
        for _ in range(self._worker_count):
            try:
                await self._put_or_cancel(queue, None)
            except BatchCancelledError:
                return

    async def _skip_queued_on_cancel(
        self,
        queue: asyncio.Queue[_Item | None],
        outcomes: asyncio.Queue[_Result | None],
    ) -> None:
        # Queued tasks must not wait for a busy worker to be reported skipped.
        await self._control.wait_cancelled()
        skipped = await self._drain(queue, outcomes)
        if skipped:
            _logger.info("workers.queue_drained", skipped=skipped)

    async def _drain(
        self,
        queue: asyncio.Queue[_Item | None],
        outcomes: asyncio.Queue[_Result | None],
    ) -> int:
        skipped = 0
        while True:
            try:
                item = queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            if item is None:
                continue
            index, task = item
            await outcomes.put((index, await self._skip(task)))
            skipped += 1
        return skipped

    async def _put_or_cancel(
        self, queue: asyncio.Queue[_Item | None], item: _Item | None
    ) -> None:
        if self._control.is_cancelled:
            raise BatchCancelledError("batch cancelled")
        if not queue.full():
            queue.put_nowait(item)
            return
        put = asyncio.ensure_future(queue.put(item))
        cancelled = asyncio.ensure_future(self._control.wait_cancelled())
        try:
            await asyncio.wait({put, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancelled.cancel()
            if not put.done():
                put.cancel()
                with suppress(asyncio.CancelledError):
                    await put
        if put.cancelled():
            raise BatchCancelledError("batch cancelled")

    async def _worker(
        self,
        worker_id: int,
        queue: asyncio.Queue[_Item | None],
        outcomes: asyncio.Queue[_Result | None],
    ) -> None:
        processed = 0
        while True:
            item = await self._get_or_cancel(queue)
            if item is None:
                break
            index, task = item
            if self._control.is_cancelled:
                result = await self._skip(task)
            else:
                result = await self._process(task)
                processed += 1
            await outcomes.put((index, result))
        _logger.debug("workers.worker_exited", worker_id=worker_id, processed=processed)

    async def _get_or_cancel(self, queue: asyncio.Queue[_Item | None]) -> _Item | None:
        """Next queued item, or None once the batch is cancelled."""
        if self._control.is_cancelled:
            return None
        if not queue.empty():
            return queue.get_nowait()
        get = asyncio.ensure_future(queue.get())
        cancelled = asyncio.ensure_future(self._control.wait_cancelled())
        try:
            await asyncio.wait({get, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancelled.cancel()
            if not get.done():
                get.cancel()
                with suppress(asyncio.CancelledError):
                    await get
        if get.cancelled():
            return None
        return get.result()

    async def _collect(
        self,
        outcomes: asyncio.Queue[_Result | None],
        results: dict[int, TaskResult],
    ) -> None:
        while True:
            item = await outcomes.get()
            if item is None:
                return
            index, result = item
            results[index] = result

    def _on_worker_done(self, task: asyncio.Task[None]) -> None:
        log_task_exception(task, _logger, "workers.worker_died")

    def _on_collector_done(self, task: asyncio.Task[None]) -> None:
        log_task_exception(task, _logger, "workers.collector_died")

    def _on_drainer_done(self, task: asyncio.Task[None]) -> None:
        log_task_exception(task, _logger, "workers.drainer_died")


__all__ = ["WorkerPool"]
