"""Helpers for asyncio.Task lifecycle in the orchestrator.

``log_task_exception`` surfaces exceptions from background tasks (the
progress reporter, workers, the collector) from their done-callbacks so a
dying loop is never silent. ``wait_with_grace`` waits out in-flight
work after a cancel without ever abandoning it.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Iterable
from typing import Any


def log_task_exception(
    task: asyncio.Task[Any],
    logger: Any,
    event: str,
    *,
    level: str = "error",
) -> BaseException | None:
    """Log the exception of a completed task, if it has one.

    Args:
        task: The completed task to inspect.
        logger: A logger with ``error()``/``warning()`` methods.
        event: Dotted event name, e.g. ``"progress.loop_died"``.
        level: Logger method to use.

    Returns:
        The exception, or None if the task finished normally or was cancelled.
    """
    if task.cancelled():
        return None
    exc = task.exception()
    if exc is not None:
        log_fn = getattr(logger, level, logger.error)
        log_fn(event, error=str(exc), error_type=type(exc).__name__, task_name=task.get_name())
    return exc


async def wait_with_grace(
    tasks: Iterable[asyncio.Task[Any]],
    cancelled: Awaitable[Any],
    grace_seconds: float,
    logger: Any,
) -> None:
    """Wait for ``tasks``; once ``cancelled`` fires, allow a grace period.

    Tasks still running when the grace period ends are logged and then
    awaited anyway, so their outcomes are never lost.
    """
    pending: set[asyncio.Task[Any]] = set(tasks)
    watcher = asyncio.ensure_future(cancelled)
    try:
        while pending:
            done, still = await asyncio.wait(
                pending | {watcher}, return_when=asyncio.FIRST_COMPLETED
            )
            pending = {t for t in still if t is not watcher}
            if watcher in done:
                break
    finally:
        watcher.cancel()

    if not pending:
        return
    _, pending = await asyncio.wait(pending, timeout=grace_seconds)
    if pending:
        logger.warning(
            "orchestrator.cancel_grace_expired",
            still_running=sorted(t.get_name() for t in pending),
            grace_seconds=grace_seconds,
        )
        await asyncio.wait(pending)


__all__ = ["log_task_exception", "wait_with_grace"]
