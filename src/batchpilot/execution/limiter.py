"""Concurrency limiting for browser-session attempts.

Every live attempt holds one limiter slot for its whole duration, so the
number of concurrently running attempts never exceeds the limit. The limit
itself is derived once per batch from host resources:

    limit = max(2, min(floor(available_gb * 0.7 / per_task_gb),
                       floor(cpu_count * 1.5),
                       external_service_cap))

Memory keeps 30% headroom for the host; the CPU factor oversubscribes
because attempts are mostly waiting on the browser farm.
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass

import psutil

from batchpilot.core.config import BatchConfig
from batchpilot.core.errors import BatchCancelledError
from batchpilot.core.logging import get_logger
from batchpilot.execution.control import ControlChannel

_logger = get_logger("limiter")

MEMORY_HEADROOM = 0.7
CPU_OVERSUBSCRIPTION = 1.5
MIN_CONCURRENCY = 2

_BYTES_PER_GB = 1024**3


def concurrency_bounds(
    available_memory_gb: float,
    cpu_count: int,
    per_task_memory_gb: float = 0.5,
    external_service_cap: int = 10,
) -> tuple[int, int, int]:
    """Return the (memory, cpu, service) bounds before they are combined."""
    memory_bound = math.floor(available_memory_gb * MEMORY_HEADROOM / per_task_memory_gb)
    cpu_bound = math.floor(cpu_count * CPU_OVERSUBSCRIPTION)
    return memory_bound, cpu_bound, external_service_cap


def compute_max_concurrency(
    available_memory_gb: float,
    cpu_count: int,
    per_task_memory_gb: float = 0.5,
    external_service_cap: int = 10,
) -> int:
    """Derive the concurrency limit from host resources.

    Pure function. Never returns less than 2.
    """
    bounds = concurrency_bounds(
        available_memory_gb, cpu_count, per_task_memory_gb, external_service_cap
    )
    return max(MIN_CONCURRENCY, min(bounds))


@dataclass(frozen=True)
class HostResources:
    """Snapshot of the resources the concurrency limit is derived from."""

    available_memory_gb: float
    cpu_count: int

    @classmethod
    def probe(cls) -> HostResources:
        """Read available memory and logical CPU count via psutil."""
        available = psutil.virtual_memory().available
        cpus = psutil.cpu_count(logical=True) or 1
        return cls(available_memory_gb=available / _BYTES_PER_GB, cpu_count=cpus)


def resolve_max_concurrency(
    config: BatchConfig,
    resources: HostResources | None = None,
) -> int:
    """Return the configured override, or compute the limit from the host."""
    if config.max_concurrency is not None:
        _logger.info(
            "limiter.concurrency_resolved",
            max_concurrency=config.max_concurrency,
            source="config",
        )
        return config.max_concurrency

    resources = resources or HostResources.probe()
    limit = compute_max_concurrency(
        resources.available_memory_gb,
        resources.cpu_count,
        per_task_memory_gb=config.per_task_memory_gb,
        external_service_cap=config.external_service_cap,
    )
    _logger.info(
        "limiter.concurrency_resolved",
        max_concurrency=limit,
        source="host",
        available_memory_gb=round(resources.available_memory_gb, 2),
        cpu_count=resources.cpu_count,
        external_service_cap=config.external_service_cap,
    )
    return limit


class ConcurrencyLimiter:
    """Counting semaphore that also refuses work once the batch is cancelled.

    Holds no task state; callers pair every successful ``acquire()`` with
    exactly one ``release()`` (or use ``slot()``).
    """

    def __init__(self, limit: int, control: ControlChannel | None = None) -> None:
        if limit < 1:
            raise ValueError(f"limit must be at least 1, got {limit}")
        self._limit = limit
        self._control = control
        self._semaphore = asyncio.Semaphore(limit)
        self._in_use = 0
        self._peak = 0

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def in_use(self) -> int:
        return self._in_use

    @property
    def available(self) -> int:
        return self._limit - self._in_use

    @property
    def peak_in_use(self) -> int:
        """Highest number of slots held at once since creation."""
        return self._peak

    def _check_cancelled(self) -> None:
        if self._control is not None and self._control.is_cancelled:
            raise BatchCancelledError("batch cancelled")

    async def acquire(self) -> None:
        """Suspend until a slot is free.

        Raises:
            BatchCancelledError: If the batch is cancelled before or while
                waiting. No slot is held in that case.
        """
        self._check_cancelled()
        if self._control is None:
            await self._semaphore.acquire()
        else:
            await self._acquire_or_cancel(self._control)
        self._in_use += 1
        self._peak = max(self._peak, self._in_use)

    async def _acquire_or_cancel(self, control: ControlChannel) -> None:
        acquire = asyncio.ensure_future(self._semaphore.acquire())
        cancelled = asyncio.ensure_future(control.wait_cancelled())
        refused = True
        try:
            await asyncio.wait({acquire, cancelled}, return_when=asyncio.FIRST_COMPLETED)
            refused = control.is_cancelled
        finally:
            cancelled.cancel()
            if not acquire.done():
                acquire.cancel()
                with suppress(asyncio.CancelledError):
                    await acquire
            if refused and acquire.done() and not acquire.cancelled():
                # won the semaphore but the batch is gone (or we were cancelled)
                self._semaphore.release()
        if refused:
            raise BatchCancelledError("batch cancelled")

    def release(self) -> None:
        """Return a slot. Never blocks.

        Raises:
            RuntimeError: If more slots are released than were acquired.
        """
        if self._in_use <= 0:
            raise RuntimeError("ConcurrencyLimiter released more times than acquired")
        self._in_use -= 1
        self._semaphore.release()

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        await self.acquire()
        try:
            yield
        finally:
            self.release()


__all__ = [
    "ConcurrencyLimiter",
    "HostResources",
    "compute_max_concurrency",
    "concurrency_bounds",
    "resolve_max_concurrency",
]
