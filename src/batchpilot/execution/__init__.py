"""Batch execution: limiter, retry, control, progress and the orchestrator."""

from batchpilot.execution.control import CancelHook, ControlChannel, install_signal_handlers
from batchpilot.execution.limiter import (
    ConcurrencyLimiter,
    HostResources,
    compute_max_concurrency,
    resolve_max_concurrency,
)
from batchpilot.execution.orchestrator import BatchOrchestrator
from batchpilot.execution.progress import ProgressAggregator, ProgressReporter
from batchpilot.execution.protocol import (
    ListResultSink,
    ProgressObserver,
    ResultSink,
    TaskExecutor,
)
from batchpilot.execution.retry import RetryPolicy
from batchpilot.execution.workers import WorkerPool

__all__ = [
    "BatchOrchestrator",
    "CancelHook",
    "ConcurrencyLimiter",
    "ControlChannel",
    "HostResources",
    "ListResultSink",
    "ProgressAggregator",
    "ProgressObserver",
    "ProgressReporter",
    "ResultSink",
    "RetryPolicy",
    "TaskExecutor",
    "WorkerPool",
    "compute_max_concurrency",
    "install_signal_handlers",
    "resolve_max_concurrency",
]
