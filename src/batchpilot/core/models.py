"""Domain models for batch execution.

Tasks, attempts, the tagged ``Outcome`` union, per-strategy metrics, batch
statistics snapshots and the final batch report.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from batchpilot.core.errors import ErrorKind


class TaskStatus(str, Enum):
    """Per-task state machine.

    Pending -> Dispatched -> Running -> {Succeeded, Retrying, Failed,
    Cancelled, Skipped}; Retrying -> Dispatched after the backoff delay.
    """

    PENDING = "pending"
    DISPATCHED = "dispatched"
    RUNNING = "running"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (
            TaskStatus.SUCCEEDED,
            TaskStatus.FAILED,
            TaskStatus.CANCELLED,
            TaskStatus.SKIPPED,
        )


class ControlState(str, Enum):
    """Operator-driven batch state. CANCELLED is terminal."""

    RUNNING = "running"
    PAUSED = "paused"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Task:
    """One unit of work, e.g. "resume the subscription on profile X".

    Attributes:
        task_id: Opaque unique identifier within the batch.
        payload: Arbitrary data handed to the executor.
        identity: What strategy metrics are keyed on (an account, say).
            Falls back to ``task_id``.
    """

    task_id: str
    payload: Any = None
    identity: str | None = None

    @property
    def key(self) -> str:
        return self.identity or self.task_id


# ─── Outcome variants ──────────────────────────────────────────────────


@dataclass(frozen=True)
class Success:
    """The attempt accomplished the task."""

    result: Any = None

    @property
    def status(self) -> TaskStatus:
        return TaskStatus.SUCCEEDED


@dataclass(frozen=True)
class Failure:
    """The attempt failed.

    Attributes:
        kind: ErrorKind classification.
        message: Human-readable diagnostic.
        retryable: Whether the retry policy may retry it.
    """

    kind: ErrorKind
    message: str
    retryable: bool = False

    @property
    def status(self) -> TaskStatus:
        return TaskStatus.FAILED

    @classmethod
    def of(cls, kind: ErrorKind, message: str) -> Failure:
        """Build a Failure using the kind's default retryability."""
        return cls(kind=kind, message=message, retryable=kind.default_retryable)


@dataclass(frozen=True)
class Cancelled:
    """A dispatched task was stopped by a batch cancel."""

    reason: str = "batch cancelled"

    @property
    def status(self) -> TaskStatus:
        return TaskStatus.CANCELLED


@dataclass(frozen=True)
class Skipped:
    """A task never dispatched (or deliberately not run)."""

    reason: str = "batch cancelled"

    @property
    def status(self) -> TaskStatus:
        return TaskStatus.SKIPPED


Outcome = Success | Failure | Cancelled | Skipped


def is_outcome(value: object) -> bool:
    """True when ``value`` is one of the Outcome variants."""
    return isinstance(value, (Success, Failure, Cancelled, Skipped))


def describe_outcome(outcome: Outcome) -> str:
    """Short single-line description for logs and reports."""
    if isinstance(outcome, Failure):
        return f"{outcome.kind.value}: {outcome.message}"
    if isinstance(outcome, (Cancelled, Skipped)):
        return f"{outcome.status.value}: {outcome.reason}"
    return outcome.status.value


@dataclass
class Attempt:
    """One execution of a Task under one Strategy.

    Lives only while the attempt runs; the orchestrator folds its outcome
    into aggregate statistics and drops it.
    """

    task: Task
    strategy: str
    number: int
    started_at: float = field(default_factory=time.monotonic)
    ended_at: float | None = None
    outcome: Outcome | None = None

    @property
    def duration_seconds(self) -> float:
        end = self.ended_at if self.ended_at is not None else time.monotonic()
        return end - self.started_at

    def finish(self, outcome: Outcome) -> Outcome:
        """Record the terminal outcome of this attempt and return it."""
        self.ended_at = time.monotonic()
        self.outcome = outcome
        return outcome


@dataclass
class StrategyMetrics:
    """Aggregate history of one (identity, strategy) pair."""

    attempts: int = 0
    successes: int = 0
    failures: int = 0
    total_duration: float = 0.0
    last_success_at: datetime | None = None
    last_failure_at: datetime | None = None
    consecutive_successes: int = 0
    last_error: str | None = None

    @property
    def success_rate(self) -> float:
        return self.successes / max(self.attempts, 1)

    @property
    def average_duration(self) -> float:
        """Mean duration of successful attempts, in seconds."""
        return self.total_duration / self.successes if self.successes else 0.0

    def copy(self) -> StrategyMetrics:
        return StrategyMetrics(
            attempts=self.attempts,
            successes=self.successes,
            failures=self.failures,
            total_duration=self.total_duration,
            last_success_at=self.last_success_at,
            last_failure_at=self.last_failure_at,
            consecutive_successes=self.consecutive_successes,
            last_error=self.last_error,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempts": self.attempts,
            "successes": self.successes,
            "failures": self.failures,
            "success_rate": round(self.success_rate, 3),
            "average_duration": round(self.average_duration, 3),
            "last_success_at": self.last_success_at.isoformat() if self.last_success_at else None,
            "last_failure_at": self.last_failure_at.isoformat() if self.last_failure_at else None,
            "consecutive_successes": self.consecutive_successes,
            "last_error": self.last_error,
        }


@dataclass(frozen=True)
class BatchStats:
    """Consistent point-in-time view of batch progress.

    Invariant: ``succeeded + failed + skipped == completed <= total``.
    ``cancelled`` counts dispatched tasks stopped by a cancel; they are
    included in ``skipped``.
    """

    total: int
    completed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    cancelled: int = 0
    in_progress: int = 0
    attempts: int = 0
    retries: int = 0
    started_at: datetime | None = None
    elapsed_seconds: float = 0.0

    @property
    def remaining(self) -> int:
        return self.total - self.completed

    @property
    def throughput(self) -> float:
        """Completed tasks per second."""
        if self.elapsed_seconds <= 0:
            return 0.0
        return self.completed / self.elapsed_seconds

    @property
    def eta_seconds(self) -> float | None:
        """Estimated seconds to completion, None while throughput is zero."""
        throughput = self.throughput
        if throughput <= 0:
            return None
        return self.remaining / throughput

    @property
    def percent_complete(self) -> float:
        if self.total == 0:
            return 100.0
        return self.completed / self.total * 100.0

    def to_dict(self) -> dict[str, Any]:
        eta = self.eta_seconds
        return {
            "total": self.total,
            "completed": self.completed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "cancelled": self.cancelled,
            "in_progress": self.in_progress,
            "attempts": self.attempts,
            "retries": self.retries,
            "elapsed_seconds": round(self.elapsed_seconds, 2),
            "throughput": round(self.throughput, 3),
            "eta_seconds": round(eta, 1) if eta is not None else None,
        }


@dataclass(frozen=True)
class TaskResult:
    """Terminal record of one task, handed to the sink and the report."""

    task: Task
    outcome: Outcome
    attempts: int = 0
    strategy: str | None = None
    duration_seconds: float = 0.0

    @property
    def status(self) -> TaskStatus:
        return self.outcome.status


# Success-rate thresholds for the final report grade
_GRADES: tuple[tuple[float, str], ...] = (
    (95.0, "excellent"),
    (80.0, "good"),
    (60.0, "fair"),
)


@dataclass
class BatchReport:
    """Summary of a finished (or cancelled) batch run."""

    stats: BatchStats
    results: list[TaskResult] = field(default_factory=list)
    cancelled: bool = False
    max_concurrency: int = 0

    @property
    def success_rate(self) -> float:
        """Percentage of tasks that succeeded."""
        if self.stats.total == 0:
            return 100.0
        return self.stats.succeeded / self.stats.total * 100.0

    @property
    def grade(self) -> str:
        rate = self.success_rate
        for threshold, label in _GRADES:
            if rate >= threshold:
                return label
        return "poor"

    @property
    def ok(self) -> bool:
        """False when cancelled before completion or nothing succeeded."""
        if self.stats.total > 0 and self.stats.succeeded == 0:
            return False
        if self.cancelled:
            interrupted = (TaskStatus.SKIPPED, TaskStatus.CANCELLED)
            if self.stats.completed < self.stats.total:
                return False
            if any(r.status in interrupted for r in self.results):
                return False
        return True

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def result_for(self, task_id: str) -> TaskResult | None:
        for result in self.results:
            if result.task.task_id == task_id:
                return result
        return None

    def by_status(self, status: TaskStatus) -> list[TaskResult]:
        return [r for r in self.results if r.status is status]


__all__ = [
    "Attempt",
    "BatchReport",
    "BatchStats",
    "Cancelled",
    "ControlState",
    "Failure",
    "Outcome",
    "Skipped",
    "StrategyMetrics",
    "Success",
    "Task",
    "TaskResult",
    "TaskStatus",
    "describe_outcome",
    "is_outcome",
]
