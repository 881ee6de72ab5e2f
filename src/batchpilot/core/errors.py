"""Error kinds and exception hierarchy for batchpilot.

Error taxonomy
==============

| Kind                          | Retryable | Meaning                                           |
|-------------------------------|-----------|---------------------------------------------------|
| transient                     | Yes       | Network hiccup, browser disconnect                |
| timeout                       | Yes       | Attempt exceeded the per-attempt timeout          |
| strategy_failed               | Yes       | Chosen strategy could not reach the goal          |
| permanent                     | No        | Invalid input, blocked account, executor crash    |
| requires_manual_intervention  | No        | Every automated strategy exhausted for identity   |
| cancelled                     | No        | Batch-level cancel, not a task fault              |

``transient`` and ``timeout`` are recovered locally by the retry policy.
``strategy_failed`` is retried too, but each occurrence marks the strategy
exhausted for the identity so the selector moves on; once enough distinct
strategies are exhausted the task escalates to manual intervention.

All batchpilot exceptions inherit from ``BatchPilotError`` so callers can
catch broadly or narrowly.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Classification of a failed attempt."""

    TRANSIENT = "transient"
    TIMEOUT = "timeout"
    STRATEGY_FAILED = "strategy_failed"
    PERMANENT = "permanent"
    REQUIRES_MANUAL_INTERVENTION = "requires_manual_intervention"

    @property
    def default_retryable(self) -> bool:
        """Whether failures of this kind are retryable unless stated otherwise."""
        return self in _RETRYABLE_KINDS

    @property
    def is_transient(self) -> bool:
        """True for environment faults (network, timeout)."""
        return self in (ErrorKind.TRANSIENT, ErrorKind.TIMEOUT)


_RETRYABLE_KINDS = frozenset({
    ErrorKind.TRANSIENT,
    ErrorKind.TIMEOUT,
    ErrorKind.STRATEGY_FAILED,
})


class BatchPilotError(Exception):
    """Base exception for all batchpilot errors."""


class ConfigurationError(BatchPilotError):
    """Raised when batch configuration cannot be loaded or is inconsistent."""


class BatchCancelledError(BatchPilotError):
    """Raised when work is refused because the batch was cancelled.

    Raised by ``ConcurrencyLimiter.acquire()`` and
    ``ControlChannel.wait_until_runnable()``; the orchestrator converts it
    into a ``Skipped`` or ``Cancelled`` outcome.
    """


class AttemptCancelledError(BatchPilotError):
    """Raised inside an executor by ``CancelHook.before_step()``.

    Signals that the executor observed cooperative cancellation at one of
    its own suspension points.
    """


class TaskExecutionError(BatchPilotError):
    """Raised by executors to report a classified attempt failure.

    Attributes:
        kind: The ErrorKind of the failure.
        retryable: Whether the retry policy may retry it. Defaults to
            the kind's default.
    """

    default_kind: ErrorKind = ErrorKind.PERMANENT

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind | None = None,
        retryable: bool | None = None,
    ) -> None:
        self.kind = kind or self.default_kind
        self.retryable = self.kind.default_retryable if retryable is None else retryable
        super().__init__(message)


class TransientTaskError(TaskExecutionError):
    """Network, proxy or browser-session hiccup worth retrying."""

    default_kind = ErrorKind.TRANSIENT


class StrategyFailedError(TaskExecutionError):
    """The chosen strategy could not accomplish the task's goal."""

    default_kind = ErrorKind.STRATEGY_FAILED


class PermanentTaskError(TaskExecutionError):
    """Invalid input, bad credentials, or a detected-and-blocked session."""

    default_kind = ErrorKind.PERMANENT


class ManualInterventionRequired(TaskExecutionError):
    """The task needs an operator (captcha, 2FA, exhausted strategies)."""

    default_kind = ErrorKind.REQUIRES_MANUAL_INTERVENTION


__all__ = [
    "AttemptCancelledError",
    "BatchCancelledError",
    "BatchPilotError",
    "ConfigurationError",
    "ErrorKind",
    "ManualInterventionRequired",
    "PermanentTaskError",
    "StrategyFailedError",
    "TaskExecutionError",
    "TransientTaskError",
]
