"""Retry decisions and backoff for task attempts.

A failed attempt is retried only when its ``Failure`` is retryable and the
attempt number is still under ``max_retries``. With attempt numbers
starting at 1 that yields at most ``max_retries`` attempts per task.

Backoff is exponential and uncapped:

    delay(n) = base_delay * 2 ** n

so with the default 1s base the waits after attempts 1, 2 and 3 are 2s, 4s
and 8s.
"""

from __future__ import annotations

from dataclasses import dataclass

from batchpilot.core.config import BatchConfig
from batchpilot.core.errors import ErrorKind
from batchpilot.core.models import Failure, Outcome


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential-backoff retry with a per-attempt timeout.

    Attributes:
        max_retries: Retry while ``attempt_number < max_retries``.
        base_delay: Backoff base in seconds.
        attempt_timeout: Wall-clock limit for one attempt, in seconds.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    attempt_timeout: float = 60.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")
        if self.attempt_timeout <= 0:
            raise ValueError("attempt_timeout must be > 0")

    @classmethod
    def from_config(cls, config: BatchConfig) -> RetryPolicy:
        return cls(
            max_retries=config.max_retries,
            base_delay=config.retry_base_delay_seconds,
            attempt_timeout=config.attempt_timeout_seconds,
        )

    def should_retry(self, attempt_number: int, outcome: Outcome) -> bool:
        """Whether the task gets another attempt after ``attempt_number``."""
        if not isinstance(outcome, Failure) or not outcome.retryable:
            return False
        return attempt_number < self.max_retries

    def delay_for(self, attempt_number: int) -> float:
        """Seconds to wait after ``attempt_number`` before the next attempt."""
        return self.base_delay * (2**attempt_number)

    def exhausted(self, outcome: Failure, attempts: int) -> Failure:
        """Turn the last retryable failure into the task's terminal failure."""
        if not outcome.retryable:
            return outcome
        return Failure(
            kind=outcome.kind,
            message=f"{outcome.message} (gave up after {attempts} attempts)",
            retryable=False,
        )

    def timeout_failure(self) -> Failure:
        return Failure(
            kind=ErrorKind.TIMEOUT,
            message=f"attempt exceeded {self.attempt_timeout:g}s timeout",
            retryable=True,
        )


__all__ = ["RetryPolicy"]
