"""Tests for batchpilot.execution.retry."""

import pytest

from batchpilot.core.config import BatchConfig
from batchpilot.core.errors import ErrorKind
from batchpilot.core.models import Cancelled, Failure, Success
from batchpilot.execution.retry import RetryPolicy


class TestShouldRetry:
    """Tests for RetryPolicy.should_retry."""

    def test_retryable_failure_under_budget(self):
        policy = RetryPolicy(max_retries=3)
        failure = Failure.of(ErrorKind.TRANSIENT, "net")
        assert policy.should_retry(1, failure)
        assert policy.should_retry(2, failure)
        assert not policy.should_retry(3, failure)

    def test_non_retryable_never_retried(self):
        policy = RetryPolicy(max_retries=3)
        assert not policy.should_retry(1, Failure.of(ErrorKind.PERMANENT, "bad"))

    def test_success_and_cancel_never_retried(self):
        policy = RetryPolicy()
        assert not policy.should_retry(1, Success())
        assert not policy.should_retry(1, Cancelled())

    def test_zero_retries(self):
        policy = RetryPolicy(max_retries=0)
        assert not policy.should_retry(1, Failure.of(ErrorKind.TRANSIENT, "net"))


class TestBackoff:
    """Tests for RetryPolicy.delay_for."""

    def test_exponential(self):
        policy = RetryPolicy(base_delay=1.0)
        assert [policy.delay_for(n) for n in (1, 2, 3)] == [2.0, 4.0, 8.0]

    def test_strictly_increasing(self):
        policy = RetryPolicy(base_delay=0.01)
        delays = [policy.delay_for(n) for n in range(1, 10)]
        assert all(b > a for a, b in zip(delays, delays[1:]))

    def test_uncapped(self):
        assert RetryPolicy(base_delay=1.0).delay_for(12) == 4096.0


class TestTerminalFailures:
    """Tests for exhausted() and timeout_failure()."""

    def test_exhausted_keeps_kind(self):
        policy = RetryPolicy()
        final = policy.exhausted(Failure.of(ErrorKind.TRANSIENT, "net down"), attempts=3)
        assert final.kind is ErrorKind.TRANSIENT
        assert final.retryable is False
        assert "3 attempts" in final.message

    def test_exhausted_passes_non_retryable_through(self):
        failure = Failure.of(ErrorKind.PERMANENT, "blocked")
        assert RetryPolicy().exhausted(failure, attempts=1) is failure

    def test_timeout_failure(self):
        failure = RetryPolicy(attempt_timeout=2.5).timeout_failure()
        assert failure.kind is ErrorKind.TIMEOUT
        assert failure.retryable is True
        assert "2.5s" in failure.message


class TestConstruction:
    """Tests for validation and from_config."""

    def test_from_config(self):
        config = BatchConfig(max_retries=5, retry_base_delay_ms=200, attempt_timeout_ms=3000)
        policy = RetryPolicy.from_config(config)
        assert policy == RetryPolicy(max_retries=5, base_delay=0.2, attempt_timeout=3.0)

    @pytest.mark.parametrize(
        "kwargs",
        [{"max_retries": -1}, {"base_delay": -0.1}, {"attempt_timeout": 0}],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)
