"""Tests for batchpilot.core.models."""

from datetime import UTC, datetime

import pytest

from batchpilot.core.errors import ErrorKind
from batchpilot.core.models import (
    Attempt,
    BatchReport,
    BatchStats,
    Cancelled,
    Failure,
    Skipped,
    StrategyMetrics,
    Success,
    Task,
    TaskResult,
    TaskStatus,
    describe_outcome,
    is_outcome,
)


class TestTask:
    """Tests for Task."""

    def test_key_defaults_to_task_id(self):
        assert Task(task_id="profile-1").key == "profile-1"

    def test_key_uses_identity(self):
        task = Task(task_id="profile-1", identity="user@example.com")
        assert task.key == "user@example.com"

    def test_task_is_frozen(self):
        task = Task(task_id="profile-1")
        with pytest.raises(AttributeError):
            task.task_id = "other"  # type: ignore[misc]


class TestOutcome:
    """Tests for the Outcome variants."""

    def test_statuses(self):
        assert Success().status is TaskStatus.SUCCEEDED
        assert Failure(ErrorKind.PERMANENT, "x").status is TaskStatus.FAILED
        assert Cancelled().status is TaskStatus.CANCELLED
        assert Skipped().status is TaskStatus.SKIPPED

    def test_failure_of_uses_kind_default_retryability(self):
        assert Failure.of(ErrorKind.TRANSIENT, "net").retryable is True
        assert Failure.of(ErrorKind.TIMEOUT, "slow").retryable is True
        assert Failure.of(ErrorKind.PERMANENT, "bad").retryable is False
        assert Failure.of(ErrorKind.REQUIRES_MANUAL_INTERVENTION, "2fa").retryable is False

    def test_is_outcome(self):
        assert is_outcome(Success())
        assert is_outcome(Skipped())
        assert not is_outcome("done")
        assert not is_outcome(None)

    def test_describe_outcome(self):
        assert describe_outcome(Success()) == "succeeded"
        assert describe_outcome(Failure(ErrorKind.PERMANENT, "blocked")) == "permanent: blocked"
        assert describe_outcome(Skipped()) == "skipped: batch cancelled"

    def test_terminal_statuses(self):
        assert TaskStatus.SUCCEEDED.is_terminal
        assert TaskStatus.SKIPPED.is_terminal
        assert not TaskStatus.RETRYING.is_terminal
        assert not TaskStatus.RUNNING.is_terminal


class TestAttempt:
    """Tests for Attempt."""

    def test_finish_records_outcome(self):
        attempt = Attempt(task=Task(task_id="t"), strategy="minimal", number=1)
        outcome = attempt.finish(Success())
        assert attempt.outcome is outcome
        assert attempt.ended_at is not None
        assert attempt.duration_seconds >= 0


class TestStrategyMetrics:
    """Tests for StrategyMetrics."""

    def test_success_rate_without_attempts(self):
        assert StrategyMetrics().success_rate == 0.0

    def test_success_rate_and_average(self):
        metrics = StrategyMetrics(attempts=4, successes=3, failures=1, total_duration=6.0)
        assert metrics.success_rate == 0.75
        assert metrics.average_duration == 2.0

    def test_copy_is_independent(self):
        metrics = StrategyMetrics(attempts=1, successes=1)
        clone = metrics.copy()
        clone.attempts = 5
        assert metrics.attempts == 1

    def test_to_dict(self):
        now = datetime(2026, 1, 1, tzinfo=UTC)
        data = StrategyMetrics(attempts=2, successes=1, last_success_at=now).to_dict()
        assert data["success_rate"] == 0.5
        assert data["last_success_at"] == now.isoformat()
        assert data["last_failure_at"] is None


class TestBatchStats:
    """Tests for BatchStats."""

    def test_remaining_and_percent(self):
        stats = BatchStats(total=10, completed=4, succeeded=3, failed=1)
        assert stats.remaining == 6
        assert stats.percent_complete == 40.0

    def test_throughput_and_eta(self):
        stats = BatchStats(total=10, completed=5, succeeded=5, elapsed_seconds=10.0)
        assert stats.throughput == 0.5
        assert stats.eta_seconds == 10.0

    def test_eta_unknown_without_progress(self):
        stats = BatchStats(total=10, elapsed_seconds=3.0)
        assert stats.throughput == 0.0
        assert stats.eta_seconds is None

    def test_empty_batch_is_complete(self):
        assert BatchStats(total=0).percent_complete == 100.0

    def test_to_dict(self):
        data = BatchStats(total=2, completed=1, succeeded=1, elapsed_seconds=2.0).to_dict()
        assert data["total"] == 2
        assert data["throughput"] == 0.5
        assert data["eta_seconds"] == 2.0


def _report(succeeded: int, failed: int = 0, skipped: int = 0, cancelled: bool = False):
    results = (
        [TaskResult(Task(f"s{i}"), Success()) for i in range(succeeded)]
        + [TaskResult(Task(f"f{i}"), Failure(ErrorKind.PERMANENT, "x")) for i in range(failed)]
        + [TaskResult(Task(f"k{i}"), Skipped()) for i in range(skipped)]
    )
    total = succeeded + failed + skipped
    stats = BatchStats(
        total=total,
        completed=total,
        succeeded=succeeded,
        failed=failed,
        skipped=skipped,
    )
    return BatchReport(stats=stats, results=results, cancelled=cancelled)


class TestBatchReport:
    """Tests for BatchReport."""

    @pytest.mark.parametrize(
        ("succeeded", "failed", "grade"),
        [(20, 0, "excellent"), (19, 1, "excellent"), (17, 3, "good"), (13, 7, "fair"), (5, 15, "poor")],
    )
    def test_grade_bands(self, succeeded, failed, grade):
        assert _report(succeeded, failed).grade == grade

    def test_partial_failure_is_ok(self):
        report = _report(3, failed=2)
        assert report.ok
        assert report.exit_code == 0

    def test_zero_successes_fails(self):
        report = _report(0, failed=3)
        assert not report.ok
        assert report.exit_code == 1

    def test_empty_batch_is_ok(self):
        assert _report(0).ok

    def test_cancelled_with_skipped_tasks_fails(self):
        assert not _report(3, skipped=2, cancelled=True).ok

    def test_cancel_after_everything_finished_is_ok(self):
        assert _report(3, cancelled=True).ok

    def test_result_lookup(self):
        report = _report(2, failed=1)
        assert report.result_for("f0").status is TaskStatus.FAILED
        assert report.result_for("missing") is None
        assert len(report.by_status(TaskStatus.SUCCEEDED)) == 2
