"""Tests for batchpilot.execution.progress."""

import asyncio

import pytest

from batchpilot.core.errors import ErrorKind
from batchpilot.core.models import Cancelled, Failure, Skipped, Success
from batchpilot.execution.control import ControlChannel
from batchpilot.execution.progress import ProgressAggregator, ProgressReporter
from tests.helpers import RecordingObserver


class _Clock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


class TestProgressAggregator:
    """Tests for ProgressAggregator."""

    def test_counts(self):
        agg = ProgressAggregator(5)
        for _ in range(4):
            agg.record_start()
        agg.record_attempt()
        agg.record_outcome(Success())
        agg.record_outcome(Failure.of(ErrorKind.PERMANENT, "x"))
        agg.record_outcome(Cancelled())
        agg.record_outcome(Skipped())
        stats = agg.snapshot()

        assert stats.total == 5
        assert stats.completed == 4
        assert stats.succeeded == 1
        assert stats.failed == 1
        assert stats.skipped == 2
        assert stats.cancelled == 1
        assert stats.attempts == 1
        # Skipped never entered flight; the other three left it
        assert stats.in_progress == 1

    def test_conservation(self):
        agg = ProgressAggregator(3)
        agg.record_start()
        agg.record_outcome(Success())
        agg.record_outcome(Skipped())
        stats = agg.snapshot()
        assert stats.succeeded + stats.failed + stats.skipped == stats.completed
        assert stats.completed <= stats.total

    def test_retries(self):
        agg = ProgressAggregator(1)
        agg.record_retry()
        agg.record_retry()
        assert agg.snapshot().retries == 2

    def test_elapsed_and_throughput(self):
        clock = _Clock()
        agg = ProgressAggregator(4, monotonic=clock)
        agg.record_start()
        agg.record_outcome(Success())
        agg.record_start()
        agg.record_outcome(Success())
        clock.now += 4.0
        stats = agg.snapshot()
        assert stats.elapsed_seconds == 4.0
        assert stats.throughput == 0.5
        assert stats.eta_seconds == 4.0

    def test_rejects_non_outcome(self):
        with pytest.raises(TypeError):
            ProgressAggregator(1).record_outcome("done")  # type: ignore[arg-type]


class _FailingObserver:
    def on_snapshot(self, stats):
        raise RuntimeError("display went away")


class TestProgressReporter:
    """Tests for ProgressReporter."""

    @pytest.mark.asyncio
    async def test_publishes_periodically_and_on_stop(self):
        agg = ProgressAggregator(2)
        observer = RecordingObserver()
        reporter = ProgressReporter(agg, [observer], interval=0.01)
        await reporter.start()
        await asyncio.sleep(0.05)
        agg.record_start()
        agg.record_outcome(Success())
        await reporter.stop()

        assert len(observer.snapshots) >= 2
        assert observer.snapshots[-1].succeeded == 1
        assert not reporter.running

    @pytest.mark.asyncio
    async def test_observer_errors_are_not_fatal(self):
        observer = RecordingObserver()
        reporter = ProgressReporter(
            ProgressAggregator(1), [_FailingObserver(), observer], interval=0.01
        )
        await reporter.start()
        await asyncio.sleep(0.05)
        await reporter.stop()
        assert observer.snapshots

    @pytest.mark.asyncio
    async def test_async_observer(self):
        seen = []

        class _AsyncObserver:
            async def on_snapshot(self, stats):
                seen.append(stats.total)

        reporter = ProgressReporter(ProgressAggregator(3), [_AsyncObserver()], interval=0.01)
        await reporter.publish()
        assert seen == [3]

    @pytest.mark.asyncio
    async def test_no_final_snapshot_after_cancel(self):
        control = ControlChannel()
        observer = RecordingObserver()
        reporter = ProgressReporter(ProgressAggregator(1), [observer], control, interval=10)
        await reporter.start()
        control.cancel()
        await reporter.stop()
        assert observer.snapshots == []

    def test_rejects_bad_interval(self):
        with pytest.raises(ValueError):
            ProgressReporter(ProgressAggregator(1), interval=0)
