"""Tests for batch planning and the batch barrier."""

import asyncio
import math

import pytest
from structlog.testing import capture_logs

from tests.conftest import RecordingExecutor, StaticSource
from webtest.load.coordinator import (
    ABORT_CANCELLED,
    ABORT_FAILURE_RATE,
    BatchCoordinator,
    plan_batches,
)
from webtest.load.models import BatchPlan, FailureReason, RunSummary
from webtest.load.recorder import LatencyRecorder


class TestPlanBatches:
    def test_ten_by_three(self):
        plans = plan_batches(10, 3)
        assert [p.count for p in plans] == [3, 3, 3, 1]
        assert [p.start_id for p in plans] == [0, 3, 6, 9]
        assert [p.index for p in plans] == [0, 1, 2, 3]

    def test_zero_requests(self):
        assert plan_batches(0, 5) == []

    @pytest.mark.parametrize(
        "total,batch",
        [(1, 1), (5, 5), (5, 10), (1000, 7), (12, 4), (13, 4), (999, 1000), (1001, 1000)],
    )
    def test_partition_properties(self, total, batch):
        plans = plan_batches(total, batch)
        assert len(plans) == math.ceil(total / batch)
        assert all(p.count == batch for p in plans[:-1])
        assert plans[-1].count == (total % batch or batch)
        ids = [sid for p in plans for sid in p.sequence_ids]
        assert ids == list(range(total))

    @pytest.mark.parametrize("total,batch", [(-1, 1), (5, 0), (5, -3)])
    def test_invalid_arguments(self, total, batch):
        with pytest.raises(ValueError):
            plan_batches(total, batch)


class TestRunBatch:
    @pytest.mark.asyncio
    async def test_batch_launches_all_requests_concurrently(self, static_source):
        executor = RecordingExecutor(delay=0.01)
        coordinator = BatchCoordinator(executor, static_source)

        batch = await coordinator.run_batch(BatchPlan(index=0, start_id=5, count=8))

        assert batch.requests_attempted == 8
        assert sorted(batch.sequence_ids) == list(range(5, 13))
        assert batch.completions_by_status_class == {"2xx": 8}
        assert executor.peak_in_flight == 8
        assert batch.finished_at >= batch.started_at

    @pytest.mark.asyncio
    async def test_failure_does_not_affect_siblings(self, static_source):
        executor = RecordingExecutor(fail_ids={1})
        coordinator = BatchCoordinator(executor, static_source)

        batch = await coordinator.run_batch(BatchPlan(index=0, start_id=0, count=4))

        assert batch.requests_attempted == 4
        assert batch.completed == 3
        assert batch.failures == 1
        assert batch.failures_by_reason == {"transport": 1}
        assert set(executor.finished) == {0, 1, 2, 3}

    @pytest.mark.asyncio
    async def test_crashing_task_is_recorded_not_dropped(self, static_source):
        executor = RecordingExecutor(crash_ids={2})
        coordinator = BatchCoordinator(executor, static_source)

        with capture_logs() as logs:
            batch = await coordinator.run_batch(BatchPlan(index=0, start_id=0, count=4))

        assert batch.requests_attempted == 4
        assert batch.failures_by_reason == {str(FailureReason.INTERNAL): 1}
        assert "request_task_crashed" in [entry["event"] for entry in logs]

    @pytest.mark.asyncio
    async def test_logs_batch_start_and_completion(self, recording_executor, static_source):
        coordinator = BatchCoordinator(recording_executor, static_source)
        with capture_logs() as logs:
            await coordinator.run_batch(BatchPlan(index=2, start_id=0, count=2))
        events = [entry for entry in logs if entry["event"].startswith("batch_")]
        assert [e["event"] for e in events] == ["batch_started", "batch_completed"]
        assert events[0]["batch"] == 3
        assert events[1]["completed"] == 2


class TestRun:
    @pytest.mark.asyncio
    async def test_ten_by_three_scenario(self, recording_executor, static_source):
        coordinator = BatchCoordinator(recording_executor, static_source)
        recorder = LatencyRecorder()

        summary = await coordinator.run(plan_batches(10, 3), recorder=recorder)

        assert summary.batches_completed == 4
        assert summary.total_sent == 10
        assert summary.total_completed + summary.total_failed == 10
        assert sorted(static_source.requested) == list(range(10))
        assert len(recorder.batch_durations()) == 4
        assert recorder.percentiles()["count"] == 10

    @pytest.mark.asyncio
    async def test_batches_never_overlap(self, static_source):
        executor = RecordingExecutor(delay=0.005)
        coordinator = BatchCoordinator(executor, static_source)
        plans = plan_batches(40, 7)

        await coordinator.run(plans)

        assert executor.peak_in_flight <= 7
        for current, following in zip(plans, plans[1:]):
            last_end = max(executor.finished[sid] for sid in current.sequence_ids)
            first_start = min(executor.started[sid] for sid in following.sequence_ids)
            assert last_end <= first_start

    @pytest.mark.asyncio
    async def test_failures_do_not_stop_later_batches(self, static_source):
        executor = RecordingExecutor(fail_ids={0, 1, 2, 4})
        coordinator = BatchCoordinator(executor, static_source)

        summary = await coordinator.run(plan_batches(9, 3))

        assert summary.batches_completed == 3
        assert summary.total_sent == 9
        assert summary.total_failed == 4
        assert summary.total_completed == 5
        assert summary.aborted is False

    @pytest.mark.asyncio
    async def test_empty_plan(self, recording_executor, static_source):
        summary = await BatchCoordinator(recording_executor, static_source).run([])
        assert summary.total_sent == 0
        assert summary.batches_completed == 0

    @pytest.mark.asyncio
    async def test_folds_into_given_summary(self, recording_executor, static_source):
        summary = RunSummary()
        result = await BatchCoordinator(recording_executor, static_source).run(
            plan_batches(4, 2), summary
        )
        assert result is summary
        assert summary.total_sent == 4

    @pytest.mark.asyncio
    async def test_stop_event_halts_new_batches(self, static_source):
        stop_event = asyncio.Event()

        class StoppingExecutor(RecordingExecutor):
            async def execute(self, task):
                outcome = await super().execute(task)
                if task.sequence_id == 3:
                    stop_event.set()
                return outcome

        executor = StoppingExecutor()
        coordinator = BatchCoordinator(executor, static_source, stop_event=stop_event)

        summary = await coordinator.run(plan_batches(12, 3))

        # The batch in flight when the stop arrived drains fully
        assert summary.batches_completed == 2
        assert summary.total_sent == 6
        assert summary.aborted is True
        assert summary.abort_reason == ABORT_CANCELLED
        assert set(executor.started) == set(range(6))

    @pytest.mark.asyncio
    async def test_failure_rate_breaker(self, static_source):
        executor = RecordingExecutor(fail_ids=set(range(0, 4)))
        coordinator = BatchCoordinator(executor, static_source, max_failure_rate=0.5)

        summary = await coordinator.run(plan_batches(20, 4))

        assert summary.batches_completed == 1
        assert summary.total_failed == 4
        assert summary.aborted is True
        assert summary.abort_reason == ABORT_FAILURE_RATE

    @pytest.mark.asyncio
    async def test_breaker_disabled_by_default(self, static_source):
        executor = RecordingExecutor(fail_ids=set(range(20)))
        summary = await BatchCoordinator(executor, static_source).run(plan_batches(20, 4))
        assert summary.batches_completed == 5
        assert summary.total_failed == 20
        assert summary.aborted is False
