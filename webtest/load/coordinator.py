"""Batched concurrent dispatch.

Requests are split into batches of at most ``batch_size``. Every task of a
batch is launched at once and the coordinator waits for all of them before
the next batch starts, so peak in-flight requests never exceed
``batch_size``. Outcomes are folded into the run summary only after that
barrier, from this single thread of control.
"""

import asyncio
import math
import time
from collections.abc import Awaitable, Callable
from typing import Protocol

import structlog

from webtest.load.models import (
    BatchPlan,
    BatchResult,
    Failed,
    FailureReason,
    RequestOutcome,
    RequestTask,
    RunSummary,
)
from webtest.load.recorder import LatencyRecorder

logger = structlog.get_logger()

ABORT_CANCELLED = "cancelled"
ABORT_FAILURE_RATE = "failure_rate_exceeded"


class Executor(Protocol):
    def execute(self, task: RequestTask) -> Awaitable[RequestOutcome]: ...


class TaskSource(Protocol):
    def task_for(self, sequence_id: int) -> RequestTask: ...


def plan_batches(total_requests: int, batch_size: int) -> list[BatchPlan]:
    """Partition ``[0, total_requests)`` into consecutive batches.

    >>> [p.count for p in plan_batches(10, 3)]
    [3, 3, 3, 1]
    """
    if total_requests < 0:
        raise ValueError(f"total_requests must be >= 0, got {total_requests}")
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")
    num_batches = math.ceil(total_requests / batch_size)
    plans = []
    for index in range(num_batches):
        start_id = index * batch_size
        plans.append(
            BatchPlan(
                index=index,
                start_id=start_id,
                count=min(batch_size, total_requests - start_id),
            )
        )
    return plans


class BatchCoordinator:
    def __init__(
        self,
        executor: Executor,
        source: TaskSource,
        *,
        stop_event: asyncio.Event | None = None,
        max_failure_rate: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.executor = executor
        self.source = source
        self.stop_event = stop_event
        self.max_failure_rate = max_failure_rate
        self._clock = clock

    async def run_batch(self, plan: BatchPlan) -> BatchResult:
        """Launch every request of *plan* concurrently and wait for all of them."""
        tasks = [self.source.task_for(sequence_id) for sequence_id in plan.sequence_ids]
        logger.info("batch_started", batch=plan.index + 1, requests=plan.count)

        started_at = self._clock()
        results = await asyncio.gather(
            *(self.executor.execute(task) for task in tasks),
            return_exceptions=True,
        )
        finished_at = self._clock()

        outcomes: list[RequestOutcome] = []
        for task, result in zip(tasks, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(
                    "request_task_crashed",
                    sequence_id=task.sequence_id,
                    error=repr(result),
                )
                result = Failed(
                    sequence_id=task.sequence_id,
                    url=task.resolved_url,
                    reason=FailureReason.INTERNAL,
                    detail=repr(result),
                )
            outcomes.append(result)

        batch = BatchResult.from_outcomes(plan, outcomes, started_at, finished_at)
        logger.info(
            "batch_completed",
            batch=plan.index + 1,
            requests=batch.requests_attempted,
            completed=batch.completed,
            failed=batch.failures,
            status_classes=batch.completions_by_status_class,
            duration_s=round(finished_at - started_at, 3),
        )
        return batch

    def _abort_reason(self, summary: RunSummary) -> str | None:
        if self.stop_event is not None and self.stop_event.is_set():
            return ABORT_CANCELLED
        if (
            self.max_failure_rate is not None
            and summary.total_sent > 0
            and summary.failure_rate >= self.max_failure_rate
        ):
            return ABORT_FAILURE_RATE
        return None

    async def run(
        self,
        plans: list[BatchPlan],
        summary: RunSummary | None = None,
        recorder: LatencyRecorder | None = None,
    ) -> RunSummary:
        """Run *plans* strictly in order, folding each drained batch into *summary*.

        Before each batch the stop event and the failure-rate breaker are
        checked; either one stops further batches from being launched.
        """
        summary = summary if summary is not None else RunSummary()
        for position, plan in enumerate(plans):
            reason = self._abort_reason(summary)
            if reason is not None:
                summary.aborted = True
                summary.abort_reason = reason
                logger.warning(
                    "run_stopped_early",
                    reason=reason,
                    batches_completed=summary.batches_completed,
                    batches_skipped=len(plans) - position,
                    failure_rate=round(summary.failure_rate, 4),
                )
                break

            batch = await self.run_batch(plan)
            summary.fold(batch)
            if recorder is not None:
                recorder.record_batch(batch)
        return summary
