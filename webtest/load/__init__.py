"""Batched dispatch engine: parameter sources, executor, coordinator and driver."""

from webtest.load.coordinator import BatchCoordinator, plan_batches
from webtest.load.driver import RunDriver, run_load
from webtest.load.executor import RequestExecutor, build_client
from webtest.load.models import (
    BatchResult,
    Completed,
    Failed,
    FailureReason,
    RequestOutcome,
    RequestTask,
    RunConfig,
    RunSummary,
)

__all__ = [
    "BatchCoordinator",
    "BatchResult",
    "Completed",
    "Failed",
    "FailureReason",
    "RequestExecutor",
    "RequestOutcome",
    "RequestTask",
    "RunConfig",
    "RunDriver",
    "RunSummary",
    "build_client",
    "plan_batches",
    "run_load",
]
