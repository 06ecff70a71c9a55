"""Value types for one load run: configuration, tasks, outcomes and counters."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from webtest.load.errors import ConfigurationError

if TYPE_CHECKING:
    from webtest.load.parameters import QueryTemplate


class FailureReason(StrEnum):
    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    REQUEST_CONSTRUCTION = "request_construction"
    # Exception escaped a task; the executor itself never raises
    INTERNAL = "internal"


def status_class(status_code: int) -> str:
    """Bucket a status code into ``1xx`` .. ``5xx`` (``other`` outside 100-599)."""
    if 100 <= status_code <= 599:
        return f"{status_code // 100}xx"
    return "other"


@dataclass(frozen=True)
class RunConfig:
    """Immutable description of one run, built once before dispatch starts."""

    total_requests: int
    batch_size: int
    target: QueryTemplate | str
    auth_token: str | None = None
    timeout_seconds: float = 30.0
    max_idle_per_host: int = 5000
    user_agent: str = "Mozilla/5.0"
    max_failure_rate: float | None = None
    seed: int | None = None

    def __post_init__(self) -> None:
        if self.total_requests < 0:
            raise ConfigurationError(
                f"total_requests must be >= 0, got {self.total_requests}"
            )
        if self.batch_size < 1:
            raise ConfigurationError(f"batch_size must be >= 1, got {self.batch_size}")
        if isinstance(self.target, str) and not self.target.strip():
            raise ConfigurationError("target URL must not be empty")
        if self.timeout_seconds <= 0:
            raise ConfigurationError(
                f"timeout_seconds must be > 0, got {self.timeout_seconds}"
            )
        if self.max_idle_per_host < 0:
            raise ConfigurationError(
                f"max_idle_per_host must be >= 0, got {self.max_idle_per_host}"
            )
        if self.max_failure_rate is not None and not 0.0 < self.max_failure_rate <= 1.0:
            raise ConfigurationError(
                f"max_failure_rate must be in (0, 1], got {self.max_failure_rate}"
            )

    @property
    def templated(self) -> bool:
        return not isinstance(self.target, str)


@dataclass(frozen=True)
class RequestTask:
    sequence_id: int
    resolved_url: str
    auth_token: str | None = None


@dataclass(frozen=True)
class Completed:
    sequence_id: int
    url: str
    status_code: int
    latency_ms: float = 0.0

    @property
    def status_class(self) -> str:
        return status_class(self.status_code)


@dataclass(frozen=True)
class Failed:
    sequence_id: int
    url: str
    reason: FailureReason
    detail: str = ""
    latency_ms: float = 0.0


RequestOutcome = Completed | Failed


@dataclass(frozen=True)
class BatchPlan:
    index: int
    start_id: int
    count: int

    @property
    def sequence_ids(self) -> range:
        return range(self.start_id, self.start_id + self.count)


@dataclass
class BatchResult:
    """Aggregate of one drained batch."""

    batch_index: int
    start_id: int
    requests_attempted: int = 0
    completions_by_status_class: dict[str, int] = field(default_factory=dict)
    failures: int = 0
    failures_by_reason: dict[str, int] = field(default_factory=dict)
    sequence_ids: tuple[int, ...] = ()
    latencies_ms: tuple[float, ...] = ()
    started_at: float = 0.0
    finished_at: float = 0.0

    @classmethod
    def from_outcomes(
        cls,
        plan: BatchPlan,
        outcomes: list[RequestOutcome],
        started_at: float = 0.0,
        finished_at: float = 0.0,
    ) -> BatchResult:
        by_class: Counter[str] = Counter()
        by_reason: Counter[str] = Counter()
        for outcome in outcomes:
            if isinstance(outcome, Completed):
                by_class[outcome.status_class] += 1
            else:
                by_reason[str(outcome.reason)] += 1
        return cls(
            batch_index=plan.index,
            start_id=plan.start_id,
            requests_attempted=len(outcomes),
            completions_by_status_class=dict(by_class),
            failures=sum(by_reason.values()),
            failures_by_reason=dict(by_reason),
            sequence_ids=tuple(o.sequence_id for o in outcomes),
            latencies_ms=tuple(o.latency_ms for o in outcomes),
            started_at=started_at,
            finished_at=finished_at,
        )

    @property
    def completed(self) -> int:
        return sum(self.completions_by_status_class.values())


@dataclass
class RunSummary:
    """Run-wide accumulator. Folded by the coordinator after each batch barrier."""

    total_sent: int = 0
    total_completed: int = 0
    total_failed: int = 0
    completions_by_status_class: dict[str, int] = field(default_factory=dict)
    failures_by_reason: dict[str, int] = field(default_factory=dict)
    batches_completed: int = 0
    elapsed_seconds: float = 0.0
    aborted: bool = False
    abort_reason: str | None = None

    def fold(self, batch: BatchResult) -> None:
        self.total_sent += batch.requests_attempted
        self.total_completed += batch.completed
        self.total_failed += batch.failures
        for key, count in batch.completions_by_status_class.items():
            self.completions_by_status_class[key] = (
                self.completions_by_status_class.get(key, 0) + count
            )
        for key, count in batch.failures_by_reason.items():
            self.failures_by_reason[key] = self.failures_by_reason.get(key, 0) + count
        self.batches_completed += 1

    @property
    def failure_rate(self) -> float:
        if self.total_sent == 0:
            return 0.0
        return self.total_failed / self.total_sent

    @property
    def requests_per_second(self) -> float:
        return self.total_sent / max(self.elapsed_seconds, 0.001)

    def to_dict(self) -> dict:
        return {
            "total_sent": self.total_sent,
            "total_completed": self.total_completed,
            "total_failed": self.total_failed,
            "completions_by_status_class": dict(self.completions_by_status_class),
            "failures_by_reason": dict(self.failures_by_reason),
            "batches_completed": self.batches_completed,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "requests_per_second": round(self.requests_per_second, 1),
            "failure_rate": round(self.failure_rate, 4),
            "aborted": self.aborted,
            "abort_reason": self.abort_reason,
        }
