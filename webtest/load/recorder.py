"""Latency statistics across a run."""

import statistics

from webtest.load.models import BatchResult


class LatencyRecorder:
    """Collects per-request latencies batch by batch.

    Fed only after a batch barrier, from the coordinator's single thread of
    control, so no locking is needed.
    """

    def __init__(self) -> None:
        self._latencies: list[float] = []
        self._batch_durations: list[float] = []

    def record_batch(self, batch: BatchResult) -> None:
        self._latencies.extend(batch.latencies_ms)
        self._batch_durations.append(max(0.0, batch.finished_at - batch.started_at))

    def percentiles(self) -> dict[str, float]:
        """Return p50 / p95 / p99 / mean / min / max request latency.

        Percentiles interpolate linearly between the closest ranks.
        """
        data = self._latencies
        if not data:
            p50 = p95 = p99 = 0.0
        elif len(data) == 1:
            p50 = p95 = p99 = data[0]
        else:
            cuts = statistics.quantiles(data, n=100, method="inclusive")
            p50, p95, p99 = cuts[49], cuts[94], cuts[98]
        return {
            "p50_ms": round(p50, 2),
            "p95_ms": round(p95, 2),
            "p99_ms": round(p99, 2),
            "mean_ms": round(statistics.mean(data), 2) if data else 0.0,
            "min_ms": round(min(data), 2) if data else 0.0,
            "max_ms": round(max(data), 2) if data else 0.0,
            "count": len(data),
        }

    def batch_durations(self) -> list[float]:
        return [round(d, 3) for d in self._batch_durations]
