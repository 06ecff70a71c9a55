"""Run driver: owns the shared client, times the run, reports the summary."""

import asyncio
import contextlib
import random
import signal
import time
from datetime import UTC, datetime
from typing import Any

import httpx
import structlog

from webtest.load.coordinator import BatchCoordinator, plan_batches
from webtest.load.executor import RequestExecutor, build_client
from webtest.load.models import RunConfig, RunSummary
from webtest.load.parameters import build_parameter_source
from webtest.load.recorder import LatencyRecorder

logger = structlog.get_logger()


class RunDriver:
    """Drives one full run of batches against a single target."""

    def __init__(
        self,
        config: RunConfig,
        *,
        client: httpx.AsyncClient | None = None,
        rng: random.Random | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        self.config = config
        self.rng = rng
        self.stop_event = stop_event
        self.summary = RunSummary()
        self.recorder = LatencyRecorder()
        self._client = client

    async def run(self) -> RunSummary:
        cfg = self.config
        plans = plan_batches(cfg.total_requests, cfg.batch_size)
        source = build_parameter_source(cfg, self.rng)

        logger.info(
            "run_starting",
            total_requests=cfg.total_requests,
            batch_size=cfg.batch_size,
            batches=len(plans),
            mode="templated" if cfg.templated else "literal",
            authenticated=cfg.auth_token is not None,
        )

        start = time.monotonic()
        owns_client = self._client is None
        client = self._client or build_client(
            timeout_seconds=cfg.timeout_seconds,
            max_idle_per_host=cfg.max_idle_per_host,
            user_agent=cfg.user_agent,
        )
        try:
            coordinator = BatchCoordinator(
                RequestExecutor(client, timeout_seconds=cfg.timeout_seconds),
                source,
                stop_event=self.stop_event,
                max_failure_rate=cfg.max_failure_rate,
            )
            await coordinator.run(plans, self.summary, self.recorder)
        finally:
            if owns_client:
                await client.aclose()

        self.summary.elapsed_seconds = time.monotonic() - start
        logger.info(
            "run_completed",
            total_requests=self.summary.total_sent,
            completed=self.summary.total_completed,
            failed=self.summary.total_failed,
            elapsed_s=round(self.summary.elapsed_seconds, 2),
            rps=round(self.summary.requests_per_second, 1),
            aborted=self.summary.aborted,
        )
        return self.summary

    def collect_results(self) -> dict[str, Any]:
        """Aggregate the run into a JSON-serialisable report."""
        cfg = self.config
        target = cfg.target if isinstance(cfg.target, str) else cfg.target.base_url
        return {
            "run_config": {
                "total_requests": cfg.total_requests,
                "batch_size": cfg.batch_size,
                "target": target,
                "mode": "templated" if cfg.templated else "literal",
                "timeout_seconds": cfg.timeout_seconds,
                "max_idle_per_host": cfg.max_idle_per_host,
                "max_failure_rate": cfg.max_failure_rate,
                "seed": cfg.seed,
            },
            "summary": self.summary.to_dict(),
            "latency": self.recorder.percentiles(),
            "batch_durations_seconds": self.recorder.batch_durations(),
            "generated_at": datetime.now(UTC).isoformat(),
        }


def run_load(config: RunConfig, *, handle_signals: bool = True) -> RunDriver:
    """Run *config* to completion on a fresh event loop.

    SIGINT/SIGTERM stop new batches from being launched; requests already in
    flight drain under their own timeout. A second signal falls through to
    the default handler.
    """

    async def _main() -> RunDriver:
        stop_event = asyncio.Event()
        if handle_signals:
            loop = asyncio.get_running_loop()

            def _request_stop(sig: signal.Signals) -> None:
                logger.warning("stop_requested", signal=sig.name)
                stop_event.set()
                loop.remove_signal_handler(sig)

            for sig in (signal.SIGINT, signal.SIGTERM):
                # add_signal_handler is unavailable on Windows event loops
                with contextlib.suppress(NotImplementedError):
                    loop.add_signal_handler(sig, _request_stop, sig)

        driver = RunDriver(config, stop_event=stop_event)
        await driver.run()
        return driver

    return asyncio.run(_main())
