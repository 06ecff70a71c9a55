"""Shared test fixtures for webtest tests."""

import asyncio
import random
import time

import httpx
import pytest

from webtest.load.models import (
    Completed,
    Failed,
    FailureReason,
    RequestOutcome,
    RequestTask,
)

LITERAL_URL = "https://api.example.test/items"


class RecordingExecutor:
    """Fake executor that sleeps a little and records start/end per sequence id."""

    def __init__(
        self,
        fail_ids: set[int] | None = None,
        crash_ids: set[int] | None = None,
        status_code: int = 200,
        delay: float = 0.001,
    ) -> None:
        self.fail_ids = fail_ids or set()
        self.crash_ids = crash_ids or set()
        self.status_code = status_code
        self.delay = delay
        self.started: dict[int, float] = {}
        self.finished: dict[int, float] = {}
        self.in_flight = 0
        self.peak_in_flight = 0

    async def execute(self, task: RequestTask) -> RequestOutcome:
        self.started[task.sequence_id] = time.monotonic()
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            # Vary completion order inside a batch
            await asyncio.sleep(self.delay * random.random())
            if task.sequence_id in self.crash_ids:
                raise RuntimeError(f"executor bug on {task.sequence_id}")
            if task.sequence_id in self.fail_ids:
                return Failed(
                    sequence_id=task.sequence_id,
                    url=task.resolved_url,
                    reason=FailureReason.TRANSPORT,
                    detail="simulated connection reset",
                )
            return Completed(
                sequence_id=task.sequence_id,
                url=task.resolved_url,
                status_code=self.status_code,
                latency_ms=1.0,
            )
        finally:
            self.in_flight -= 1
            self.finished[task.sequence_id] = time.monotonic()


class StaticSource:
    def __init__(self, url: str = LITERAL_URL, token: str | None = None) -> None:
        self.url = url
        self.token = token
        self.requested: list[int] = []

    def task_for(self, sequence_id: int) -> RequestTask:
        self.requested.append(sequence_id)
        return RequestTask(sequence_id=sequence_id, resolved_url=self.url, auth_token=self.token)


@pytest.fixture
def recording_executor() -> RecordingExecutor:
    return RecordingExecutor()


@pytest.fixture
def static_source() -> StaticSource:
    return StaticSource()


@pytest.fixture
def seen_requests() -> list[httpx.Request]:
    return []


@pytest.fixture
def mock_client(seen_requests):
    """AsyncClient over a MockTransport answering 200 and recording every request."""

    def handler(request: httpx.Request) -> httpx.Response:
        seen_requests.append(request)
        return httpx.Response(200, json={"ok": True})

    return httpx.AsyncClient(
        transport=httpx.MockTransport(handler),
        headers={"Accept": "application/json", "User-Agent": "Mozilla/5.0"},
    )
