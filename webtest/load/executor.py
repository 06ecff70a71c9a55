"""Single-request executor over a shared ``httpx.AsyncClient``."""

import asyncio
import time

import httpx
import structlog

from webtest.load.errors import ClientSetupError
from webtest.load.models import Completed, Failed, FailureReason, RequestOutcome, RequestTask

logger = structlog.get_logger()

DEFAULT_USER_AGENT = "Mozilla/5.0"


def build_client(
    timeout_seconds: float = 30.0,
    max_idle_per_host: int = 5000,
    user_agent: str = DEFAULT_USER_AGENT,
) -> httpx.AsyncClient:
    """Create the connection pool shared by every in-flight request of a run.

    Connections are not capped; idle keep-alive connections are capped at
    *max_idle_per_host*. Automatic retries are disabled.
    """
    try:
        transport = httpx.AsyncHTTPTransport(
            retries=0,
            limits=httpx.Limits(
                max_connections=None,
                max_keepalive_connections=max_idle_per_host,
            ),
        )
        return httpx.AsyncClient(
            transport=transport,
            timeout=httpx.Timeout(timeout_seconds),
            headers={"Accept": "application/json", "User-Agent": user_agent},
        )
    except (httpx.HTTPError, ValueError, OSError) as exc:
        raise ClientSetupError(f"Could not build HTTP client: {exc}") from exc


def _auth_headers(token: str | None) -> dict[str, str]:
    if not token:
        return {}
    if any(ch in token for ch in "\r\n\0"):
        raise ValueError("bearer token contains control characters")
    return {"Authorization": f"Bearer {token}"}


class RequestExecutor:
    """Performs exactly one GET per task and never raises past ``execute``.

    httpx applies its timeout per phase (connect, each read, write, pool), so
    a server trickling its body can outlive it. *timeout_seconds* caps the
    whole send including the body; ``None`` leaves only the client's limits.
    """

    def __init__(self, client: httpx.AsyncClient, timeout_seconds: float | None = None) -> None:
        self.client = client
        self.timeout_seconds = timeout_seconds

    async def execute(self, task: RequestTask) -> RequestOutcome:
        try:
            request = self.client.build_request(
                "GET", task.resolved_url, headers=_auth_headers(task.auth_token)
            )
        except (httpx.InvalidURL, ValueError, TypeError) as exc:
            return self._failed(task, FailureReason.REQUEST_CONSTRUCTION, exc, 0.0)

        t0 = time.perf_counter()
        try:
            async with asyncio.timeout(self.timeout_seconds):
                response = await self.client.send(request)
        except httpx.TimeoutException as exc:
            return self._failed(task, FailureReason.TIMEOUT, exc, _elapsed_ms(t0))
        except TimeoutError:
            return self._failed(
                task,
                FailureReason.TIMEOUT,
                TimeoutError(f"request exceeded {self.timeout_seconds}s"),
                _elapsed_ms(t0),
            )
        except httpx.UnsupportedProtocol as exc:
            return self._failed(
                task, FailureReason.REQUEST_CONSTRUCTION, exc, _elapsed_ms(t0)
            )
        except httpx.HTTPError as exc:
            return self._failed(task, FailureReason.TRANSPORT, exc, _elapsed_ms(t0))

        latency_ms = _elapsed_ms(t0)
        logger.info(
            "request_completed",
            sequence_id=task.sequence_id,
            url=task.resolved_url,
            status_code=response.status_code,
            latency_ms=round(latency_ms, 2),
        )
        return Completed(
            sequence_id=task.sequence_id,
            url=task.resolved_url,
            status_code=response.status_code,
            latency_ms=latency_ms,
        )

    @staticmethod
    def _failed(
        task: RequestTask, reason: FailureReason, exc: Exception, latency_ms: float
    ) -> Failed:
        detail = str(exc) or type(exc).__name__
        logger.warning(
            "request_failed",
            sequence_id=task.sequence_id,
            url=task.resolved_url,
            reason=str(reason),
            error=detail,
        )
        return Failed(
            sequence_id=task.sequence_id,
            url=task.resolved_url,
            reason=reason,
            detail=detail,
            latency_ms=latency_ms,
        )


def _elapsed_ms(t0: float) -> float:
    return (time.perf_counter() - t0) * 1000.0
