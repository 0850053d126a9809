"""HTTP client that waits for a bulk generation job to finish.

The wait is an explicit state machine::

    polling -> completed | failed | timed_out | cancelled

Polling happens at a fixed interval and stops after a bounded total time.
Transient HTTP errors (network failures, 5xx) consume a retry budget that
is refilled by every successful poll; a 4xx ends the wait as ``failed``.
Cancelling only stops the polling, the job itself keeps running::

    token = CancellationToken()
    client = BulkJobClient("http://localhost:8000/api/v1", entity_id)
    result = await client.wait_for_job(job_id, token)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable
from uuid import UUID

import httpx

from compositor.config import get_settings

logger = logging.getLogger(__name__)


class PollState(str, Enum):
    POLLING = "polling"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class CancellationToken:
    """Cooperative cancellation flag that can also be awaited."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; True if cancelled meanwhile."""
        try:
            await asyncio.wait_for(self._event.wait(), timeout=max(timeout, 0))
        except asyncio.TimeoutError:
            pass
        return self._event.is_set()


@dataclass
class PollResult:
    state: PollState
    job: dict[str, Any] | None = None
    error: str | None = None
    attempts: int = 0


class BulkJobClient:
    """Client for the ``/bulk-generation`` endpoints."""

    def __init__(
        self,
        base_url: str,
        entity_id: UUID | str,
        interval: float | None = None,
        timeout: float | None = None,
        retry_budget: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self.base_url = base_url.rstrip("/")
        self.entity_id = str(entity_id)
        self.interval = interval if interval is not None else settings.bulk_poll_interval_seconds
        self.timeout = timeout if timeout is not None else settings.bulk_poll_timeout_seconds
        self.retry_budget = retry_budget if retry_budget is not None else settings.bulk_poll_retry_budget
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"X-Entity-ID": self.entity_id},
            timeout=30.0,
            transport=self.transport,
        )

    async def get_job(self, job_id: UUID | str) -> dict[str, Any]:
        async with self._client() as client:
            resp = await client.get(f"/bulk-generation/{job_id}")
            resp.raise_for_status()
            return resp.json()

    async def wait_for_job(
        self,
        job_id: UUID | str,
        cancel_token: CancellationToken | None = None,
        on_progress: Callable[[dict[str, Any]], None] | None = None,
    ) -> PollResult:
        """Poll until the job is terminal, the deadline passes or the token is cancelled."""
        token = cancel_token or CancellationToken()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout
        state = PollState.POLLING
        job: dict[str, Any] | None = None
        error: str | None = None
        failures = 0
        attempts = 0

        async with self._client() as client:
            while state is PollState.POLLING:
                if token.cancelled:
                    state = PollState.CANCELLED
                    break
                if loop.time() >= deadline:
                    state = PollState.TIMED_OUT
                    break

                attempts += 1
                try:
                    resp = await client.get(f"/bulk-generation/{job_id}")
                    resp.raise_for_status()
                    job = resp.json()
                    failures = 0
                except httpx.HTTPStatusError as e:
                    if e.response.status_code < 500:
                        state = PollState.FAILED
                        error = f"HTTP {e.response.status_code}: {e.response.text}"
                        break
                    failures += 1
                    error = f"HTTP {e.response.status_code}"
                except httpx.RequestError as e:
                    failures += 1
                    error = str(e) or type(e).__name__

                if failures > self.retry_budget:
                    state = PollState.FAILED
                    break

                if failures == 0 and job is not None:
                    error = None
                    if on_progress:
                        on_progress(job)
                    status = job.get("status")
                    if status == "completed":
                        state = PollState.COMPLETED
                        break
                    if status == "failed":
                        state = PollState.FAILED
                        break
                else:
                    logger.warning(f"Polling job {job_id} failed ({failures}/{self.retry_budget}): {error}")

                remaining = deadline - loop.time()
                if remaining <= 0:
                    state = PollState.TIMED_OUT
                    break
                if await token.wait(min(self.interval, remaining)):
                    state = PollState.CANCELLED

        logger.info(f"Stopped polling job {job_id}: {state.value} after {attempts} attempt(s)")
        return PollResult(state=state, job=job, error=error, attempts=attempts)
