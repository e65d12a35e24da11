"""Poller that waits for the resize worker's output to appear in the bucket.

Nothing tells us when the worker is done, so the poller keeps issuing HEAD
requests against the derived output URL until the object exists, the
attempt budget runs out, or the caller cancels. Timeouts are counted in
attempts, not wall-clock time.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Protocol

import httpx

from pixel_pusher.jobs.schemas import PollPolicy

logger = logging.getLogger(__name__)

_NOT_READY_STATUSES = frozenset({403, 404})


class ProbeOutcome(str, enum.Enum):
    FOUND = "FOUND"
    NOT_FOUND_YET = "NOT_FOUND_YET"
    UNEXPECTED_STATUS = "UNEXPECTED_STATUS"
    NETWORK_FAULT = "NETWORK_FAULT"


class PollStatus(str, enum.Enum):
    RUNNING = "RUNNING"
    FOUND = "FOUND"
    EXHAUSTED = "EXHAUSTED"
    ABORTED = "ABORTED"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class ProbeResult:
    attempt: int
    outcome: ProbeOutcome
    status_code: int | None = None


class PresenceProbe(Protocol):
    async def head(self, url: str) -> int: ...


def classify_status(status_code: int) -> ProbeOutcome:
    if 200 <= status_code < 300:
        return ProbeOutcome.FOUND
    if status_code in _NOT_READY_STATUSES:
        return ProbeOutcome.NOT_FOUND_YET
    return ProbeOutcome.UNEXPECTED_STATUS


class CompletionPoller:
    """One poll for one job. Not restartable: create a new poller per job."""

    def __init__(self, storage: PresenceProbe, url: str, policy: PollPolicy) -> None:
        self._storage = storage
        self._url = url
        self._policy = policy
        self._cancelled = asyncio.Event()
        self._started = False
        self.attempts = 0
        self.status = PollStatus.RUNNING

    @property
    def url(self) -> str:
        return self._url

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Stop the poll. Takes effect at the next gap between probes."""
        if self.status is PollStatus.RUNNING:
            self.status = PollStatus.CANCELLED
        self._cancelled.set()
        logger.info("Polling stopped.")

    async def _pause(self) -> None:
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=self._policy.interval_seconds)
        except asyncio.TimeoutError:
            pass

    async def _probe(self) -> ProbeResult:
        try:
            status_code = await self._storage.head(self._url)
        except httpx.HTTPError as exc:
            logger.error(f"Polling network error: {exc!r}")
            return ProbeResult(self.attempts, ProbeOutcome.NETWORK_FAULT)

        outcome = classify_status(status_code)
        if outcome is ProbeOutcome.NOT_FOUND_YET:
            logger.info(
                f"Polling attempt failed with status: {status_code} (Image not ready yet?)"
            )
        elif outcome is ProbeOutcome.UNEXPECTED_STATUS:
            logger.warning(f"Polling attempt failed with status: {status_code}. Will keep trying.")
        return ProbeResult(self.attempts, outcome, status_code)

    async def probes(self) -> AsyncIterator[ProbeResult]:
        """Yield one result per probe until found, exhausted, aborted or cancelled."""
        if self._started:
            raise RuntimeError("CompletionPoller cannot be restarted")
        self._started = True
        logger.info(f"Starting polling for expected output at {self._url}")

        while True:
            self.attempts += 1
            if self.attempts > self._policy.max_attempts:
                self.attempts = self._policy.max_attempts
                if self.status is PollStatus.RUNNING:
                    self.status = PollStatus.EXHAUSTED
                    logger.error(f"Polling timed out for: {self._url}")
                return

            await self._pause()
            if self.cancelled:
                return

            logger.info(f"Polling attempt #{self.attempts} for {self._url}")
            result = await self._probe()
            # a cancel that lands mid-probe discards the result
            if self.cancelled:
                return

            if result.outcome is ProbeOutcome.FOUND:
                self.status = PollStatus.FOUND
                logger.info(f"Polling successful! Image found at: {self._url}")
            elif (
                result.outcome is ProbeOutcome.UNEXPECTED_STATUS
                and not self._policy.retry_unexpected_status
            ):
                self.status = PollStatus.ABORTED
                logger.error(f"Polling aborted on status {result.status_code} for {self._url}")
            yield result
            if self.status is not PollStatus.RUNNING:
                return

    async def await_completion(self) -> PollStatus:
        async for _ in self.probes():
            pass
        return self.status
