"""Job controller: drives one resize job from submission to a terminal state.

A job goes through the broker, the upload and the completion poll strictly
in that order. The controller is the only thing that mutates the ``Job``;
the clients and the poller get plain values and hand back results.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from pydantic import ValidationError

from pixel_pusher.clients.broker import LocationBroker
from pixel_pusher.clients.storage import StorageClient, cache_busted
from pixel_pusher.config import settings
from pixel_pusher.errors import (
    InvalidTransitionError,
    JobValidationError,
    KeyParseError,
    PixelPusherError,
    PollingTimeoutError,
    TransferError,
    TransientError,
)
from pixel_pusher.jobs.models import ACTIVE_STATES, TERMINAL_STATES, ErrorKind, Job, JobState
from pixel_pusher.jobs.schemas import DownloadedArtifact, JobParameters, PollPolicy
from pixel_pusher.services.key_codec import ParseError, build_download_name, derive_output_location
from pixel_pusher.workers.poller import CompletionPoller, PollStatus

logger = logging.getLogger(__name__)


def _noop(*_: Any) -> None:
    return None


@dataclass
class JobCallbacks:
    """Hooks for the presentation layer. All optional."""

    on_state_change: Callable[[JobState], None] = _noop
    on_progress_message: Callable[[str], None] = _noop
    on_result: Callable[[str], None] = _noop
    on_error: Callable[[ErrorKind, str], None] = _noop


class JobController:
    def __init__(
        self,
        broker: LocationBroker,
        storage: StorageClient,
        *,
        callbacks: JobCallbacks | None = None,
        poll_policy: PollPolicy | None = None,
        output_extension: str | None = None,
    ) -> None:
        self._broker = broker
        self._storage = storage
        self._callbacks = callbacks or JobCallbacks()
        self._poll_policy = poll_policy or PollPolicy.from_settings()
        self._output_extension = (output_extension or settings.output_format).lower()
        self._state = JobState.IDLE
        self._job: Job | None = None
        self._poller: CompletionPoller | None = None

    @property
    def state(self) -> JobState:
        return self._state

    @property
    def job(self) -> Job | None:
        return self._job

    @property
    def output_extension(self) -> str:
        return self._output_extension

    def _owns(self, job: Job) -> bool:
        """False once the job has been cancelled, reset or replaced."""
        return self._job is job and self._state in ACTIVE_STATES

    def _set_state(self, state: JobState) -> None:
        self._state = state
        self._callbacks.on_state_change(state)

    def _progress(self, text: str) -> None:
        self._callbacks.on_progress_message(text)

    def _fail(self, job: Job, exc: PixelPusherError) -> Job:
        logger.warning(
            f"Job for {job.parameters.file_name} failed [{exc.kind.value}]: {exc.message}"
        )
        job.mark_failed(exc.kind, exc.message)
        self._poller = None
        self._set_state(JobState.FAILED)
        self._progress(f"Error: {exc.message}")
        self._callbacks.on_error(exc.kind, exc.message)
        return job

    def _coerce_parameters(self, params: JobParameters | Mapping[str, Any]) -> JobParameters:
        if isinstance(params, JobParameters):
            return params
        try:
            return JobParameters.model_validate(dict(params))
        except ValidationError as exc:
            message = "; ".join(error["msg"] for error in exc.errors())
            raise JobValidationError(f"Invalid job parameters: {message}") from exc

    async def submit(self, params: JobParameters | Mapping[str, Any], payload: bytes) -> Job:
        """Run one job to a terminal state and return it.

        Raises ``InvalidTransitionError`` if a job is already in flight or
        finished but not reset, and ``JobValidationError`` if the
        parameters cannot be corrected. Every other fault ends in ``FAILED``;
        if the submitting task itself is cancelled the job ends ``CANCELLED``.
        """
        if self._state is not JobState.IDLE:
            raise InvalidTransitionError(self._state, "submit")
        try:
            job_params = self._coerce_parameters(params)
        except JobValidationError as exc:
            self._progress("Please select a file first.")
            self._callbacks.on_error(exc.kind, exc.message)
            raise

        job = Job(parameters=job_params)
        self._job = job
        try:
            return await self._run(job, payload)
        except asyncio.CancelledError:
            if self._owns(job):
                self._abandon(job)
            raise
        except Exception as exc:
            if self._owns(job):
                logger.error(f"Unexpected error while running job: {exc!r}", exc_info=True)
                self._fail(job, TransientError(f"Unexpected error: {exc}"))
            raise

    async def _run(self, job: Job, payload: bytes) -> Job:
        job_params = job.parameters
        job.mark_requesting_location()
        self._set_state(JobState.REQUESTING_LOCATION)
        self._progress("Getting upload URL...")
        try:
            grant = await self._broker.request_location(job_params)
        except PixelPusherError as exc:
            return self._fail(job, exc)
        if not self._owns(job):
            return job

        job.mark_uploading(grant.key)
        self._set_state(JobState.UPLOADING)
        self._progress("Uploading image...")
        try:
            await self._storage.send(grant.upload_url, payload, job_params.content_type)
        except TransferError as exc:
            return self._fail(job, exc)
        if not self._owns(job):
            return job

        # the broker's key is authoritative, not what the codec would build
        location = derive_output_location(grant.key, self._output_extension)
        if isinstance(location, ParseError):
            logger.error(f"Broker returned a key in an unknown shape: {location.key!r}")
            return self._fail(job, KeyParseError(location.key))

        job.mark_awaiting_result(location)
        self._set_state(JobState.AWAITING_RESULT)
        self._progress("Upload successful! Waiting for resized version...")
        return await self._await_result(job, location)

    async def _await_result(self, job: Job, location: str) -> Job:
        url = self._storage.object_url(location)
        logger.info(f"Starting polling for expected output key: {location}")
        poller = CompletionPoller(self._storage, url, self._poll_policy)
        self._poller = poller

        async for probe in poller.probes():
            if not self._owns(job) or self._poller is not poller:
                return job
            job.attempts = probe.attempt
            self._progress(
                f"Waiting for resized version (attempt {probe.attempt}/"
                f"{self._poll_policy.max_attempts})..."
            )

        if not self._owns(job) or self._poller is not poller:
            return job
        job.attempts = poller.attempts
        self._poller = None

        if poller.status is PollStatus.FOUND:
            reference = cache_busted(url)
            job.mark_succeeded(reference)
            self._set_state(JobState.SUCCEEDED)
            self._progress("Resized image loaded.")
            self._callbacks.on_result(reference)
            return job
        if poller.status is PollStatus.ABORTED:
            return self._fail(
                job,
                TransientError("Image processing failed: storage returned an unexpected status."),
            )
        return self._fail(
            job,
            PollingTimeoutError(
                "Image processing timed out. The resized image may still appear later; "
                "please try again."
            ),
        )

    def cancel(self) -> None:
        """Stop waiting for the result. Only valid while polling."""
        if self._state is not JobState.AWAITING_RESULT:
            raise InvalidTransitionError(self._state, "cancel")
        self._stop_polling()
        if self._job is not None:
            self._job.mark_cancelled()
            logger.info(f"Job for {self._job.parameters.file_name} cancelled")
        self._set_state(JobState.CANCELLED)
        self._progress("Processing cancelled.")

    def reset(self) -> None:
        """Discard the current job and go back to ``IDLE``.

        A job that is still waiting for its result is cancelled first.
        A job in the middle of the broker request or the upload cannot be reset.
        """
        if self._state is JobState.AWAITING_RESULT:
            self.cancel()
        if self._state not in TERMINAL_STATES and self._state is not JobState.IDLE:
            raise InvalidTransitionError(self._state, "reset")
        self._stop_polling()
        self._job = None
        if self._state is not JobState.IDLE:
            self._set_state(JobState.IDLE)
            self._progress("")

    def _abandon(self, job: Job) -> None:
        """Close out a job whose submit was cancelled from outside."""
        logger.info(f"Job for {job.parameters.file_name} interrupted in {self._state.value}")
        self._stop_polling()
        job.mark_cancelled()
        self._set_state(JobState.CANCELLED)
        self._progress("Processing cancelled.")

    def _stop_polling(self) -> None:
        if self._poller is not None:
            self._poller.cancel()
            self._poller = None

    async def download(self) -> DownloadedArtifact:
        """Fetch the finished artifact. The job stays ``SUCCEEDED`` either way."""
        job = self._job
        if self._state is not JobState.SUCCEEDED or job is None or job.output_location is None:
            raise InvalidTransitionError(self._state, "download")
        self._progress("Preparing download...")
        try:
            content, content_type = await self._storage.fetch(
                self._storage.object_url(job.output_location)
            )
        except TransferError as exc:
            self._progress(exc.message)
            self._callbacks.on_error(exc.kind, exc.message)
            raise
        self._progress("Download started.")
        return DownloadedArtifact(
            file_name=build_download_name(job.input_key, self._output_extension),
            content=content,
            content_type=content_type,
        )
