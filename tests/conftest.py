"""Shared pytest fixtures for unit and integration tests."""
import asyncio
from dataclasses import dataclass, field
from typing import Any
from unittest.mock import AsyncMock

import pytest

from pixel_pusher.errors import TransferError
from pixel_pusher.jobs.models import ErrorKind, JobState
from pixel_pusher.jobs.schemas import JobParameters, PollPolicy, UploadGrant
from pixel_pusher.services.job_controller import JobCallbacks, JobController
from pixel_pusher.services.key_codec import build_input_key

OUTPUT_BASE_URL = "https://output.example.test"
UPLOAD_URL = "https://input.example.test/upload?signature=abc"


class FakeStorage:
    """In-memory stand-in for StorageClient.

    ``head_statuses`` is consumed one entry per probe; once empty every probe
    answers ``default_status``. Entries may be exceptions, which are raised.
    """

    def __init__(self, head_statuses: list[Any] | None = None, default_status: int = 404) -> None:
        self.head_statuses = list(head_statuses or [])
        self.default_status = default_status
        self.sent: list[tuple[str, bytes, str]] = []
        self.head_calls: list[str] = []
        self.fetch_calls: list[str] = []
        self.send_error: Exception | None = None
        self.fetch_error: Exception | None = None
        self.fetch_result: tuple[bytes, str | None] = (b"resized-bytes", "image/jpeg")

    def object_url(self, location: str) -> str:
        return f"{OUTPUT_BASE_URL}/{location}"

    async def send(self, write_url: str, payload: bytes, content_type: str) -> None:
        if self.send_error:
            raise self.send_error
        self.sent.append((write_url, payload, content_type))

    async def head(self, url: str) -> int:
        self.head_calls.append(url)
        status = self.head_statuses.pop(0) if self.head_statuses else self.default_status
        if isinstance(status, Exception):
            raise status
        return status

    async def fetch(self, url: str) -> tuple[bytes, str | None]:
        self.fetch_calls.append(url)
        if self.fetch_error:
            raise self.fetch_error
        return self.fetch_result


@dataclass
class RecordedCallbacks:
    states: list[JobState] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)
    results: list[str] = field(default_factory=list)
    errors: list[tuple[ErrorKind, str]] = field(default_factory=list)

    def as_callbacks(self) -> JobCallbacks:
        return JobCallbacks(
            on_state_change=self.states.append,
            on_progress_message=self.messages.append,
            on_result=self.results.append,
            on_error=lambda kind, message: self.errors.append((kind, message)),
        )


def make_params(**kwargs) -> JobParameters:
    """Factory function to create JobParameters for tests with defaults."""
    defaults = {
        "file_name": "a.png",
        "quality": 85,
        "max_width": 128,
        "max_height": 128,
        "content_type": "image/png",
    }
    defaults.update(kwargs)
    return JobParameters(**defaults)


def grant_for(params: JobParameters) -> UploadGrant:
    return UploadGrant(uploadUrl=UPLOAD_URL, key=build_input_key(params))


async def wait_for_state(controller: JobController, state: JobState, rounds: int = 200) -> None:
    for _ in range(rounds):
        if controller.state is state:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"controller never reached {state}, stuck in {controller.state}")


@pytest.fixture
def params() -> JobParameters:
    return make_params()


@pytest.fixture
def broker(params) -> AsyncMock:
    """Mock broker that grants the key the codec would build."""
    mock = AsyncMock()
    mock.request_location = AsyncMock(return_value=grant_for(params))
    return mock


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def recorded() -> RecordedCallbacks:
    return RecordedCallbacks()


@pytest.fixture
def fast_policy() -> PollPolicy:
    return PollPolicy(interval_ms=0, max_attempts=3)


@pytest.fixture
def slow_policy() -> PollPolicy:
    """Interval long enough that a test can act while the poller waits."""
    return PollPolicy(interval_ms=60_000, max_attempts=3)


@pytest.fixture
def controller(broker, storage, recorded, fast_policy) -> JobController:
    return JobController(
        broker,
        storage,
        callbacks=recorded.as_callbacks(),
        poll_policy=fast_policy,
        output_extension="jpeg",
    )


@pytest.fixture
def failing_download(storage) -> FakeStorage:
    storage.fetch_error = TransferError("Error preparing download: failed to fetch image (Not Found, 404)")
    return storage
