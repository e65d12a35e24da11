import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pixel_pusher.jobs.schemas import JobParameters


class JobState(str, enum.Enum):
    IDLE = "IDLE"
    REQUESTING_LOCATION = "REQUESTING_LOCATION"
    UPLOADING = "UPLOADING"
    AWAITING_RESULT = "AWAITING_RESULT"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


ACTIVE_STATES = frozenset(
    {JobState.REQUESTING_LOCATION, JobState.UPLOADING, JobState.AWAITING_RESULT}
)
TERMINAL_STATES = frozenset({JobState.SUCCEEDED, JobState.FAILED, JobState.CANCELLED})


class ErrorKind(str, enum.Enum):
    """Typed reason carried by a failed job."""

    VALIDATION = "VALIDATION"
    AUTHORIZATION = "AUTHORIZATION"
    TRANSIENT = "TRANSIENT"
    TRANSFER = "TRANSFER"
    PARSE = "PARSE"
    TIMEOUT = "TIMEOUT"


@dataclass
class Job:
    """One resize request, owned and mutated only by the job controller."""

    parameters: "JobParameters"
    input_key: str | None = None
    output_location: str | None = None
    state: JobState = JobState.IDLE
    attempts: int = 0
    output_reference: str | None = None
    error_kind: ErrorKind | None = None
    error: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: datetime | None = None

    def mark_requesting_location(self) -> None:
        self.state = JobState.REQUESTING_LOCATION

    def mark_uploading(self, input_key: str) -> None:
        self.state = JobState.UPLOADING
        self.input_key = input_key

    def mark_awaiting_result(self, output_location: str) -> None:
        self.state = JobState.AWAITING_RESULT
        self.output_location = output_location
        self.attempts = 0

    def mark_succeeded(self, output_reference: str) -> None:
        self.state = JobState.SUCCEEDED
        self.output_reference = output_reference
        self.completed_at = datetime.now(timezone.utc)

    def mark_failed(self, kind: ErrorKind, error: str) -> None:
        self.state = JobState.FAILED
        self.error_kind = kind
        self.error = error
        self.completed_at = datetime.now(timezone.utc)

    def mark_cancelled(self) -> None:
        self.state = JobState.CANCELLED
        self.completed_at = datetime.now(timezone.utc)
