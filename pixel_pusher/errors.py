"""Error taxonomy for resize jobs.

Every terminal job fault is one of the ``PixelPusherError`` subclasses below.
The controller stores the kind on the failed job and reports it through
``on_error``; it never retries a job on its own.
"""

from pixel_pusher.jobs.models import ErrorKind, JobState


class PixelPusherError(Exception):
    """Base class for job faults."""

    kind: ErrorKind

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class JobValidationError(PixelPusherError):
    """Parameters could not be corrected by clamping (e.g. empty file name)."""

    kind = ErrorKind.VALIDATION


class AuthorizationError(PixelPusherError):
    """The broker refused to issue a write location."""

    kind = ErrorKind.AUTHORIZATION


class TransientError(PixelPusherError):
    """The broker (or the bucket) failed in a way a resubmission may fix."""

    kind = ErrorKind.TRANSIENT


class TransferError(PixelPusherError):
    """Moving the artifact to or from storage failed."""

    kind = ErrorKind.TRANSFER


class KeyParseError(PixelPusherError):
    """The broker's key does not match any known shape."""

    kind = ErrorKind.PARSE

    def __init__(self, key: str) -> None:
        super().__init__(f"Could not parse prefix from key: {key!r}")
        self.key = key


class PollingTimeoutError(PixelPusherError):
    """The resized artifact did not show up within the attempt budget."""

    kind = ErrorKind.TIMEOUT


class InvalidTransitionError(Exception):
    """An operation was requested from a state that does not allow it."""

    def __init__(self, state: JobState, operation: str) -> None:
        super().__init__(f"Cannot {operation} while job is {state.value}")
        self.state = state
        self.operation = operation
