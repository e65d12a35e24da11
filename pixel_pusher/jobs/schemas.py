import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pixel_pusher.config import Settings, settings


def _to_number(value: Any) -> float | None:
    """Best-effort numeric coercion of form input; None when it is not a finite number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def clamp_quality(value: Any) -> int:
    number = _to_number(value)
    if number is None:
        return settings.default_quality
    return int(max(1, min(100, number)))


def clamp_dimension(value: Any) -> int:
    number = _to_number(value)
    if number is None or number == 0:
        return settings.default_dimension
    return max(1, int(number))


class JobParameters(BaseModel):
    """What the user asked for. Numeric fields are clamped, never rejected."""

    file_name: str
    quality: int = Field(default_factory=lambda: settings.default_quality)
    max_width: int = Field(default_factory=lambda: settings.default_dimension)
    max_height: int = Field(default_factory=lambda: settings.default_dimension)
    content_type: str = Field(default_factory=lambda: settings.default_content_type)

    model_config = ConfigDict(frozen=True)

    @field_validator("file_name", mode="before")
    @classmethod
    def _require_file_name(cls, value: Any) -> str:
        if value is None or not str(value).strip():
            raise ValueError("file name must not be empty")
        return str(value).strip()

    @field_validator("quality", mode="before")
    @classmethod
    def _clamp_quality(cls, value: Any) -> int:
        return clamp_quality(value)

    @field_validator("max_width", "max_height", mode="before")
    @classmethod
    def _clamp_dimension(cls, value: Any) -> int:
        return clamp_dimension(value)

    @field_validator("content_type", mode="before")
    @classmethod
    def _default_content_type(cls, value: Any) -> str:
        if value is None or not str(value).strip():
            return settings.default_content_type
        return str(value).strip()


class UploadGrant(BaseModel):
    """Broker response: where to write, and the authoritative key."""

    upload_url: str = Field(alias="uploadUrl", min_length=1)
    key: str = Field(min_length=1)

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class PollPolicy(BaseModel):
    interval_ms: int = Field(default_factory=lambda: settings.poll_interval_ms, ge=0)
    max_attempts: int = Field(default_factory=lambda: settings.max_poll_attempts, ge=1)
    retry_unexpected_status: bool = Field(
        default_factory=lambda: settings.retry_unexpected_status
    )

    model_config = ConfigDict(frozen=True)

    @property
    def interval_seconds(self) -> float:
        return self.interval_ms / 1000

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "PollPolicy":
        return cls(
            interval_ms=config.poll_interval_ms,
            max_attempts=config.max_poll_attempts,
            retry_unexpected_status=config.retry_unexpected_status,
        )


class DownloadedArtifact(BaseModel):
    file_name: str
    content: bytes
    content_type: str | None = None
