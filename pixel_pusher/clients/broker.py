"""Client for the broker that hands out presigned upload URLs."""

import logging
from typing import Protocol

import httpx

from pixel_pusher.config import settings
from pixel_pusher.errors import AuthorizationError, TransientError
from pixel_pusher.jobs.schemas import JobParameters, UploadGrant

logger = logging.getLogger(__name__)

_AUTH_STATUSES = frozenset({401, 403})


class LocationBroker(Protocol):
    async def request_location(self, params: JobParameters) -> UploadGrant: ...


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return response.reason_phrase


class LocationBrokerClient:
    """Single-shot request for a write location. Retrying is the user's call."""

    def __init__(self, http: httpx.AsyncClient, base_url: str | None = None) -> None:
        self._http = http
        self._base_url = (base_url or settings.api_base_url).rstrip("/")

    @property
    def endpoint(self) -> str:
        return f"{self._base_url}/get-upload-url"

    async def request_location(self, params: JobParameters) -> UploadGrant:
        query = {
            "fileName": params.file_name,
            "quality": params.quality,
            "width": params.max_width,
            "height": params.max_height,
            "contentType": params.content_type,
        }
        try:
            response = await self._http.get(self.endpoint, params=query)
        except httpx.HTTPError as exc:
            logger.error(f"Broker request failed: {exc!r}")
            raise TransientError(f"Failed to get upload URL: {exc}") from exc

        if not response.is_success:
            message = (
                f"Failed to get upload URL: {_error_detail(response)} ({response.status_code})"
            )
            logger.error(message)
            if response.status_code in _AUTH_STATUSES:
                raise AuthorizationError(message)
            raise TransientError(message)

        try:
            grant = UploadGrant.model_validate(response.json())
        except ValueError as exc:
            logger.error(f"Broker returned a malformed upload grant: {response.text[:200]}")
            raise TransientError("Failed to get upload URL: malformed broker response") from exc
        logger.info(f"Broker issued upload location for key {grant.key}")
        return grant
