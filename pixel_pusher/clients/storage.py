"""Direct reads and writes against the object storage buckets."""

import logging
import time

import httpx

from pixel_pusher.config import settings
from pixel_pusher.errors import TransferError

logger = logging.getLogger(__name__)


def cache_busted(url: str) -> str:
    """Append a ``t=<epoch ms>`` parameter so intermediaries can't answer from cache."""
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}t={time.time_ns() // 1_000_000}"


class StorageClient:
    def __init__(self, http: httpx.AsyncClient, output_base_url: str | None = None) -> None:
        self._http = http
        self._output_base_url = (output_base_url or settings.public_output_base_url).rstrip("/")

    def object_url(self, location: str) -> str:
        """Public URL of an object in the output bucket."""
        return f"{self._output_base_url}/{location.lstrip('/')}"

    async def send(self, write_url: str, payload: bytes, content_type: str) -> None:
        """PUT the artifact to a presigned URL. One attempt only."""
        try:
            response = await self._http.put(
                write_url, content=payload, headers={"Content-Type": content_type}
            )
        except httpx.HTTPError as exc:
            logger.error(f"Upload error: {exc!r}")
            raise TransferError(f"Upload failed: {exc}") from exc
        if not response.is_success:
            logger.error(f"Storage upload error response: {response.text[:500]}")
            raise TransferError(
                f"Upload failed: {response.reason_phrase} ({response.status_code})"
            )

    async def head(self, url: str) -> int:
        """Metadata-only presence check. Network errors propagate as ``httpx.HTTPError``."""
        response = await self._http.head(
            cache_busted(url), headers={"Cache-Control": "no-store"}
        )
        return response.status_code

    async def fetch(self, url: str) -> tuple[bytes, str | None]:
        try:
            response = await self._http.get(
                cache_busted(url), headers={"Cache-Control": "no-store"}
            )
        except httpx.HTTPError as exc:
            logger.error(f"Download error: {exc!r}")
            raise TransferError(f"Error preparing download: {exc}") from exc
        if not response.is_success:
            raise TransferError(
                "Error preparing download: failed to fetch image "
                f"({response.reason_phrase}, {response.status_code})"
            )
        return response.content, response.headers.get("content-type")
