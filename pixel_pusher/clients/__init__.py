import httpx

from pixel_pusher.config import Settings, settings


def create_http_client(config: Settings = settings) -> httpx.AsyncClient:
    """Shared async HTTP client for the broker and the buckets."""
    return httpx.AsyncClient(timeout=config.http_timeout_seconds)
