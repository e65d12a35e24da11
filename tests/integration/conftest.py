"""Fake upload broker and buckets served in-process for end-to-end tests."""
from dataclasses import dataclass, field
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from pixel_pusher.clients.broker import LocationBrokerClient
from pixel_pusher.clients.storage import StorageClient
from pixel_pusher.jobs.schemas import PollPolicy
from pixel_pusher.services.job_controller import JobController

BASE_URL = "http://test"


@dataclass
class FakeBackend:
    """State shared by the fake broker, input bucket and resize worker."""

    ready_after: int = 2
    uploads: dict[str, tuple[bytes, str]] = field(default_factory=dict)
    pending: dict[str, int] = field(default_factory=dict)
    outputs: dict[str, bytes] = field(default_factory=dict)
    head_requests: list[str] = field(default_factory=list)

    def on_upload(self, key: str, body: bytes, content_type: str) -> None:
        self.uploads[key] = (body, content_type)
        prefix, _, name = key.partition("/")
        base = name.rsplit(".", 1)[0] if "." in name else name
        self.pending[f"resized-{prefix}/{base}.jpeg"] = self.ready_after

    def on_head(self, location: str) -> bool:
        self.head_requests.append(location)
        if location in self.outputs:
            return True
        if location not in self.pending:
            return False
        self.pending[location] -= 1
        if self.pending[location] <= 0:
            del self.pending[location]
            self.outputs[location] = b"resized:" + location.encode()
            return True
        return False


def build_backend_app(backend: FakeBackend) -> FastAPI:
    app = FastAPI(title="Fake resize backend")

    @app.get("/api/get-upload-url")
    async def get_upload_url(fileName: str, quality: int, width: int, height: int, contentType: str):
        if fileName.startswith("forbidden"):
            return JSONResponse(status_code=403, content={"error": "Access denied"})
        key = f"q{quality}_w{width}_h{height}/{fileName}"
        return {"uploadUrl": f"{BASE_URL}/upload/{key}", "key": key}

    @app.put("/upload/{key:path}")
    async def upload(key: str, request: Request) -> Response:
        backend.on_upload(key, await request.body(), request.headers.get("content-type", ""))
        return Response(status_code=200)

    @app.head("/output/{location:path}")
    async def head_output(location: str) -> Response:
        return Response(status_code=200 if backend.on_head(location) else 404)

    @app.get("/output/{location:path}")
    async def get_output(location: str) -> Response:
        if location not in backend.outputs:
            return Response(status_code=404)
        return Response(content=backend.outputs[location], media_type="image/jpeg")

    return app


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest_asyncio.fixture
async def test_client(backend) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Create HTTP client wired to the fake backend."""
    transport = httpx.ASGITransport(app=build_backend_app(backend))
    async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as client:
        yield client


@pytest.fixture
def make_controller(test_client, recorded):
    def factory(max_attempts: int = 5) -> JobController:
        return JobController(
            LocationBrokerClient(test_client, f"{BASE_URL}/api"),
            StorageClient(test_client, f"{BASE_URL}/output"),
            callbacks=recorded.as_callbacks(),
            poll_policy=PollPolicy(interval_ms=0, max_attempts=max_attempts),
            output_extension="jpeg",
        )

    return factory
