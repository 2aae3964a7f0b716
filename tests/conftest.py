"""Pytest configuration and shared fixtures."""

import asyncio
import json
import shutil
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path

import pytest
from aiohttp import web

from watsonx_stream.config import OrchestrateConfig, WatsonxConfig


@asynccontextmanager
async def serve(handler):
    """Run ``handler`` as a catch-all aiohttp app on an ephemeral port.

    Must be entered inside the event loop the client under test uses.
    Yields the base URL.
    """
    app = web.Application()
    app.router.add_route("*", "/{path_info:.*}", handler)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()
    port = runner.addresses[0][1]
    try:
        yield f"http://127.0.0.1:{port}"
    finally:
        await runner.cleanup()


def sse_line(payload) -> bytes:
    return f"data: {json.dumps(payload)}\n\n".encode()


def gen_event(text: str) -> bytes:
    return sse_line({"results": [{"generated_text": text}]})


async def write_stream(request, chunks, *, content_type="text/event-stream"):
    """Write ``chunks`` one by one as a streaming response body."""
    resp = web.StreamResponse(status=200, headers={"Content-Type": content_type})
    await resp.prepare(request)
    for chunk in chunks:
        await resp.write(chunk)
        await asyncio.sleep(0.005)
    await resp.write_eof()
    return resp


@pytest.fixture
def make_config():
    def _make(base_url: str, **overrides) -> WatsonxConfig:
        return WatsonxConfig(api_key="test-api-key", project_id="proj-123", api_url=base_url, **overrides)

    return _make


@pytest.fixture
def make_orchestrate_config():
    def _make(base_url: str) -> OrchestrateConfig:
        return OrchestrateConfig(instance_id="inst-42", base_url=f"{base_url}/instances/{{}}/v1/orchestrate")

    return _make


@pytest.fixture
def temp_dir():
    d = tempfile.mkdtemp(prefix="watsonx_stream_test_")
    yield Path(d)
    shutil.rmtree(d, ignore_errors=True)
