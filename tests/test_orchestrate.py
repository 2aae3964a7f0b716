"""Tests for OrchestrateClient against a fake agent run endpoint."""

import asyncio
import json

import pytest
from aiohttp import web
from conftest import serve, write_stream

from watsonx_stream.errors import ApiError, AuthenticationError
from watsonx_stream.orchestrate import OrchestrateClient


def _ndjson(*events) -> list[bytes]:
    return [(json.dumps(e) + "\n").encode() for e in events]


AGENT_EVENTS = [
    {"event": "run.started", "data": {"run_id": "r1", "thread_id": "thread-new"}},
    {"event": "message.delta", "data": {"delta": {"role": "assistant", "content": [{"text": "Hello"}]}}},
    {"event": "message.delta", "data": {"delta": {"content": [{"text": ", world"}]}}},
    {"event": "message.created", "data": {"message": {"content": [{"text": "Hello, world"}]}}},
    {"event": "done", "data": {}},
]


def _agent_api(requests, chunks):
    async def handler(request):
        requests.append({"path": request.path, "headers": dict(request.headers), "body": await request.json()})
        return await write_stream(request, chunks)

    return handler


def test_stream_message_ndjson(make_orchestrate_config):
    requests = []
    seen = []

    async def run():
        async with serve(_agent_api(requests, _ndjson(*AGENT_EVENTS))) as base:
            async with OrchestrateClient(make_orchestrate_config(base), access_token="wxo-token") as client:
                return await client.stream_message("agent-7", "hi there", on_fragment=seen.append)

    result = asyncio.run(run())
    assert seen == ["Hello", ", world"]
    assert result.text == "Hello, world"
    assert result.thread_id == "thread-new"
    assert result.model_id == "agent-7"

    req = requests[0]
    assert req["path"] == "/instances/inst-42/v1/orchestrate/runs/stream"
    assert req["headers"]["X-Instance-ID"] == "inst-42"
    assert req["headers"]["Accept"] == "text/event-stream"
    assert req["headers"]["Authorization"] == "Bearer wxo-token"
    assert req["body"] == {
        "message": {"role": "user", "content": "hi there"},
        "additional_properties": {},
        "context": {},
        "agent_id": "agent-7",
        "thread_id": None,
    }


def test_stream_message_data_framed(make_orchestrate_config, caplog):
    chunks = [f"data: {json.dumps(e)}\n\n".encode() for e in AGENT_EVENTS[1:3]] + [b"data: [DONE]\n\n"]

    async def run():
        async with serve(_agent_api([], chunks)) as base:
            async with OrchestrateClient(make_orchestrate_config(base), access_token="tok") as client:
                return await client.stream_message("agent-7", "hi")

    with caplog.at_level("INFO", logger="watsonx-stream"):
        assert asyncio.run(run()).text == "Hello, world"
    assert "done_marker=True" in caplog.text


def test_thread_id_falls_back_to_the_one_sent(make_orchestrate_config):
    requests = []

    async def run():
        async with serve(_agent_api(requests, _ndjson(*AGENT_EVENTS[1:3]))) as base:
            async with OrchestrateClient(make_orchestrate_config(base), access_token="tok") as client:
                return await client.send_message("agent-7", "again", thread_id="thread-old")

    result = asyncio.run(run())
    assert result.thread_id == "thread-old"
    assert requests[0]["body"]["thread_id"] == "thread-old"


def test_agent_stream_without_text_is_api_error(make_orchestrate_config):
    async def run():
        async with serve(_agent_api([], _ndjson(AGENT_EVENTS[0], AGENT_EVENTS[4]))) as base:
            async with OrchestrateClient(make_orchestrate_config(base), access_token="tok") as client:
                await client.stream_message("agent-7", "hi")

    with pytest.raises(ApiError, match="Empty response"):
        asyncio.run(run())


def test_missing_token(make_orchestrate_config):
    requests = []

    async def run():
        async with serve(_agent_api(requests, [])) as base:
            async with OrchestrateClient(make_orchestrate_config(base)) as client:
                await client.stream_message("agent-7", "hi")

    with pytest.raises(AuthenticationError):
        asyncio.run(run())
    assert requests == []


def test_send_message_uses_created_message_when_no_deltas(make_orchestrate_config):
    events = [
        {"event": "run.started", "data": {"run_id": "r9"}},
        {"event": "message.created", "data": {"message": {"content": [{"text": "Final answer"}]}, "thread_id": "t-9"}},
    ]

    async def run():
        async with serve(_agent_api([], _ndjson(*events))) as base:
            async with OrchestrateClient(make_orchestrate_config(base), access_token="tok") as client:
                return await client.send_message("agent", "hi")

    result = asyncio.run(run())
    assert result.text == "Final answer"
    assert result.thread_id == "t-9"


def test_deltas_win_over_created_message(make_orchestrate_config):
    events = AGENT_EVENTS[1:3] + [
        {"event": "message.created", "data": {"message": {"content": [{"text": "something else"}]}}},
    ]

    async def run():
        async with serve(_agent_api([], _ndjson(*events))) as base:
            async with OrchestrateClient(make_orchestrate_config(base), access_token="tok") as client:
                return await client.send_message("agent", "hi")

    assert asyncio.run(run()).text == "Hello, world"


# ---------------------------------------------------------------------------
# Chat with documents
# ---------------------------------------------------------------------------

DOCS_PREFIX = "/instances/inst-42/v1/orchestrate"


def _docs_api(requests, live_suffix):
    """Answer 404 on every route except the one ending in ``live_suffix``."""
    chunks = [f"data: {json.dumps(e)}\n\n".encode() for e in AGENT_EVENTS[1:3]] + [b"data: [DONE]\n\n"]

    async def handler(request):
        requests.append({"path": request.path, "body": await request.json()})
        if live_suffix is None or not request.path.endswith(live_suffix):
            return web.Response(status=404, text="no such route")
        return await write_stream(request, chunks)

    return handler


def test_chat_with_docs_skips_rejected_routes(make_orchestrate_config):
    requests = []
    seen = []

    async def run():
        handler = _docs_api(requests, "/v1/orchestrate/agents/agent-7/threads/th-1/chat_with_docs")
        async with serve(handler) as base:
            async with OrchestrateClient(make_orchestrate_config(base), access_token="tok") as client:
                return await client.stream_chat_with_docs(
                    "agent-7",
                    "th-1",
                    "summarise it",
                    document_content="Whales are mammals.",
                    document_path="notes/whales.txt",
                    on_fragment=seen.append,
                )

    result = asyncio.run(run())
    assert result.text == "Hello, world"
    assert result.thread_id == "th-1"
    assert seen == ["Hello", ", world"]
    assert [r["path"] for r in requests] == [
        f"{DOCS_PREFIX}/orchestrate/agents/agent-7/threads/th-1/chat_with_docs",
        f"{DOCS_PREFIX}/agents/agent-7/threads/th-1/chat_with_docs",
    ]
    assert requests[1]["body"] == {
        "message": "summarise it",
        "document_content": "Whales are mammals.",
        "document_path": "notes/whales.txt",
        "context": None,
    }


def test_chat_with_docs_falls_back_to_run_stream(make_orchestrate_config):
    requests = []

    async def run():
        handler = _docs_api(requests, "/v1/orchestrate/agents/agent-7/threads/th-1/runs/stream")
        async with serve(handler) as base:
            async with OrchestrateClient(make_orchestrate_config(base), access_token="tok") as client:
                return await client.stream_chat_with_docs(
                    "agent-7", "th-1", "summarise it", document_content="doc", context={"lang": "en"}
                )

    assert asyncio.run(run()).text == "Hello, world"
    assert len(requests) == 4
    assert requests[-1]["body"] == {
        "message": {"role": "user", "content": "summarise it"},
        "agent_id": "agent-7",
        "thread_id": "th-1",
        "document_content": "doc",
        "document_path": None,
        "context": {"lang": "en"},
    }


def test_chat_with_docs_all_routes_rejected(make_orchestrate_config):
    requests = []

    async def run():
        async with serve(_docs_api(requests, None)) as base:
            async with OrchestrateClient(make_orchestrate_config(base), access_token="tok") as client:
                await client.stream_chat_with_docs("agent-7", "th-1", "hi")

    with pytest.raises(ApiError, match="not available") as exc_info:
        asyncio.run(run())
    assert exc_info.value.status == 404
    assert len(requests) == 4
