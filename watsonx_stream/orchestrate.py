"""Agent orchestration client: streamed agent runs with thread continuity."""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from typing import Any

import aiohttp

from watsonx_stream.config import OrchestrateConfig
from watsonx_stream.errors import ApiError
from watsonx_stream.http import SSE_HEADERS, BaseClient, auth_headers, open_stream, require_token
from watsonx_stream.models import DEFAULT_TIMEOUT_SECS
from watsonx_stream.sse import StreamAccumulator, decode_stream
from watsonx_stream.types import ChatCompletionResult

log = logging.getLogger("watsonx-stream")

RUNS_STREAM_PATH = "runs/stream"

# Tried in order; deployments expose document chat under different routes
CHAT_WITH_DOCS_ROUTES = (
    "orchestrate/agents/{agent}/threads/{thread}/chat_with_docs",
    "agents/{agent}/threads/{thread}/chat_with_docs",
    "orchestrate/agents/{agent}/threads/{thread}/runs/stream",
    "agents/{agent}/threads/{thread}/runs/stream",
)


def _empty_agent_response(acc: StreamAccumulator) -> ApiError:
    message = "Empty response from agent"
    if acc.parse_errors:
        message += f" ({acc.parse_errors} of {acc.lines} line(s) could not be parsed)"
    return ApiError(message)


class OrchestrateClient(BaseClient):
    """Talks to one orchestration instance.

    The run endpoint answers with one JSON envelope per line
    (``{"event": ..., "data": {...}}``); both that form and ``data:``
    framed lines are decoded.
    """

    def __init__(
        self,
        config: OrchestrateConfig,
        *,
        access_token: str | None = None,
        session: aiohttp.ClientSession | None = None,
        timeout: float = float(DEFAULT_TIMEOUT_SECS),
    ):
        super().__init__(access_token=access_token, session=session)
        self.config = config
        self.timeout = timeout

    def _headers(self, token: str) -> dict[str, str]:
        headers = auth_headers(token, SSE_HEADERS)
        headers["IAM-API_KEY"] = token
        headers["X-Instance-ID"] = self.config.instance_id
        return headers

    async def _decode(
        self,
        url: str,
        payload: dict,
        token: str,
        thread_id: str | None,
        on_fragment: Callable[[str], Any] | None,
        what: str,
    ) -> StreamAccumulator:
        async with open_stream(self.session, url, headers=self._headers(token), payload=payload, what=what) as resp:
            return await decode_stream(resp.content.iter_any(), on_fragment, thread_id=thread_id, bare_json=True)

    async def stream_message(
        self,
        agent_id: str,
        message: str,
        thread_id: str | None = None,
        on_fragment: Callable[[str], Any] | None = None,
    ) -> ChatCompletionResult:
        """Send ``message`` to an agent and stream its reply.

        The reply is the concatenated ``message.delta`` text; a run that only
        announces its answer in a ``message.created`` event returns that
        instead. The returned thread id is the latest one seen in the stream,
        or ``thread_id`` when the stream never named one.
        """
        token = require_token(self._access_token, "Set an access token first.")
        request_id = str(uuid.uuid4())
        payload = {
            "message": {"role": "user", "content": message},
            "additional_properties": {},
            "context": {},
            "agent_id": agent_id,
            "thread_id": thread_id,
        }
        url = self.config.endpoint(RUNS_STREAM_PATH)
        t0 = time.monotonic()
        log.info(f"[{request_id[:8]}] agent run start agent={agent_id} thread={thread_id or '-'}")

        acc = await self._with_timeout(
            self._decode(url, payload, token, thread_id, on_fragment, "Agent run stream"),
            self.timeout,
            "Agent run stream",
        )
        log.info(
            f"[{request_id[:8]}] agent run done in {time.monotonic() - t0:.2f}s "
            f"({acc.fragments} fragments, thread={acc.thread_id or '-'}, done_marker={acc.saw_done})"
        )
        text = acc.text
        if not text.strip() and acc.final_text:
            text = acc.final_text
        if not text.strip():
            raise _empty_agent_response(acc)
        return ChatCompletionResult(
            text=text,
            model_id=agent_id,
            thread_id=acc.thread_id or thread_id,
            request_id=request_id,
        )

    async def send_message(
        self, agent_id: str, message: str, thread_id: str | None = None
    ) -> ChatCompletionResult:
        """``stream_message`` without a fragment callback."""
        return await self.stream_message(agent_id, message, thread_id)

    async def stream_chat_with_docs(
        self,
        agent_id: str,
        thread_id: str,
        message: str,
        *,
        document_content: str | None = None,
        document_path: str | None = None,
        context: dict | None = None,
        on_fragment: Callable[[str], Any] | None = None,
    ) -> ChatCompletionResult:
        """Ask an agent about a document and stream the reply.

        Each route in ``CHAT_WITH_DOCS_ROUTES`` is tried in turn; a route
        answering with a non-2xx status is skipped. Transport failures are
        not retried on the next route.
        """
        token = require_token(self._access_token, "Set an access token first.")
        request_id = str(uuid.uuid4())
        last_status = None

        for route in CHAT_WITH_DOCS_ROUTES:
            url = self.config.endpoint(route.format(agent=agent_id, thread=thread_id))
            if "chat_with_docs" in route:
                payload = {"message": message}
            else:
                payload = {
                    "message": {"role": "user", "content": message},
                    "agent_id": agent_id,
                    "thread_id": thread_id,
                }
            payload.update(document_content=document_content, document_path=document_path, context=context)

            try:
                acc = await self._with_timeout(
                    self._decode(url, payload, token, thread_id, on_fragment, "Chat with documents"),
                    self.timeout,
                    "Chat with documents",
                )
            except ApiError as exc:
                if exc.status is None:
                    raise
                last_status = exc.status
                log.warning(f"[{request_id[:8]}] chat with documents: {url} answered {exc.status}, trying next route")
                continue

            log.info(f"[{request_id[:8]}] chat with documents done via {url} ({acc.fragments} fragments)")
            return ChatCompletionResult(
                text=acc.text or acc.final_text or "",
                model_id=agent_id,
                thread_id=acc.thread_id or thread_id,
                request_id=request_id,
            )

        raise ApiError(
            f"Chat with documents is not available on this instance: "
            f"all {len(CHAT_WITH_DOCS_ROUTES)} routes were rejected",
            status=last_status,
        )
