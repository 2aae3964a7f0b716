"""Text generation client: streaming, non-streaming, chat and batch calls."""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Iterable
from typing import Any

import aiohttp

from watsonx_stream.batch import run_batch
from watsonx_stream.config import WatsonxConfig
from watsonx_stream.errors import ApiError, SerializationError
from watsonx_stream.http import BaseClient, auth_headers, open_stream, request_json, require_token
from watsonx_stream.quality import assess_quality
from watsonx_stream.sse import StreamAccumulator, decode_stream
from watsonx_stream.types import (
    BatchGenerationResult,
    BatchRequest,
    ChatCompletionResult,
    ChatMessage,
    GenerationConfig,
    GenerationResult,
)

log = logging.getLogger("watsonx-stream")

GENERATION_STREAM_PATH = "/ml/v1/text/generation_stream"
GENERATION_PATH = "/ml/v1/text/generation"
CHAT_STREAM_PATH = "/ml/v1/text/chat_stream"

# min_new_tokens: the raw stream accepts a one-token answer, the cleaned paths ask for more
RAW_MIN_NEW_TOKENS = 1
CLEAN_MIN_NEW_TOKENS = 5

FragmentCallback = Callable[[str], Any]


def clean_completion(text: str) -> str:
    """Reduce a raw completion to a single answer line.

    Drops a leading ``Answer:`` label, cuts at the first ``Query:`` (the
    model starting a new turn on its own) and keeps only the first line.
    """
    text = text.strip()
    if text.startswith("Answer:"):
        text = text[len("Answer:"):].strip()
    idx = text.find("Query:")
    if idx >= 0:
        text = text[:idx].strip()
    return text.split("\n", 1)[0].strip()


def _empty_response(acc: StreamAccumulator) -> ApiError:
    message = "Empty response from WatsonX API"
    if acc.parse_errors:
        message += f" ({acc.parse_errors} of {acc.lines} line(s) could not be parsed)"
    return ApiError(message)


class WatsonxClient(BaseClient):
    """Async client for the text generation endpoints.

    Usage::

        async with WatsonxClient(WatsonxConfig.from_env(), access_token=token) as client:
            result = await client.generate_with_config(prompt, GenerationConfig(), print)

    The bearer token is obtained elsewhere and handed in with
    ``access_token=`` or ``set_token()``.
    """

    def __init__(
        self,
        config: WatsonxConfig,
        *,
        access_token: str | None = None,
        session: aiohttp.ClientSession | None = None,
    ):
        config.validate_fields()
        super().__init__(access_token=access_token, session=session)
        self.config = config
        self._model_id = GenerationConfig().model_id

    @property
    def model_id(self) -> str:
        return self._model_id

    def current_model(self) -> str:
        return self._model_id

    def with_model(self, model_id: str) -> WatsonxClient:
        """Set the model used by ``generate()``."""
        self._model_id = model_id
        return self

    def _body(self, prompt: str, config: GenerationConfig, min_new_tokens: int) -> dict:
        return {
            "input": prompt,
            "parameters": config.parameters(min_new_tokens=min_new_tokens),
            "model_id": config.model_id,
            "project_id": self.config.project_id,
        }

    def _require_token(self) -> str:
        return require_token(self._access_token, "Call set_token() with a bearer token first.")

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def _stream(
        self,
        path: str,
        body: dict,
        token: str,
        on_fragment: FragmentCallback | None,
        what: str,
    ) -> StreamAccumulator:
        async with open_stream(
            self.session,
            self.config.endpoint(path),
            headers=auth_headers(token),
            payload=body,
            what=what,
        ) as resp:
            return await decode_stream(resp.content.iter_any(), on_fragment)

    async def generate(self, prompt: str) -> GenerationResult:
        """Cleaned streaming generation with the default config and current model."""
        return await self.generate_with_config(prompt, GenerationConfig(model_id=self._model_id))

    async def generate_with_config(
        self,
        prompt: str,
        config: GenerationConfig,
        on_fragment: FragmentCallback | None = None,
    ) -> GenerationResult:
        """Stream a completion and return its cleaned first answer line.

        ``on_fragment`` sees every raw fragment as it arrives; the cleanup
        only applies to the returned text.
        """
        token = self._require_token()
        request_id = str(uuid.uuid4())
        body = self._body(prompt, config, CLEAN_MIN_NEW_TOKENS)
        t0 = time.monotonic()
        log.info(f"[{request_id[:8]}] generation stream start model={config.model_id}")

        acc = await self._with_timeout(
            self._stream(GENERATION_STREAM_PATH, body, token, on_fragment, "WatsonX generation stream"),
            config.timeout,
            "WatsonX generation stream",
        )
        if not acc.text.strip():
            raise _empty_response(acc)
        text = clean_completion(acc.text)
        log.info(
            f"[{request_id[:8]}] generation stream done in {time.monotonic() - t0:.2f}s "
            f"({acc.fragments} fragments, {len(text)} chars)"
        )
        return GenerationResult(
            text=text,
            model_id=config.model_id,
            quality_score=assess_quality(text, prompt),
            request_id=request_id,
        )

    async def generate_text_stream(
        self,
        prompt: str,
        config: GenerationConfig,
        on_fragment: FragmentCallback | None = None,
    ) -> GenerationResult:
        """Stream a completion and return the raw cumulative text unchanged."""
        token = self._require_token()
        request_id = str(uuid.uuid4())
        body = self._body(prompt, config, RAW_MIN_NEW_TOKENS)
        log.info(f"[{request_id[:8]}] raw generation stream start model={config.model_id}")

        acc = await self._with_timeout(
            self._stream(GENERATION_STREAM_PATH, body, token, on_fragment, "WatsonX generation stream"),
            config.timeout,
            "WatsonX generation stream",
        )
        if not acc.text.strip():
            raise _empty_response(acc)
        log.info(f"[{request_id[:8]}] raw generation stream done ({acc.fragments} fragments)")
        return GenerationResult(text=acc.text, model_id=config.model_id, request_id=request_id)

    async def chat_stream(
        self,
        messages: Iterable[ChatMessage | dict],
        config: GenerationConfig,
        on_fragment: FragmentCallback | None = None,
    ) -> ChatCompletionResult:
        """Stream a chat completion over the chat endpoint."""
        token = self._require_token()
        request_id = str(uuid.uuid4())
        body = {
            "model_id": config.model_id,
            "project_id": self.config.project_id,
            "messages": [m.model_dump() if isinstance(m, ChatMessage) else dict(m) for m in messages],
            "max_tokens": config.max_tokens,
            "top_p": config.top_p if config.top_p is not None else 1.0,
        }
        if config.temperature is not None:
            body["temperature"] = config.temperature
        log.info(f"[{request_id[:8]}] chat stream start model={config.model_id} messages={len(body['messages'])}")

        acc = await self._with_timeout(
            self._stream(CHAT_STREAM_PATH, body, token, on_fragment, "WatsonX chat stream"),
            config.timeout,
            "WatsonX chat stream",
        )
        if not acc.text.strip():
            raise _empty_response(acc)
        return ChatCompletionResult(
            text=acc.text,
            model_id=config.model_id,
            thread_id=acc.thread_id,
            request_id=request_id,
        )

    # ------------------------------------------------------------------
    # Non-streaming
    # ------------------------------------------------------------------

    async def generate_text(self, prompt: str, config: GenerationConfig) -> GenerationResult:
        """One non-streaming generation call; the batch dispatcher's primitive."""
        token = self._require_token()
        request_id = str(uuid.uuid4())
        body = self._body(prompt, config, CLEAN_MIN_NEW_TOKENS)
        data = await self._with_timeout(
            request_json(
                self.session,
                "POST",
                self.config.endpoint(GENERATION_PATH),
                headers=auth_headers(token),
                payload=body,
                what="WatsonX generation",
            ),
            config.timeout,
            "WatsonX generation",
        )

        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            raise SerializationError("Generation response has no 'results' list")
        if not results:
            raise ApiError("No generation results returned")
        first = results[0]
        text = first.get("generated_text") if isinstance(first, dict) else None
        if not isinstance(text, str):
            raise SerializationError("Generation result has no 'generated_text' string")

        return GenerationResult(
            text=text.strip(),
            model_id=config.model_id,
            tokens_used=first.get("generated_token_count"),
            input_tokens=first.get("input_token_count"),
            quality_score=assess_quality(text.strip(), prompt),
            request_id=request_id,
        )

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    async def generate_batch(
        self,
        requests: Iterable[BatchRequest],
        default_config: GenerationConfig,
        *,
        concurrency: int | None = None,
    ) -> BatchGenerationResult:
        """Run independent requests concurrently; one failure never sinks the rest."""
        self._require_token()
        return await run_batch(self.generate_text, requests, default_config, concurrency=concurrency)

    async def generate_batch_simple(
        self,
        prompts: Iterable[str],
        config: GenerationConfig,
        *,
        concurrency: int | None = None,
    ) -> BatchGenerationResult:
        return await self.generate_batch(
            [BatchRequest(prompt=p) for p in prompts], config, concurrency=concurrency
        )
