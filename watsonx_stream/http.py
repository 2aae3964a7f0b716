"""HTTP plumbing shared by the clients – headers, status checks, streaming."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import aiohttp

from watsonx_stream.errors import (
    ApiError,
    AuthenticationError,
    NetworkError,
    RequestTimeoutError,
    SerializationError,
    WatsonxError,
)

log = logging.getLogger("watsonx-stream")

# ---------------------------------------------------------------------------
# Header helpers
# ---------------------------------------------------------------------------

SENSITIVE = frozenset({"authorization", "x-api-key", "iam-api_key"})

SSE_HEADERS = {
    "Accept": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def redact_headers(headers: dict[str, str]) -> dict[str, str]:
    """Copy of ``headers`` safe to log: credential values are shortened."""
    out: dict[str, str] = {}
    for k, v in headers.items():
        if k.lower() in SENSITIVE:
            out[k] = v[:12] + "..." if len(v) > 12 else "***"
        else:
            out[k] = v
    return out


def require_token(token: str | None, hint: str = "Call set_token() first.") -> str:
    """Return the bearer token or fail before any network call."""
    if not token or not token.strip():
        raise AuthenticationError(f"Not authenticated. {hint}")
    return token


def auth_headers(token: str, extra: dict[str, str] | None = None) -> dict[str, str]:
    headers = {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json",
        "Accept": "application/json",
    }
    if extra:
        headers.update(extra)
    return headers


def transport_error(what: str, exc: BaseException) -> WatsonxError:
    """Map an aiohttp failure onto the error taxonomy."""
    # aiohttp's socket read timeout is both a ClientError and a TimeoutError
    if isinstance(exc, asyncio.TimeoutError):
        return RequestTimeoutError(f"{what}: socket read timed out")
    return NetworkError(f"{what}: {exc}")


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


async def _raise_for_status(resp: aiohttp.ClientResponse, what: str) -> None:
    if 200 <= resp.status < 300:
        return
    try:
        body = await resp.text(errors="replace")
    except aiohttp.ClientError:
        body = "Unknown error"
    log.error(f"{what} failed with status {resp.status}")
    raise ApiError(f"{what} failed with status {resp.status}", status=resp.status, body=body)


async def request_json(
    session: aiohttp.ClientSession,
    method: str,
    url: str,
    *,
    headers: dict[str, str],
    payload: Any = None,
    what: str = "Request",
) -> Any:
    """Issue a non-streaming request and return the decoded JSON body."""
    t0 = time.monotonic()
    log.debug(f"→ {method} {url} headers={redact_headers(headers)}")
    try:
        async with session.request(method, url, headers=headers, json=payload) as resp:
            await _raise_for_status(resp, what)
            raw = await resp.read()
    except aiohttp.ClientError as exc:
        log.error(f"{what}: upstream error while requesting {url}: {exc}")
        raise transport_error(what, exc) from exc

    duration_ms = int((time.monotonic() - t0) * 1000)
    log.info(f"← {resp.status} {url} ({duration_ms}ms, {len(raw)} bytes)")
    try:
        return json.loads(raw) if raw else None
    except (json.JSONDecodeError, ValueError) as exc:
        raise SerializationError(f"{what}: response is not valid JSON: {exc}") from exc


@asynccontextmanager
async def open_stream(
    session: aiohttp.ClientSession,
    url: str,
    *,
    headers: dict[str, str],
    payload: Any,
    what: str = "Streaming request",
) -> AsyncIterator[aiohttp.ClientResponse]:
    """POST ``payload`` and yield the response once its status is known good.

    Error bodies are read in full once; a good body is left for the caller
    to consume chunk by chunk via ``resp.content.iter_any()``.
    """
    log.debug(f"→ POST {url} (stream) headers={redact_headers(headers)}")
    try:
        resp = await session.post(url, headers=headers, json=payload)
    except aiohttp.ClientError as exc:
        log.error(f"{what}: upstream error while requesting {url}: {exc}")
        raise transport_error(what, exc) from exc
    try:
        await _raise_for_status(resp, what)
        yield resp
    except BaseException:
        # Abandoned mid-body (error, timeout, cancellation): drop the connection
        resp.close()
        raise
    else:
        resp.release()


# ---------------------------------------------------------------------------
# Client base
# ---------------------------------------------------------------------------


class BaseClient:
    """Bearer token and pooled session handling shared by the API clients.

    The session is created lazily inside the running loop unless one is
    injected; an injected session is shared, never closed by the client.
    """

    def __init__(self, *, access_token: str | None = None, session: aiohttp.ClientSession | None = None):
        self._access_token = access_token
        self._session = session
        self._owns_session = session is None

    @property
    def access_token(self) -> str | None:
        return self._access_token

    @property
    def is_authenticated(self) -> bool:
        return bool(self._access_token and self._access_token.strip())

    def set_token(self, token: str) -> None:
        self._access_token = token

    def with_token(self, token: str):
        self.set_token(token)
        return self

    def _session_timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(total=None, sock_connect=30)

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._session_timeout())
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _with_timeout(self, coro, timeout: float, what: str):
        """Run ``coro`` under a whole-call deadline, abandoning it on expiry."""
        try:
            return await asyncio.wait_for(coro, timeout)
        except asyncio.TimeoutError as exc:
            log.error(f"{what} timed out after {timeout:g}s")
            raise RequestTimeoutError(f"{what} timed out after {timeout:g}s") from exc
