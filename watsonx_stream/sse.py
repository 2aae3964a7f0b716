"""Incremental SSE decoding – bytes to lines, lines to text fragments."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterable, AsyncIterator, Callable
from dataclasses import dataclass, field
from typing import Any

import aiohttp

from watsonx_stream.http import transport_error

log = logging.getLogger("watsonx-stream")

DONE_SENTINEL = "[DONE]"

IGNORED = "ignored"
DONE = "done"
PAYLOAD = "payload"
INVALID = "invalid"


# ---------------------------------------------------------------------------
# Line reassembly
# ---------------------------------------------------------------------------


class LineReassembler:
    """Turn arbitrarily split byte chunks into complete text lines.

    Bytes are buffered until a newline arrives; each line is decoded on its
    own with lossy UTF-8, so a chunk boundary inside a multi-byte character
    never produces a decode error or a different result.
    """

    def __init__(self):
        self._buf = bytearray()
        # Bytes before this offset are known to contain no newline
        self._scan = 0

    def feed(self, chunk: bytes) -> list[str]:
        """Append a chunk and return every line it completed, in order."""
        if not chunk:
            return []
        self._buf += chunk
        lines: list[str] = []
        start = 0
        while True:
            nl = self._buf.find(b"\n", max(start, self._scan))
            if nl < 0:
                break
            lines.append(self._buf[start:nl].decode("utf-8", errors="replace"))
            start = nl + 1
        if start:
            del self._buf[:start]
        self._scan = len(self._buf)
        return lines

    def flush(self) -> str | None:
        """Return the unterminated tail at end of stream, if any."""
        if not self._buf:
            return None
        line = self._buf.decode("utf-8", errors="replace")
        self._buf.clear()
        self._scan = 0
        return line

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet emitted as a line."""
        return len(self._buf)


async def iter_lines(chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """Yield the complete lines of a chunked byte stream, tail line last."""
    reassembler = LineReassembler()
    async for chunk in chunks:
        for line in reassembler.feed(chunk):
            yield line
    if reassembler.pending:
        log.debug(f"Stream ended mid-line, flushing {reassembler.pending} buffered byte(s)")
    tail = reassembler.flush()
    if tail is not None:
        yield tail


# ---------------------------------------------------------------------------
# Event extraction
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SSEEvent:
    """Classification of a single SSE line."""

    kind: str
    fragment: str | None = None
    thread_id: str | None = None
    payload: Any = None
    error: str | None = None
    message_text: str | None = None


_IGNORED = SSEEvent(IGNORED)
_DONE = SSEEvent(DONE)


def _first(items: Any) -> Any:
    if isinstance(items, list) and items:
        return items[0]
    return None


def _get(obj: Any, key: str) -> Any:
    return obj.get(key) if isinstance(obj, dict) else None


def extract_text(payload: Any) -> str | None:
    """Pull the generated text out of any known streaming payload shape.

    Checked in order: plain generation ``results[0].generated_text``, chat
    delta ``choices[0].delta.content``, chat message
    ``choices[0].message.content``, agent events ``data.delta.content[0].text``
    then ``data.content[0].text``. Anything else (heartbeats, usage events)
    carries no text.
    """
    if not isinstance(payload, dict):
        return None

    text = _get(_first(payload.get("results")), "generated_text")
    if isinstance(text, str):
        return text

    choice = _first(payload.get("choices"))
    text = _get(_get(choice, "delta"), "content")
    if isinstance(text, str):
        return text
    text = _get(_get(choice, "message"), "content")
    if isinstance(text, str):
        return text

    data = payload.get("data")
    text = _get(_first(_get(_get(data, "delta"), "content")), "text")
    if isinstance(text, str):
        return text
    text = _get(_first(_get(data, "content")), "text")
    if isinstance(text, str):
        return text

    return None


def extract_thread_id(payload: Any) -> str | None:
    """Thread id carried by an event, at the top level or inside ``data``."""
    tid = _get(payload, "thread_id")
    if isinstance(tid, str) and tid:
        return tid
    tid = _get(_get(payload, "data"), "thread_id")
    if isinstance(tid, str) and tid:
        return tid
    return None


def extract_message_text(payload: Any) -> str | None:
    """Complete answer of an agent ``message.created`` event (``data.message.content[0].text``)."""
    text = _get(_first(_get(_get(_get(payload, "data"), "message"), "content")), "text")
    return text if isinstance(text, str) else None


def _payload_event(raw: str) -> SSEEvent:
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, ValueError) as exc:
        return SSEEvent(INVALID, payload=raw, error=str(exc))
    return SSEEvent(
        PAYLOAD,
        fragment=extract_text(payload),
        thread_id=extract_thread_id(payload),
        payload=payload,
        message_text=extract_message_text(payload),
    )


def parse_sse_line(line: str, *, bare_json: bool = False) -> SSEEvent:
    """Classify one line of an event stream.

    ``id:``/``event:`` metadata, comments and blank lines are ignored; the
    payload shape is self-describing so event names are not needed. With
    ``bare_json`` a line that is itself a JSON object is treated like a
    ``data:`` line (the agent run endpoint emits newline-delimited JSON).
    """
    trimmed = line.strip()
    if not trimmed or trimmed.startswith("id:") or trimmed.startswith("event:"):
        return _IGNORED

    if trimmed.startswith("data:"):
        # Exactly one optional space after the field name belongs to the framing
        data = trimmed[6:] if trimmed.startswith("data: ") else trimmed[5:]
        data = data.strip()
        if not data or data == DONE_SENTINEL:
            return _DONE
        return _payload_event(data)

    if bare_json and trimmed.startswith("{"):
        return _payload_event(trimmed)

    return _IGNORED


# ---------------------------------------------------------------------------
# Stream accumulation
# ---------------------------------------------------------------------------


@dataclass
class StreamAccumulator:
    """Cumulative state of one streaming call. Text is append-only."""

    thread_id: str | None = None
    lines: int = 0
    parse_errors: int = 0
    saw_done: bool = False
    # Last full message an agent announced; used when no deltas arrived
    final_text: str | None = None
    _parts: list[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(self._parts)

    @property
    def fragments(self) -> int:
        return len(self._parts)

    def add(self, event: SSEEvent, on_fragment: Callable[[str], Any] | None = None) -> None:
        self.lines += 1
        if event.kind == INVALID:
            self.parse_errors += 1
            log.warning(f"Skipping unparseable SSE data line ({event.error}): {str(event.payload)[:120]!r}")
            return
        if event.kind == DONE:
            self.saw_done = True
            return
        if event.thread_id:
            self.thread_id = event.thread_id
        if event.message_text is not None:
            self.final_text = event.message_text
        if event.fragment is not None:
            self._parts.append(event.fragment)
            if on_fragment is not None:
                on_fragment(event.fragment)


async def decode_stream(
    chunks: AsyncIterable[bytes],
    on_fragment: Callable[[str], Any] | None = None,
    *,
    thread_id: str | None = None,
    bare_json: bool = False,
) -> StreamAccumulator:
    """Drive a chunked SSE body through reassembly and extraction.

    ``on_fragment`` is called synchronously for every text fragment, in
    arrival order, before the next line is looked at. Transport failures
    while reading surface as NetworkError; bad lines are only counted.
    """
    acc = StreamAccumulator(thread_id=thread_id)
    try:
        async for line in iter_lines(chunks):
            acc.add(parse_sse_line(line, bare_json=bare_json), on_fragment)
    except aiohttp.ClientError as exc:
        raise transport_error(f"SSE stream broke after {acc.fragments} fragment(s)", exc) from exc
    return acc
