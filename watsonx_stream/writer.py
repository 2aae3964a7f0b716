"""ResultWriter – JSONL output of batch results with running statistics."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

from watsonx_stream.types import BatchGenerationResult, BatchItemResult


def item_record(index: int, item: BatchItemResult) -> dict:
    """Flatten one batch item into a JSON-serializable record."""
    record: dict = {"index": index, "id": item.id, "prompt": item.prompt, "ok": item.ok}
    if item.result is not None:
        record.update(
            text=item.result.text,
            model_id=item.result.model_id,
            tokens_used=item.result.tokens_used,
            input_tokens=item.result.input_tokens,
            request_id=item.result.request_id,
        )
    else:
        record.update(
            error_kind=item.error.kind,
            error=item.error.message,
            retryable=item.error.is_retryable(),
        )
    return record


class ResultWriter:
    """Appends result records to a JSONL file and keeps totals."""

    def __init__(self, path: Path):
        self.path = path
        self._lock = asyncio.Lock()
        self.count = 0
        self.succeeded = 0
        self.failed = 0
        self.tokens_used = 0
        self.models_used: dict[str, int] = {}
        path.parent.mkdir(parents=True, exist_ok=True)
        # Held open so each record is flushed as soon as it is written
        self._file = open(path, "a", encoding="utf-8")

    async def write(self, record: dict) -> None:
        async with self._lock:
            self._file.write(json.dumps(record, ensure_ascii=False, separators=(",", ":")) + "\n")
            self._file.flush()
            self.count += 1
            self._update_stats(record)

    async def write_batch(self, batch: BatchGenerationResult) -> None:
        """Write every item of a batch in submission order."""
        for index, item in enumerate(batch.results):
            await self.write(item_record(index, item))

    def close(self) -> None:
        if self._file and not self._file.closed:
            self._file.flush()
            self._file.close()

    def _update_stats(self, record: dict) -> None:
        if not record.get("ok"):
            self.failed += 1
            return
        self.succeeded += 1
        model = record.get("model_id") or "unknown"
        self.models_used[model] = self.models_used.get(model, 0) + 1
        self.tokens_used += record.get("tokens_used") or 0

    def get_summary(self) -> dict:
        return {
            "items": self.count,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "tokens_used": self.tokens_used,
            "models_used": self.models_used,
        }
