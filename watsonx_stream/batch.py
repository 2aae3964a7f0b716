"""Concurrent fan-out of independent generation requests."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from contextlib import nullcontext

from watsonx_stream.errors import NetworkError, WatsonxError
from watsonx_stream.types import (
    BatchGenerationResult,
    BatchItemResult,
    BatchRequest,
    GenerationConfig,
    GenerationResult,
)

log = logging.getLogger("watsonx-stream")

Generate = Callable[[str, GenerationConfig], Awaitable[GenerationResult]]


async def run_batch(
    generate: Generate,
    requests: Iterable[BatchRequest],
    default_config: GenerationConfig,
    *,
    concurrency: int | None = None,
) -> BatchGenerationResult:
    """Run every request concurrently and collect one item per request.

    A failing item never affects its siblings: errors become failure items
    carrying the original prompt and id. Results come back in input order
    whatever the completion order was. ``concurrency`` caps how many
    requests are in flight at once.
    """
    requests = list(requests)
    if concurrency is not None and concurrency < 1:
        raise ValueError("concurrency must be at least 1")
    limiter = asyncio.Semaphore(concurrency) if concurrency else None

    async def run_one(index: int, req: BatchRequest) -> BatchItemResult:
        config = req.config or default_config
        label = req.id or f"#{index}"
        try:
            async with limiter or nullcontext():
                result = await generate(req.prompt, config)
        except WatsonxError as exc:
            log.warning(f"[batch {label}] failed: {exc}")
            return BatchItemResult(prompt=req.prompt, id=req.id, error=exc)
        log.debug(f"[batch {label}] ok ({len(result.text)} chars)")
        return BatchItemResult(prompt=req.prompt, id=req.id, result=result)

    t0 = time.monotonic()
    log.info(f"Dispatching batch of {len(requests)} request(s) (concurrency={concurrency or 'unbounded'})")
    outcomes = await asyncio.gather(
        *(run_one(i, req) for i, req in enumerate(requests)),
        return_exceptions=True,
    )

    items: list[BatchItemResult] = []
    for req, outcome in zip(requests, outcomes):
        if isinstance(outcome, BatchItemResult):
            items.append(outcome)
            continue
        # The task itself died (unexpected exception or cancellation)
        log.error(f"[batch {req.id or '?'}] task failed: {outcome!r}")
        error = NetworkError(f"Batch task failed: {type(outcome).__name__}: {outcome}")
        items.append(BatchItemResult(prompt=req.prompt, id=req.id, error=error))

    batch = BatchGenerationResult.from_results(items, time.monotonic() - t0)
    log.info(
        f"Batch done in {batch.duration:.2f}s (total={batch.total} ok={batch.successful} failed={batch.failed})"
    )
    return batch
