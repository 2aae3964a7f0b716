"""CLI entry points for watsonx-stream."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from watsonx_stream import __version__
from watsonx_stream.client import WatsonxClient
from watsonx_stream.config import OrchestrateConfig, WatsonxConfig
from watsonx_stream.errors import WatsonxError
from watsonx_stream.orchestrate import OrchestrateClient
from watsonx_stream.types import BatchRequest, GenerationConfig
from watsonx_stream.writer import ResultWriter

# Fragments must reach the terminal as they arrive, even when stdout is a pipe
if hasattr(sys.stdout, "reconfigure"):
    sys.stdout.reconfigure(line_buffering=True)

log = logging.getLogger("watsonx-stream")


def setup_logging(log_file: str | None, verbose: bool = False) -> None:
    """Send library logs to stderr, or to ``log_file`` when given."""
    if log_file:
        handler: logging.Handler = logging.FileHandler(log_file, encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s %(message)s", datefmt="%H:%M:%S"))
    log.addHandler(handler)
    log.setLevel(logging.DEBUG if verbose else logging.INFO)
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


def _token(args: argparse.Namespace, *env_names: str) -> str | None:
    if args.token:
        return args.token
    for name in env_names:
        value = os.environ.get(name)
        if value:
            return value
    return None


def read_prompts(path: Path) -> list[BatchRequest]:
    """One prompt per line; blank lines and ``#`` comments are skipped."""
    requests = []
    for lineno, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        prompt = line.strip()
        if not prompt or prompt.startswith("#"):
            continue
        requests.append(BatchRequest(prompt=prompt, id=f"line-{lineno}"))
    return requests


def _print_fragment(fragment: str) -> None:
    sys.stdout.write(fragment)
    sys.stdout.flush()


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


async def cmd_generate(args: argparse.Namespace) -> int:
    config = GenerationConfig(model_id=args.model, timeout=args.timeout).with_max_tokens(args.max_tokens)
    token = _token(args, "WATSONX_ACCESS_TOKEN")
    async with WatsonxClient(WatsonxConfig.from_env(), access_token=token) as client:
        if args.raw:
            await client.generate_text_stream(args.prompt, config, _print_fragment)
            print()
        else:
            result = await client.generate_with_config(args.prompt, config, _print_fragment)
            print(f"\n\nAnswer: {result.text}")
    return 0


async def cmd_chat(args: argparse.Namespace) -> int:
    token = _token(args, "WXO_ACCESS_TOKEN", "WATSONX_ACCESS_TOKEN")
    async with OrchestrateClient(OrchestrateConfig.from_env(), access_token=token, timeout=args.timeout) as client:
        result = await client.stream_message(args.agent_id, args.message, args.thread_id, _print_fragment)
    print()
    if result.thread_id:
        print(f"🧵 Thread: {result.thread_id}")
    return 0


async def cmd_batch(args: argparse.Namespace) -> int:
    requests = read_prompts(Path(args.file))
    if not requests:
        print(f"No prompts found in {args.file}", file=sys.stderr)
        return 1

    config = GenerationConfig(model_id=args.model, timeout=args.timeout).with_max_tokens(args.max_tokens)
    token = _token(args, "WATSONX_ACCESS_TOKEN")
    writer = ResultWriter(Path(args.output))
    try:
        async with WatsonxClient(WatsonxConfig.from_env(), access_token=token) as client:
            batch = await client.generate_batch(requests, config, concurrency=args.concurrency)
        await writer.write_batch(batch)
    finally:
        writer.close()

    stats = writer.get_summary()
    print("📊 Batch summary:")
    print(f"   Prompts:   {batch.total}")
    print(f"   Succeeded: {stats['succeeded']}")
    print(f"   Failed:    {stats['failed']}")
    print(f"   Duration:  {batch.duration:.2f}s")
    if stats["tokens_used"]:
        print(f"   Tokens:    {stats['tokens_used']:,}")
    print(f"   Results:   {writer.path}")
    for prompt, error in batch.failures():
        print(f"   ✗ {prompt[:60]!r}: {error}")
    return 0 if batch.all_succeeded() else 1


COMMANDS = {"generate": cmd_generate, "chat": cmd_chat, "batch": cmd_batch}


async def async_main(args: argparse.Namespace) -> int:
    try:
        return await COMMANDS[args.command](args)
    except WatsonxError as exc:
        print(f"\nError: {exc}", file=sys.stderr)
        return 1


def _add_generation_flags(p: argparse.ArgumentParser) -> None:
    defaults = GenerationConfig()
    p.add_argument("--model", default=defaults.model_id, help=f"Model id (default: {defaults.model_id})")
    p.add_argument(
        "--max-tokens", type=int, default=defaults.max_tokens, help=f"Max new tokens (default: {defaults.max_tokens})"
    )
    p.add_argument(
        "--timeout", type=float, default=defaults.timeout, help=f"Per-call timeout in seconds (default: {defaults.timeout:g})"
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="watsonx-stream",
        description="Stream text generation and agent replies from watsonx.ai and watsonx Orchestrate.",
    )
    parser.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--token", default=None, help="Bearer token (default: $WATSONX_ACCESS_TOKEN / $WXO_ACCESS_TOKEN)")
    parser.add_argument("--log-file", default=None, help="Write logs to this file instead of stderr")
    parser.add_argument("--debug", action="store_true", help="Log request details")
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="Stream a completion for one prompt")
    gen.add_argument("prompt")
    _add_generation_flags(gen)
    gen.add_argument("--raw", action="store_true", help="Print the raw stream without answer cleanup")

    chat = sub.add_parser("chat", help="Stream an agent reply")
    chat.add_argument("agent_id")
    chat.add_argument("message")
    chat.add_argument("--thread-id", default=None, help="Continue an existing conversation thread")
    chat.add_argument("--timeout", type=float, default=GenerationConfig().timeout, help="Timeout in seconds")

    batch = sub.add_parser("batch", help="Run every prompt of a file concurrently")
    batch.add_argument("file", help="Text file with one prompt per line")
    _add_generation_flags(batch)
    batch.add_argument("-o", "--output", default="results.jsonl", help="JSONL output file (default: results.jsonl)")
    batch.add_argument("--concurrency", type=int, default=None, help="Max requests in flight (default: unbounded)")

    args = parser.parse_args(argv)
    if getattr(args, "concurrency", None) is not None and args.concurrency < 1:
        parser.error("--concurrency must be at least 1")
    return args


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_file, args.debug)
    try:
        return asyncio.run(async_main(args))
    except KeyboardInterrupt:
        return 130


def main_entry() -> None:
    """Entry point for the watsonx-stream CLI."""
    sys.exit(main())
