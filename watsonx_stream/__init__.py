"""watsonx-stream: streaming and batch client for watsonx.ai text generation
and watsonx Orchestrate agents.

The core is an incremental SSE decoder that turns arbitrarily chunked
response bodies into text fragments delivered as they arrive, plus a
concurrent batch dispatcher that isolates per-item failures.
"""

from __future__ import annotations

__version__ = "0.1.0"
__all__ = [
    "__version__",
    "WatsonxClient",
    "OrchestrateClient",
    "WatsonxConfig",
    "OrchestrateConfig",
    "GenerationConfig",
    "GenerationResult",
    "ChatMessage",
    "ChatCompletionResult",
    "BatchRequest",
    "BatchItemResult",
    "BatchGenerationResult",
    "Models",
    "LineReassembler",
    "decode_stream",
    "parse_sse_line",
    "clean_completion",
    "assess_quality",
    "ResultWriter",
    "WatsonxError",
    "NetworkError",
    "AuthenticationError",
    "ApiError",
    "RequestTimeoutError",
    "SerializationError",
    "ConfigurationError",
]

from watsonx_stream.client import WatsonxClient, clean_completion
from watsonx_stream.config import OrchestrateConfig, WatsonxConfig
from watsonx_stream.errors import (
    ApiError,
    AuthenticationError,
    ConfigurationError,
    NetworkError,
    RequestTimeoutError,
    SerializationError,
    WatsonxError,
)
from watsonx_stream.models import Models
from watsonx_stream.orchestrate import OrchestrateClient
from watsonx_stream.quality import assess_quality
from watsonx_stream.sse import LineReassembler, decode_stream, parse_sse_line
from watsonx_stream.types import (
    BatchGenerationResult,
    BatchItemResult,
    BatchRequest,
    ChatCompletionResult,
    ChatMessage,
    GenerationConfig,
    GenerationResult,
)
from watsonx_stream.writer import ResultWriter
