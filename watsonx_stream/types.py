"""Request configuration and result value objects."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

from watsonx_stream.errors import WatsonxError
from watsonx_stream.models import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_MODEL,
    DEFAULT_TIMEOUT_SECS,
    MAX_TOKENS_LIMIT,
    QUICK_RESPONSE_MAX_TOKENS,
)


class GenerationConfig(BaseModel):
    """Per-request generation parameters.

    Instances are immutable; the ``with_*`` helpers return updated copies so
    one default config can be shared by many concurrent requests.
    """

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_id: str = DEFAULT_MODEL
    timeout: float = Field(default=float(DEFAULT_TIMEOUT_SECS), gt=0, description="Whole-call deadline in seconds")
    max_tokens: int = Field(default=DEFAULT_MAX_TOKENS, ge=1, le=MAX_TOKENS_LIMIT)
    top_k: int | None = 50
    top_p: float | None = 1.0
    stop_sequences: tuple[str, ...] = ()
    temperature: float | None = None
    repetition_penalty: float | None = 1.1

    @classmethod
    def long_form(cls) -> GenerationConfig:
        return cls(max_tokens=MAX_TOKENS_LIMIT, timeout=300.0)

    @classmethod
    def quick_response(cls) -> GenerationConfig:
        return cls(max_tokens=QUICK_RESPONSE_MAX_TOKENS, timeout=30.0)

    def with_model(self, model_id: str) -> GenerationConfig:
        return self.model_copy(update={"model_id": model_id})

    def with_max_tokens(self, max_tokens: int) -> GenerationConfig:
        """Set max tokens, clamped to the service limit."""
        return self.model_copy(update={"max_tokens": max(1, min(max_tokens, MAX_TOKENS_LIMIT))})

    def with_timeout(self, timeout: float) -> GenerationConfig:
        return self.model_copy(update={"timeout": float(timeout)})

    def with_temperature(self, temperature: float) -> GenerationConfig:
        return self.model_copy(update={"temperature": temperature})

    def with_top_k(self, top_k: int) -> GenerationConfig:
        return self.model_copy(update={"top_k": top_k})

    def with_top_p(self, top_p: float) -> GenerationConfig:
        return self.model_copy(update={"top_p": top_p})

    def with_stop_sequences(self, stop_sequences: list[str]) -> GenerationConfig:
        return self.model_copy(update={"stop_sequences": tuple(stop_sequences)})

    def with_repetition_penalty(self, penalty: float) -> GenerationConfig:
        return self.model_copy(update={"repetition_penalty": penalty})

    def parameters(self, *, min_new_tokens: int = 1) -> dict:
        """Decoding parameters in the shape the generation endpoints expect."""
        params: dict = {
            "decoding_method": "greedy",
            "max_new_tokens": self.max_tokens,
            "min_new_tokens": min_new_tokens,
            "top_k": self.top_k if self.top_k is not None else 50,
            "top_p": self.top_p if self.top_p is not None else 1.0,
            "repetition_penalty": self.repetition_penalty if self.repetition_penalty is not None else 1.1,
            "stop_sequences": list(self.stop_sequences),
        }
        if self.temperature is not None:
            params["temperature"] = self.temperature
        return params


class GenerationResult(BaseModel):
    """Final text of one generation call."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    text: str
    model_id: str
    tokens_used: int | None = None
    input_tokens: int | None = None
    quality_score: float | None = None
    request_id: str | None = None


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: str = "user"
    content: str


class ChatCompletionResult(BaseModel):
    """Final text of a chat or agent stream plus the conversation thread id."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    text: str
    model_id: str
    thread_id: str | None = None
    request_id: str | None = None


class BatchRequest(BaseModel):
    """One prompt of a batch. ``config`` overrides the batch default."""

    model_config = ConfigDict(frozen=True)

    prompt: str
    config: GenerationConfig | None = None
    id: str | None = None

    def with_id(self, request_id: str) -> BatchRequest:
        return self.model_copy(update={"id": request_id})

    def with_config(self, config: GenerationConfig) -> BatchRequest:
        return self.model_copy(update={"config": config})


class BatchItemResult(BaseModel):
    """Outcome of one batch item; exactly one of ``result``/``error`` is set."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    prompt: str
    id: str | None = None
    result: GenerationResult | None = None
    error: WatsonxError | None = None

    @model_validator(mode="after")
    def _one_outcome(self) -> BatchItemResult:
        if (self.result is None) == (self.error is None):
            raise ValueError("exactly one of result or error must be set")
        return self

    @property
    def ok(self) -> bool:
        return self.error is None


class BatchGenerationResult(BaseModel):
    """All items of a batch, positionally aligned with the submitted requests."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    results: tuple[BatchItemResult, ...]
    total: int
    successful: int
    failed: int
    duration: float = Field(ge=0, description="Wall-clock seconds from dispatch to last result")

    @model_validator(mode="after")
    def _counts_match(self) -> BatchGenerationResult:
        ok = sum(1 for item in self.results if item.ok)
        if self.total != len(self.results) or self.successful != ok or self.failed != self.total - ok:
            raise ValueError("batch counters do not match the result list")
        return self

    @classmethod
    def from_results(cls, results: list[BatchItemResult], duration: float) -> BatchGenerationResult:
        successful = sum(1 for item in results if item.ok)
        return cls(
            results=tuple(results),
            total=len(results),
            successful=successful,
            failed=len(results) - successful,
            duration=duration,
        )

    def successes(self) -> list[GenerationResult]:
        return [item.result for item in self.results if item.result is not None]

    def failures(self) -> list[tuple[str, WatsonxError]]:
        """``(prompt, error)`` pairs for every failed item."""
        return [(item.prompt, item.error) for item in self.results if item.error is not None]

    def any_failed(self) -> bool:
        return self.failed > 0

    def all_succeeded(self) -> bool:
        return self.failed == 0
