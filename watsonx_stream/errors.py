"""Error taxonomy shared by the generation, agent and batch clients."""

from __future__ import annotations

# Longest slice of an upstream error body kept in exception messages
MAX_BODY_CHARS = 500


class WatsonxError(Exception):
    """Base class for every error raised by watsonx-stream."""

    kind = "error"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def is_retryable(self) -> bool:
        """Whether calling again unchanged may succeed."""
        return self.retryable

    def __str__(self) -> str:
        return f"{self.kind} error: {self.message}"


class NetworkError(WatsonxError):
    """Transport-level failure: connect, read, or a broken stream."""

    kind = "network"
    retryable = True


class AuthenticationError(WatsonxError):
    """Missing or rejected credential. The caller has to act."""

    kind = "authentication"


class ApiError(WatsonxError):
    """Non-2xx status, or an empty answer after a successful status."""

    kind = "api"

    def __init__(self, message: str, *, status: int | None = None, body: str | None = None):
        if body:
            shown = body if len(body) <= MAX_BODY_CHARS else body[:MAX_BODY_CHARS] + "..."
            message = f"{message}: {shown}"
        super().__init__(message)
        self.status = status
        self.body = body


class RequestTimeoutError(WatsonxError):
    """The call ran past its deadline and was abandoned."""

    kind = "timeout"
    retryable = True


class SerializationError(WatsonxError):
    """A response body did not match any expected JSON shape."""

    kind = "serialization"


class ConfigurationError(WatsonxError):
    """Invalid or incomplete client configuration."""

    kind = "configuration"
