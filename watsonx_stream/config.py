"""Client configuration for the generation and agent services.

Both configs are pydantic settings: keyword arguments win, then the
process environment, then a ``.env`` file in the working directory.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field, ValidationError, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from watsonx_stream.errors import ConfigurationError
from watsonx_stream.models import (
    DEFAULT_API_URL,
    DEFAULT_API_VERSION,
    DEFAULT_IAM_URL,
    DEFAULT_ORCHESTRATE_REGION,
    DEFAULT_ORCHESTRATE_URL,
    DEFAULT_TIMEOUT_SECS,
)

_SETTINGS = SettingsConfigDict(
    env_file=".env",
    env_file_encoding="utf-8",
    case_sensitive=True,
    extra="ignore",
    frozen=True,
    populate_by_name=True,
)

# Required settings and the environment variables that may carry them, in priority order
_REQUIRED_ENV = {
    "api_key": ("WATSONX_API_KEY", "API_KEY"),
    "project_id": ("WATSONX_PROJECT_ID", "PROJECT_ID"),
    "instance_id": ("WXO_INSTANCE_ID",),
}


def _env(field_name: str, *names: str) -> AliasChoices:
    # The field name comes first so keyword construction beats the environment
    return AliasChoices(field_name, *names)


def _missing_field(exc: ValidationError) -> str | None:
    for err in exc.errors():
        if err["type"] != "missing" or not err["loc"]:
            continue
        loc = err["loc"][0]
        for field_name, names in _REQUIRED_ENV.items():
            if loc == field_name or loc in names:
                return field_name
    return None


class WatsonxConfig(BaseSettings):
    """Connection settings for the text generation service."""

    model_config = _SETTINGS

    api_key: str = Field(
        description="Cloud API key, exchanged for a bearer token outside this SDK",
        validation_alias=_env("api_key", *_REQUIRED_ENV["api_key"]),
    )
    project_id: str = Field(
        description="Project the generation calls are billed to",
        validation_alias=_env("project_id", *_REQUIRED_ENV["project_id"]),
    )
    iam_url: str = Field(default=DEFAULT_IAM_URL, validation_alias=_env("iam_url", "IAM_IBM_CLOUD_URL"))
    api_url: str = Field(default=DEFAULT_API_URL, validation_alias=_env("api_url", "WATSONX_API_URL"))
    api_version: str = Field(default=DEFAULT_API_VERSION, validation_alias=_env("api_version", "WATSONX_API_VERSION"))
    timeout_secs: int = Field(
        default=DEFAULT_TIMEOUT_SECS,
        gt=0,
        validation_alias=_env("timeout_secs", "WATSONX_TIMEOUT_SECS"),
    )

    @field_validator("timeout_secs", mode="before")
    @classmethod
    def _timeout_or_default(cls, value: Any) -> Any:
        """A non-numeric or non-positive timeout means the default one."""
        try:
            secs = int(value)
        except (TypeError, ValueError):
            return DEFAULT_TIMEOUT_SECS
        return secs if secs > 0 else DEFAULT_TIMEOUT_SECS

    @classmethod
    def from_env(cls) -> WatsonxConfig:
        """Build a config from ``WATSONX_*`` environment variables.

        ``WATSONX_API_KEY`` (or ``API_KEY``) and ``WATSONX_PROJECT_ID`` (or
        ``PROJECT_ID``) are required. An unparseable ``WATSONX_TIMEOUT_SECS``
        falls back to the default timeout.
        """
        try:
            cfg = cls()
        except ValidationError as exc:
            missing = _missing_field(exc)
            if missing is not None:
                names = " or ".join(_REQUIRED_ENV[missing])
                raise ConfigurationError(f"{names} environment variable not found") from exc
            raise ConfigurationError(f"Invalid WatsonX configuration: {exc}") from exc

        for field_name in ("api_key", "project_id"):
            if not getattr(cfg, field_name).strip():
                names = " or ".join(_REQUIRED_ENV[field_name])
                raise ConfigurationError(f"{names} is set but empty")
        return cfg

    def validate_fields(self) -> None:
        """Raise ConfigurationError if a required field is blank."""
        for name, label in (
            ("api_key", "API key"),
            ("project_id", "Project ID"),
            ("iam_url", "IAM URL"),
            ("api_url", "API URL"),
        ):
            if not getattr(self, name).strip():
                raise ConfigurationError(f"{label} cannot be empty")

    def endpoint(self, path: str) -> str:
        """Versioned URL for an API path such as ``/ml/v1/text/generation``."""
        return f"{self.api_url.rstrip('/')}{path}?version={self.api_version}"


class OrchestrateConfig(BaseSettings):
    """Connection settings for the agent orchestration service."""

    model_config = _SETTINGS

    instance_id: str = Field(validation_alias=_env("instance_id", *_REQUIRED_ENV["instance_id"]))
    region: str = Field(default=DEFAULT_ORCHESTRATE_REGION, validation_alias=_env("region", "WXO_REGION"))
    # Unset means the public endpoint of ``region``
    base_url: str = Field(default=None, validate_default=True, validation_alias=_env("base_url", "WXO_URL"))

    @field_validator("base_url", mode="before")
    @classmethod
    def _regional_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value:
            return value
        return DEFAULT_ORCHESTRATE_URL.format(region=info.data.get("region", DEFAULT_ORCHESTRATE_REGION))

    @classmethod
    def from_env(cls) -> OrchestrateConfig:
        """Read ``WXO_INSTANCE_ID`` (required), ``WXO_REGION`` and ``WXO_URL``."""
        try:
            cfg = cls()
        except ValidationError as exc:
            if _missing_field(exc) == "instance_id":
                raise ConfigurationError("WXO_INSTANCE_ID must be set in environment variables") from exc
            raise ConfigurationError(f"Invalid orchestration configuration: {exc}") from exc
        if not cfg.instance_id.strip():
            raise ConfigurationError("WXO_INSTANCE_ID must be set in environment variables")
        return cfg

    def get_base_url(self) -> str:
        """Base URL with any ``{}`` placeholder replaced by the instance id."""
        return self.base_url.replace("{}", self.instance_id)

    def endpoint(self, path: str) -> str:
        return self.get_base_url().rstrip("/") + "/" + path.lstrip("/")
