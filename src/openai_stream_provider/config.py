from __future__ import annotations

import os
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .contracts import ModelDescriptor
from .tiering import ModelType
from .variant import ProviderVariant, classify

DEFAULT_BASE_URL = "https://api.openai.com/v1"


def _optional_int(name: str) -> int | None:
    value = os.getenv(name)
    if not value:
        return None
    return int(value)


class ProviderClientOptions(BaseModel):
    """Per-client configuration. Frozen: shared read-only across concurrent calls."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    base_url: str = Field(default_factory=lambda: os.getenv("OPENAI_BASE_URL", DEFAULT_BASE_URL))
    api_key: str | None = Field(default_factory=lambda: os.getenv("OPENAI_API_KEY"))
    system_message: str = ""

    # Catalog lookup is an external collaborator: tier -> descriptor.
    model: Callable[[ModelType], ModelDescriptor]
    model_type: ModelType = ModelType.LARGE

    # Request shaping
    max_tokens: int | None = Field(default_factory=lambda: _optional_int("OPENAI_MAX_TOKENS"))
    reasoning_effort: str | None = Field(default_factory=lambda: os.getenv("OPENAI_REASONING_EFFORT") or None)
    api_version: str | None = Field(default_factory=lambda: os.getenv("OPENAI_API_VERSION") or None)
    include_usage: bool = True
    extra_headers: dict[str, str] = Field(default_factory=dict)
    extra_body: dict[str, Any] = Field(default_factory=dict)

    # HTTP behavior
    request_timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("OPENAI_REQUEST_TIMEOUT_SECONDS", "60"))
    )
    stream_idle_timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("OPENAI_STREAM_IDLE_TIMEOUT_SECONDS", "60"))
    )
    stream_total_timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("OPENAI_STREAM_TOTAL_TIMEOUT_SECONDS", "600"))
    )
    stream_buffer_size: int = Field(default_factory=lambda: int(os.getenv("OPENAI_STREAM_BUFFER_SIZE", "64")))

    # Observability
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_format: str = Field(default_factory=lambda: os.getenv("LOG_FORMAT", "json"))

    @field_validator("max_tokens")
    @classmethod
    def _validate_max_tokens(cls, v: int | None) -> int | None:
        if v is None:
            return None
        if v <= 0:
            raise ValueError("max_tokens must be > 0.")
        return v

    @field_validator("reasoning_effort")
    @classmethod
    def _validate_reasoning_effort(cls, v: str | None) -> str | None:
        if v is None:
            return None
        if v not in ("low", "medium", "high"):
            raise ValueError("reasoning_effort must be one of low, medium, high.")
        return v

    @field_validator("stream_buffer_size")
    @classmethod
    def _validate_buffer_size(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("stream_buffer_size must be > 0.")
        return v

    @property
    def variant(self) -> ProviderVariant:
        return classify(self.base_url)

    def selected_model(self) -> ModelDescriptor:
        return self.model(self.model_type)
