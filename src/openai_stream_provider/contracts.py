from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .message import ToolCall


@dataclass(frozen=True)
class ModelDescriptor:
    id: str
    name: str
    default_max_tokens: int = 0
    can_reason: bool = False
    supports_images: bool = False
    context_window: int = 0
    default_reasoning_effort: str | None = None


@dataclass(frozen=True)
class ToolInfo:
    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)
    required: list[str] = field(default_factory=list)


class FinishReason(str, Enum):
    END_TURN = "end_turn"
    MAX_TOKENS = "max_tokens"
    TOOL_USE = "tool_use"
    CANCELED = "canceled"
    ERROR = "error"
    CONTENT_FILTER = "content_filter"
    UNKNOWN = "unknown"


def finish_reason_from_wire(reason: str | None) -> FinishReason:
    if reason == "stop":
        return FinishReason.END_TURN
    if reason == "length":
        return FinishReason.MAX_TOKENS
    if reason in ("tool_calls", "function_call"):
        return FinishReason.TOOL_USE
    if reason == "content_filter":
        return FinishReason.CONTENT_FILTER
    return FinishReason.UNKNOWN


@dataclass(frozen=True)
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    reasoning_tokens: int = 0


@dataclass(frozen=True)
class ProviderResponse:
    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)
    finish_reason: FinishReason = FinishReason.UNKNOWN
    model: str | None = None
    response_id: str | None = None
