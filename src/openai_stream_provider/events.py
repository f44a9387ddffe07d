from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .contracts import ProviderResponse
from .errors import ProviderError
from .message import ToolCall


class EventType(str, Enum):
    CONTENT_DELTA = "content_delta"
    THINKING_DELTA = "thinking_delta"
    TOOL_USE_START = "tool_use_start"
    TOOL_USE_DELTA = "tool_use_delta"
    TOOL_USE_STOP = "tool_use_stop"
    COMPLETE = "complete"
    ERROR = "error"


TERMINAL_EVENT_TYPES = frozenset({EventType.COMPLETE, EventType.ERROR})


@dataclass(frozen=True)
class StreamEvent:
    type: EventType
    content: str | None = None
    thinking: str | None = None
    tool_call: ToolCall | None = None
    response: ProviderResponse | None = None
    error: ProviderError | None = None

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENT_TYPES


def content_delta(text: str) -> StreamEvent:
    return StreamEvent(type=EventType.CONTENT_DELTA, content=text)


def thinking_delta(text: str) -> StreamEvent:
    return StreamEvent(type=EventType.THINKING_DELTA, thinking=text)


def complete(response: ProviderResponse) -> StreamEvent:
    return StreamEvent(type=EventType.COMPLETE, response=response)


def error(exc: ProviderError) -> StreamEvent:
    return StreamEvent(type=EventType.ERROR, error=exc)
