from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Union


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True)
class TextContent:
    text: str


@dataclass(frozen=True)
class ReasoningContent:
    thinking: str


@dataclass(frozen=True)
class ImageURLContent:
    url: str
    detail: str | None = None


@dataclass(frozen=True)
class BinaryContent:
    path: str
    mime_type: str
    data: bytes


@dataclass(frozen=True)
class ToolCall:
    id: str
    name: str
    input: str = ""
    finished: bool = True


@dataclass(frozen=True)
class ToolResult:
    tool_call_id: str
    content: str
    name: str = ""
    is_error: bool = False


@dataclass(frozen=True)
class Finish:
    reason: str
    time: int | None = None


ContentPart = Union[TextContent, ReasoningContent, ImageURLContent, BinaryContent, ToolCall, ToolResult, Finish]


@dataclass(frozen=True)
class Message:
    """One turn of the conversation: a role plus its ordered content parts."""

    role: Role
    parts: list[ContentPart] = field(default_factory=list)
    created_at: int | None = None

    def text(self) -> str:
        return "".join(p.text for p in self.parts if isinstance(p, TextContent))

    def tool_calls(self) -> list[ToolCall]:
        return [p for p in self.parts if isinstance(p, ToolCall)]

    def tool_results(self) -> list[ToolResult]:
        return [p for p in self.parts if isinstance(p, ToolResult)]

    def images(self) -> list[ImageURLContent | BinaryContent]:
        return [p for p in self.parts if isinstance(p, (ImageURLContent, BinaryContent))]


def user_message(text: str) -> Message:
    return Message(role=Role.USER, parts=[TextContent(text=text)])
