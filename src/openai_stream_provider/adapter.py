from __future__ import annotations

import base64
from collections.abc import Iterable, Sequence
from typing import Any

import structlog

from .contracts import ToolInfo
from .message import (
    BinaryContent,
    Finish,
    ImageURLContent,
    Message,
    Role,
    TextContent,
    ToolCall,
    ToolResult,
)

log = structlog.get_logger()

_WIRE_ROLES: dict[Role, str] = {
    Role.SYSTEM: "system",
    Role.USER: "user",
    Role.ASSISTANT: "assistant",
    Role.TOOL: "tool",
}


def _note(notes: list[str] | None, index: int, role: Role, part: object, reason: str) -> None:
    kind = type(part).__name__
    log.debug("adapter_dropped_part", message_index=index, role=role.value, part=kind, reason=reason)
    if notes is not None:
        notes.append(f"message {index} ({role.value}): dropped {kind}: {reason}")


def _image_part(part: ImageURLContent | BinaryContent) -> dict[str, Any]:
    if isinstance(part, ImageURLContent):
        image_url: dict[str, Any] = {"url": part.url}
        if part.detail:
            image_url["detail"] = part.detail
        return {"type": "image_url", "image_url": image_url}
    encoded = base64.b64encode(part.data).decode("ascii")
    return {"type": "image_url", "image_url": {"url": f"data:{part.mime_type};base64,{encoded}"}}


def _note_unsupported(
    index: int, msg: Message, supported: tuple[type, ...], reason: str, notes: list[str] | None
) -> None:
    for part in msg.parts:
        if not isinstance(part, supported + (Finish,)):
            _note(notes, index, msg.role, part, reason)


def _convert_user(
    index: int, msg: Message, *, supports_images: bool, notes: list[str] | None
) -> dict[str, Any]:
    _note_unsupported(
        index, msg, (TextContent, ImageURLContent, BinaryContent), "not supported in user messages", notes
    )
    images: list[dict[str, Any]] = []
    for part in msg.images():
        if isinstance(part, BinaryContent) and not part.mime_type.startswith("image/"):
            _note(notes, index, msg.role, part, f"unsupported attachment type {part.mime_type!r}")
        elif not supports_images:
            _note(notes, index, msg.role, part, "model does not accept images")
        else:
            images.append(_image_part(part))

    text = msg.text()
    if not images:
        return {"role": "user", "content": text}
    content: list[dict[str, Any]] = []
    if text:
        content.append({"type": "text", "text": text})
    content.extend(images)
    return {"role": "user", "content": content}


def _convert_assistant(index: int, msg: Message, *, notes: list[str] | None) -> dict[str, Any]:
    _note_unsupported(index, msg, (TextContent, ToolCall), "not supported in assistant messages", notes)
    tool_calls = [
        {
            "id": call.id,
            "type": "function",
            "function": {"name": call.name, "arguments": call.input or "{}"},
        }
        for call in msg.tool_calls()
    ]
    text = msg.text()
    if not tool_calls:
        return {"role": "assistant", "content": text}
    return {"role": "assistant", "content": text or None, "tool_calls": tool_calls}


def _convert_text_only(index: int, msg: Message, *, notes: list[str] | None) -> dict[str, Any]:
    _note_unsupported(index, msg, (TextContent,), "not supported in system messages", notes)
    return {"role": _WIRE_ROLES[msg.role], "content": msg.text()}


def _convert_tool(index: int, msg: Message, *, notes: list[str] | None) -> list[dict[str, Any]]:
    _note_unsupported(index, msg, (ToolResult,), "tool messages only carry tool results", notes)
    return [
        {"role": "tool", "tool_call_id": result.tool_call_id, "content": result.content}
        for result in msg.tool_results()
    ]


def convert_messages(
    messages: Sequence[Message],
    *,
    system_message: str | None = None,
    supports_images: bool = True,
    notes: list[str] | None = None,
) -> list[dict[str, Any]]:
    """
    Convert internal messages into chat-completions wire messages.

    Order is preserved. Parts the wire format cannot carry are dropped and
    described in `notes` (when given); the rest of the message still converts.
    """
    wire: list[dict[str, Any]] = []
    if system_message:
        wire.append({"role": "system", "content": system_message})

    for index, msg in enumerate(messages):
        if msg.role is Role.USER:
            wire.append(_convert_user(index, msg, supports_images=supports_images, notes=notes))
        elif msg.role is Role.ASSISTANT:
            wire.append(_convert_assistant(index, msg, notes=notes))
        elif msg.role is Role.TOOL:
            wire.extend(_convert_tool(index, msg, notes=notes))
        else:
            wire.append(_convert_text_only(index, msg, notes=notes))
    return wire


def convert_tools(tools: Iterable[ToolInfo] | None) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for tool in tools or ():
        out.append(
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": {
                        "type": "object",
                        "properties": dict(tool.parameters),
                        "required": list(tool.required),
                    },
                },
            }
        )
    return out


def wire_text(wire_message: dict[str, Any]) -> str:
    """Re-derive the plain text carried by a wire message."""
    content = wire_message.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            p.get("text", "") for p in content if isinstance(p, dict) and p.get("type") == "text"
        )
    return ""
