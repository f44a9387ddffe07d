from __future__ import annotations

import json
from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog
from pydantic import ValidationError

from .contracts import FinishReason, ProviderResponse, TokenUsage, finish_reason_from_wire
from .errors import ProviderError, UpstreamAPIError, UpstreamProtocolError
from .events import EventType, StreamEvent, complete, content_delta, error, thinking_delta
from .message import ToolCall
from .metrics import empty_choices_frames_total
from .openai_compat import ChatCompletionChunk, CompletionUsage, OpenAIErrorResponse, ToolCallDelta

log = structlog.get_logger()

DONE_SENTINEL = "[DONE]"


async def iter_sse_data(lines: AsyncIterator[str]) -> AsyncIterator[str]:
    """
    Group `text/event-stream` lines into event payloads.

    Yields the joined `data:` field of each event. Comments and the
    `event:`/`id:`/`retry:` fields are ignored.
    """
    buf: list[str] = []
    async for line in lines:
        if not line:
            if buf:
                yield "\n".join(buf)
                buf = []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if field != "data":
            continue
        if value.startswith(" "):
            value = value[1:]
        buf.append(value)
    if buf:
        yield "\n".join(buf)


def usage_from_wire(usage: CompletionUsage) -> TokenUsage:
    cached = usage.prompt_tokens_details.cached_tokens if usage.prompt_tokens_details else 0
    reasoning = usage.completion_tokens_details.reasoning_tokens if usage.completion_tokens_details else 0
    return TokenUsage(
        input_tokens=max(0, usage.prompt_tokens - cached),
        output_tokens=usage.completion_tokens,
        cache_read_tokens=cached,
        reasoning_tokens=reasoning,
    )


def upstream_error_from_payload(payload: Any, *, status_code: int | None = None) -> UpstreamAPIError:
    try:
        err = OpenAIErrorResponse.model_validate(payload).error
    except ValidationError:
        return UpstreamAPIError("Upstream returned an error.", status_code=status_code)
    code = None if err.code is None else str(err.code)
    return UpstreamAPIError(
        err.message or "Upstream returned an error.",
        status_code=status_code,
        error_type=err.type,
        code=code,
    )


class DecoderState(str, Enum):
    STREAMING = "streaming"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class _ToolCallState:
    index: int
    id: str | None = None
    name: str | None = None
    arguments: str = ""
    started: bool = False

    def snapshot(self, *, input: str, finished: bool) -> ToolCall:
        return ToolCall(
            id=self.id or f"call_{self.index}",
            name=self.name or "",
            input=input,
            finished=finished,
        )


class ChunkDecoder:
    """
    Turns decoded chat-completion-chunk payloads into StreamEvents.

    States: STREAMING -> STREAMING (delta, empty choices) | COMPLETE | ERROR.
    A frame whose `choices` is empty is its own transition: it updates
    metadata/usage and produces nothing.
    """

    def __init__(self, *, model: str | None = None) -> None:
        self.state = DecoderState.STREAMING
        self._model = model
        self._response_id: str | None = None
        self._content: list[str] = []
        self._finish_reason: str | None = None
        self._usage = TokenUsage()
        self._tool_calls: dict[int, _ToolCallState] = {}
        self._tool_call_index_by_id: dict[str, int] = {}
        self._last_tool_call_index: int | None = None

    def feed(self, data: str) -> list[StreamEvent]:
        """Decode one SSE data payload. Raises ProviderError on bad frames."""
        if self.state is not DecoderState.STREAMING:
            return []
        raw = data.strip()
        if not raw:
            return []
        if raw == DONE_SENTINEL:
            return self.finish()

        try:
            obj = json.loads(raw)
        except json.JSONDecodeError as e:
            raise UpstreamProtocolError("Failed to decode upstream SSE JSON.") from e
        if not isinstance(obj, dict):
            raise UpstreamProtocolError("Upstream SSE payload is not a JSON object.")
        if obj.get("error"):
            raise upstream_error_from_payload(obj)

        try:
            chunk = ChatCompletionChunk.model_validate(obj)
        except ValidationError as e:
            raise UpstreamProtocolError(f"Malformed chat completion chunk: {e.errors()[0].get('msg')}") from e

        self._record_metadata(chunk)
        if not chunk.choices:
            return self._on_empty_choices(chunk)
        return self._on_choices(chunk)

    def finish(self) -> list[StreamEvent]:
        """Close open tool calls and produce the single COMPLETE event."""
        if self.state is not DecoderState.STREAMING:
            return []
        events: list[StreamEvent] = []
        tool_calls: list[ToolCall] = []
        for idx in sorted(self._tool_calls):
            st = self._tool_calls[idx]
            if not st.name:
                log.warning("openai_stream_tool_call_without_name", index=idx, tool_call_id=st.id)
                continue
            call = st.snapshot(input=st.arguments, finished=True)
            tool_calls.append(call)
            events.append(StreamEvent(type=EventType.TOOL_USE_STOP, tool_call=call))

        finish_reason = finish_reason_from_wire(self._finish_reason)
        if tool_calls:
            finish_reason = FinishReason.TOOL_USE

        response = ProviderResponse(
            content="".join(self._content),
            tool_calls=tool_calls,
            usage=self._usage,
            finish_reason=finish_reason,
            model=self._model,
            response_id=self._response_id,
        )
        events.append(complete(response))
        self.state = DecoderState.COMPLETE
        return events

    def fail(self, exc: ProviderError) -> StreamEvent:
        self.state = DecoderState.ERROR
        return error(exc)

    def _record_metadata(self, chunk: ChatCompletionChunk) -> None:
        if chunk.id and self._response_id is None:
            self._response_id = chunk.id
        if chunk.model:
            self._model = chunk.model
        if chunk.usage is not None:
            self._usage = usage_from_wire(chunk.usage)

    def _on_empty_choices(self, chunk: ChatCompletionChunk) -> list[StreamEvent]:
        empty_choices_frames_total.inc()
        log.debug("openai_stream_empty_choices", chunk_id=chunk.id, has_usage=chunk.usage is not None)
        return []

    def _on_choices(self, chunk: ChatCompletionChunk) -> list[StreamEvent]:
        out: list[StreamEvent] = []
        for choice in chunk.choices:
            delta = choice.delta
            thinking = delta.thinking()
            if thinking:
                out.append(thinking_delta(thinking))
            if delta.content:
                self._content.append(delta.content)
                out.append(content_delta(delta.content))
            for tc in delta.tool_calls or ():
                out.extend(self._on_tool_call_delta(tc))
            if choice.finish_reason:
                self._finish_reason = choice.finish_reason
        return out

    def _resolve_index(self, tc: ToolCallDelta) -> int:
        if tc.index is not None:
            return tc.index
        if tc.id and tc.id in self._tool_call_index_by_id:
            return self._tool_call_index_by_id[tc.id]
        if not tc.id and self._last_tool_call_index is not None:
            return self._last_tool_call_index
        return max(self._tool_calls, default=-1) + 1

    def _on_tool_call_delta(self, tc: ToolCallDelta) -> list[StreamEvent]:
        idx = self._resolve_index(tc)
        self._last_tool_call_index = idx
        st = self._tool_calls.get(idx)
        if st is None:
            st = self._tool_calls[idx] = _ToolCallState(index=idx)
        if tc.id and st.id is None:
            st.id = tc.id
            self._tool_call_index_by_id[tc.id] = idx

        out: list[StreamEvent] = []
        fn = tc.function
        if fn is not None and fn.name and st.name is None:
            st.name = fn.name
        fragment = fn.arguments if fn is not None and fn.arguments else ""
        st.arguments += fragment
        if not st.started:
            # Arguments seen before the name are held until START can be emitted.
            if not st.name:
                return out
            st.started = True
            out.append(StreamEvent(type=EventType.TOOL_USE_START, tool_call=st.snapshot(input="", finished=False)))
            fragment = st.arguments
        if fragment:
            out.append(
                StreamEvent(type=EventType.TOOL_USE_DELTA, tool_call=st.snapshot(input=fragment, finished=False))
            )
        return out
