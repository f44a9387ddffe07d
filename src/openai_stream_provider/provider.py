from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence
from contextlib import aclosing
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from .adapter import convert_messages, convert_tools
from .channel import EventStream
from .config import ProviderClientOptions
from .contracts import FinishReason, ModelDescriptor, ProviderResponse, TokenUsage, ToolInfo, finish_reason_from_wire
from .errors import ProviderError, RequestTimeoutError, UpstreamProtocolError
from .events import EventType, StreamEvent
from .message import Message, ToolCall
from .metrics import request_latency_seconds, requests_total
from .openai_compat import ChatCompletionRequest, ChatCompletionResponse
from .openai_session import OpenAISession
from .params import build_request_params
from .streaming import ChunkDecoder, usage_from_wire

log = structlog.get_logger()


class OpenAIProvider:
    name = "openai"

    def __init__(
        self,
        options: ProviderClientOptions,
        *,
        client: httpx.AsyncClient | None = None,
        session: OpenAISession | None = None,
    ):
        self.options = options
        self.session = session or OpenAISession(
            api_key=options.api_key,
            client=client,
            base_url=options.base_url,
            api_version=options.api_version,
            extra_headers=options.extra_headers,
            timeout_seconds=options.request_timeout_seconds,
        )

    async def close(self) -> None:
        await self.session.close()

    def model(self) -> ModelDescriptor:
        return self.options.selected_model()

    def prepare_params(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolInfo] | None = None,
        *,
        stream: bool = True,
    ) -> ChatCompletionRequest:
        """Convert messages/tools and shape the request for the configured backend."""
        model = self.model()
        notes: list[str] = []
        wire_messages = convert_messages(
            messages,
            system_message=self.options.system_message,
            supports_images=model.supports_images,
            notes=notes,
        )
        if notes:
            log.info("openai_messages_converted_with_drops", model=model.id, dropped=len(notes))
        return build_request_params(
            self.options.variant,
            model,
            wire_messages,
            convert_tools(tools),
            max_tokens=self.options.max_tokens,
            reasoning_effort=self.options.reasoning_effort,
            stream=stream,
            include_usage=self.options.include_usage,
            extra_body=self.options.extra_body,
        )

    def _total_timeout(self, timeout: float | None) -> float | None:
        configured = self.options.stream_total_timeout_seconds
        candidates = [t for t in (timeout, configured) if t is not None and t > 0]
        return min(candidates) if candidates else None

    def stream(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolInfo] | None = None,
        *,
        cancel: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> EventStream:
        """
        Start a streaming completion and return its event channel immediately.

        Request shaping happens here, so a ConfigurationError raises before any
        network I/O. Everything after that is reported as exactly one terminal
        event on the returned stream. Must be called with a running event loop.
        """
        params = self.prepare_params(messages, tools, stream=True)
        payload = params.to_payload()
        variant = self.options.variant.value
        idle_timeout = self.options.stream_idle_timeout_seconds or None

        async def _produce(channel: EventStream) -> None:
            started = time.monotonic()
            decoder = ChunkDecoder(model=params.model)
            status = "error"
            try:
                async with aclosing(self.session.stream_chat(payload, idle_timeout=idle_timeout)) as frames:
                    async for data in frames:
                        try:
                            events = decoder.feed(data)
                        except ProviderError as e:
                            log.warning("provider_error", provider=self.name, kind=e.kind.value, error=str(e))
                            await channel.send(decoder.fail(e))
                            return
                        for event in events:
                            await channel.send(event)
                        if _ends_with_complete(events):
                            status = "success"
                            return
                # Clean EOF without [DONE]
                for event in decoder.finish():
                    await channel.send(event)
                status = "success"
            finally:
                requests_total.labels(provider=self.name, variant=variant, status=status).inc()
                request_latency_seconds.labels(provider=self.name).observe(max(0.0, time.monotonic() - started))

        log.debug("openai_stream_start", model=params.model, variant=variant, messages=len(params.messages))
        channel = EventStream(maxsize=self.options.stream_buffer_size)
        return channel.start(_produce, cancel=cancel, timeout=self._total_timeout(timeout))

    async def send(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolInfo] | None = None,
        *,
        timeout: float | None = None,
    ) -> ProviderResponse:
        """Non-streaming completion."""
        params = self.prepare_params(messages, tools, stream=False)
        variant = self.options.variant.value
        started = time.monotonic()
        try:
            try:
                data = await asyncio.wait_for(
                    self.session.complete_chat(params.to_payload()),
                    timeout=timeout if timeout and timeout > 0 else None,
                )
            except asyncio.TimeoutError as e:
                raise RequestTimeoutError("Request timed out.") from e
            response = _response_from_completion(data, fallback_model=params.model)
        except ProviderError as e:
            requests_total.labels(provider=self.name, variant=variant, status="error").inc()
            log.warning("provider_error", provider=self.name, kind=e.kind.value, error=str(e))
            raise
        finally:
            request_latency_seconds.labels(provider=self.name).observe(max(0.0, time.monotonic() - started))

        requests_total.labels(provider=self.name, variant=variant, status="success").inc()
        return response


def _ends_with_complete(events: list[StreamEvent]) -> bool:
    return bool(events) and events[-1].type is EventType.COMPLETE


def _response_from_completion(data: dict[str, Any], *, fallback_model: str) -> ProviderResponse:
    try:
        completion = ChatCompletionResponse.model_validate(data)
    except ValidationError as e:
        raise UpstreamProtocolError("Malformed chat completion response.") from e
    if not completion.choices:
        raise UpstreamProtocolError("Upstream response has no choices.")

    choice = completion.choices[0]
    tool_calls = [
        ToolCall(id=tc.id, name=tc.function.name, input=tc.function.arguments, finished=True)
        for tc in choice.message.tool_calls or ()
    ]
    finish_reason = finish_reason_from_wire(choice.finish_reason)
    if tool_calls:
        finish_reason = FinishReason.TOOL_USE

    return ProviderResponse(
        content=choice.message.content or "",
        tool_calls=tool_calls,
        usage=usage_from_wire(completion.usage) if completion.usage else TokenUsage(),
        finish_reason=finish_reason,
        model=completion.model or fallback_model,
        response_id=completion.id,
    )
