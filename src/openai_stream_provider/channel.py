from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from .contracts import ProviderResponse
from .errors import ProviderError, RequestTimeoutError, StreamCancelledError, UpstreamProtocolError
from .events import EventType, StreamEvent, error
from .metrics import stream_events_total

log = structlog.get_logger()

_CLOSED = object()

Producer = Callable[["EventStream"], Awaitable[None]]


class EventStream:
    """
    Bounded single-consumer channel of StreamEvents fed by one producer task.

    The producer blocks while the buffer is full; nothing is dropped. Exactly
    one terminal event (COMPLETE or ERROR) is delivered, then the channel
    closes, on every exit path. Use as `async with` (or call `aclose()`) to
    abandon a stream early without leaking the producer task.
    """

    def __init__(self, *, maxsize: int = 64) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=max(1, maxsize))
        self._task: asyncio.Task[None] | None = None
        self._cancel_event: asyncio.Event | None = None
        self._cancel_reason: str | None = None
        # Sent: the producer handed over a terminal event. Queued: it reached the buffer.
        self._terminal_sent = False
        self._terminal_queued = False
        self._abandoned = False
        self._exhausted = False

    def start(
        self,
        producer: Producer,
        *,
        cancel: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> "EventStream":
        if self._task is not None:
            raise RuntimeError("EventStream already started.")
        self._cancel_event = cancel if cancel is not None else asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self._run(producer, timeout))
        return self

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    async def send(self, event: StreamEvent) -> None:
        if self._terminal_sent:
            raise RuntimeError(f"Cannot send {event.type.value!r} after a terminal event.")
        if event.is_terminal:
            self._terminal_sent = True
        await self._queue.put(event)
        if event.is_terminal:
            self._terminal_queued = True

    async def _fail(self, exc: ProviderError) -> None:
        if self._terminal_queued:
            return
        # A terminal still blocked on a full buffer is replaced by this error.
        self._terminal_sent = True
        log.warning("openai_stream_error", kind=exc.kind.value, retryable=exc.retryable, error=str(exc))
        await self._queue.put(error(exc))
        self._terminal_queued = True

    async def _watch(self) -> None:
        if self._cancel_event is None or self._task is None:
            return
        await self._cancel_event.wait()
        self._task.cancel()

    async def _run(self, producer: Producer, timeout: float | None) -> None:
        # Only the watcher cancels the producer on request, so a cancel issued
        # before this task first runs still yields a terminal event.
        watcher = asyncio.create_task(self._watch())
        failure: ProviderError | None = None
        try:
            await asyncio.wait_for(producer(self), timeout=timeout)
        except asyncio.TimeoutError:
            failure = RequestTimeoutError("Streaming request timed out.")
        except asyncio.CancelledError:
            if self._abandoned:
                raise
            failure = StreamCancelledError(self._cancel_reason or "Stream cancelled by caller.")
        except ProviderError as e:
            failure = e
        except Exception as e:
            log.exception("openai_stream_unexpected_error", error=str(e))
            failure = ProviderError(f"Unexpected stream failure: {e}")
        else:
            if not self._terminal_queued:
                failure = UpstreamProtocolError("Stream ended without a terminal event.")
        finally:
            watcher.cancel()

        if failure is not None:
            await self._fail(failure)
        await self._queue.put(_CLOSED)

    def cancel(self, reason: str | None = None) -> None:
        """Stop the producer; the consumer still receives a cancellation ERROR."""
        if self._cancel_reason is None:
            self._cancel_reason = reason
        if self._cancel_event is not None:
            self._cancel_event.set()

    async def aclose(self) -> None:
        """Abandon the stream: stop the producer and deliver nothing further."""
        self._abandoned = True
        self._exhausted = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)

    def __aiter__(self) -> "EventStream":
        return self

    async def __anext__(self) -> StreamEvent:
        if self._exhausted:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self._exhausted = True
            raise StopAsyncIteration
        if not isinstance(item, StreamEvent):
            raise TypeError(f"Unexpected item in event buffer: {type(item).__name__}")
        stream_events_total.labels(type=item.type.value).inc()
        return item

    async def __aenter__(self) -> "EventStream":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def result(self) -> ProviderResponse:
        """Drain the remaining events; return the COMPLETE response or raise the ERROR."""
        async for event in self:
            if event.type is EventType.COMPLETE and event.response is not None:
                return event.response
            if event.type is EventType.ERROR and event.error is not None:
                raise event.error
        raise UpstreamProtocolError("Stream closed without a terminal event.")
