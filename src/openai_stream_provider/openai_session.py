from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any

import httpx
import structlog

from .config import DEFAULT_BASE_URL
from .errors import (
    AuthenticationError,
    RateLimitError,
    RequestTimeoutError,
    TransportError,
    UpstreamAPIError,
    UpstreamProtocolError,
)
from .streaming import iter_sse_data, upstream_error_from_payload
from .variant import ProviderVariant, classify

log = structlog.get_logger()

CHAT_COMPLETIONS_PATH = "/chat/completions"


def chat_completions_url(base_url: str, *, api_version: str | None = None) -> httpx.URL:
    """Append the chat-completions path to `base_url`, keeping its query string."""
    url = httpx.URL(base_url or DEFAULT_BASE_URL)
    path = url.path.rstrip("/")
    if not path.endswith(CHAT_COMPLETIONS_PATH):
        path = f"{path}{CHAT_COMPLETIONS_PATH}"
    url = url.copy_with(path=path)
    if api_version and "api-version" not in url.params:
        url = url.copy_merge_params({"api-version": api_version})
    return url


def _retry_after_seconds(headers: httpx.Headers) -> int | None:
    retry_after = headers.get("retry-after")
    if retry_after and retry_after.isdigit():
        return int(retry_after)
    return None


def raise_for_upstream_status(resp: httpx.Response) -> None:
    """Map an error HTTP status to the matching ProviderError. Body must be read."""
    if resp.status_code < 400:
        return
    try:
        body: Any = resp.json()
    except ValueError:
        body = None

    if isinstance(body, dict) and body.get("error"):
        err = upstream_error_from_payload(body, status_code=resp.status_code)
        message, error_type, code = str(err), err.error_type, err.code
    else:
        message, error_type, code = f"Upstream error {resp.status_code}.", None, None

    if resp.status_code in (401, 403):
        raise AuthenticationError(message, status_code=resp.status_code, error_type=error_type, code=code)
    if resp.status_code == 429:
        raise RateLimitError(
            retry_after_seconds=_retry_after_seconds(resp.headers),
            message=message,
            error_type=error_type,
            code=code,
        )
    if resp.status_code >= 500:
        log.warning("openai_upstream_5xx", status_code=resp.status_code, body=resp.text[:500])
    raise UpstreamAPIError(message, status_code=resp.status_code, error_type=error_type, code=code)


async def _idle_guard(lines: AsyncIterator[str], idle_timeout: float | None) -> AsyncIterator[str]:
    it = lines.__aiter__()
    while True:
        try:
            line = await asyncio.wait_for(anext(it), timeout=idle_timeout)
        except StopAsyncIteration:
            break
        except asyncio.TimeoutError as e:
            raise RequestTimeoutError("Upstream stream went idle.") from e
        yield line


class OpenAISession:
    """
    HTTP session for an OpenAI-compatible chat-completions endpoint.

    Owns URL/header shaping per provider variant and the translation of
    httpx failures into ProviderErrors. No retries happen here.
    """

    def __init__(
        self,
        api_key: str | None,
        *,
        client: httpx.AsyncClient | None = None,
        base_url: str = DEFAULT_BASE_URL,
        api_version: str | None = None,
        extra_headers: dict[str, str] | None = None,
        timeout_seconds: float = 60,
    ):
        self.api_key = api_key
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._base_url = base_url
        self._api_version = api_version
        self._extra_headers = dict(extra_headers or {})

    @property
    def variant(self) -> ProviderVariant:
        return classify(self._base_url)

    @property
    def url(self) -> httpx.URL:
        return chat_completions_url(self._base_url, api_version=self._api_version)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _headers(self, *, stream: bool) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if stream:
            headers["Accept"] = "text/event-stream"
        if self.api_key:
            if self.variant.is_azure:
                headers["api-key"] = self.api_key
            else:
                headers["Authorization"] = f"Bearer {self.api_key}"
        headers.update(self._extra_headers)
        return headers

    async def stream_chat(
        self, payload: dict[str, Any], *, idle_timeout: float | None = None
    ) -> AsyncIterator[str]:
        """POST a streaming request and yield each SSE `data:` payload as it arrives."""
        try:
            async with self._client.stream("POST", self.url, json=payload, headers=self._headers(stream=True)) as resp:
                if resp.status_code >= 400:
                    await resp.aread()
                    raise_for_upstream_status(resp)
                log.debug("openai_stream_open", url=str(self.url), status_code=resp.status_code)
                async for data in iter_sse_data(_idle_guard(resp.aiter_lines(), idle_timeout)):
                    yield data
        except httpx.TimeoutException as e:
            raise RequestTimeoutError("Upstream request timed out.") from e
        except httpx.HTTPError as e:
            raise TransportError(f"Upstream request failed: {e.__class__.__name__}: {e}") from e

    async def complete_chat(self, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            resp = await self._client.post(self.url, json=payload, headers=self._headers(stream=False))
        except httpx.TimeoutException as e:
            raise RequestTimeoutError("Upstream request timed out.") from e
        except httpx.HTTPError as e:
            raise TransportError(f"Upstream request failed: {e.__class__.__name__}: {e}") from e

        raise_for_upstream_status(resp)
        try:
            data = resp.json()
        except ValueError as e:
            raise UpstreamProtocolError("Upstream response is not valid JSON.") from e
        if not isinstance(data, dict):
            raise UpstreamProtocolError("Upstream response is not a JSON object.")
        if data.get("error"):
            raise upstream_error_from_payload(data, status_code=resp.status_code)
        return data
