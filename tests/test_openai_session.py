import json

import httpx
import pytest

from openai_stream_provider.errors import (
    AuthenticationError,
    ErrorKind,
    RateLimitError,
    RequestTimeoutError,
    TransportError,
    UpstreamAPIError,
    UpstreamProtocolError,
)
from openai_stream_provider.openai_session import OpenAISession, chat_completions_url


def test_chat_completions_url_appends_path_once():
    assert str(chat_completions_url("https://api.openai.com/v1")) == "https://api.openai.com/v1/chat/completions"
    assert str(chat_completions_url("https://api.openai.com/v1/")) == "https://api.openai.com/v1/chat/completions"
    assert (
        str(chat_completions_url("https://api.openai.com/v1/chat/completions"))
        == "https://api.openai.com/v1/chat/completions"
    )


def test_chat_completions_url_keeps_query_and_adds_api_version():
    url = chat_completions_url("https://r.openai.azure.com/openai/deployments/d?api-version=2024-02-01", api_version="x")
    assert url.path == "/openai/deployments/d/chat/completions"
    assert url.params["api-version"] == "2024-02-01"

    url = chat_completions_url("https://r.openai.azure.com/openai/deployments/d", api_version="2024-10-21")
    assert url.params["api-version"] == "2024-10-21"


def _session(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs.setdefault("base_url", "https://api.openai.com/v1")
    return OpenAISession("sk-test-key-123456", client=client, **kwargs)


@pytest.mark.asyncio
async def test_standard_host_uses_bearer_auth():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["headers"] = request.headers
        seen["url"] = str(request.url)
        return httpx.Response(200, json={"choices": []})

    await _session(handler).complete_chat({"model": "m"})
    assert seen["url"] == "https://api.openai.com/v1/chat/completions"
    assert seen["headers"]["authorization"] == "Bearer sk-test-key-123456"
    assert "api-key" not in seen["headers"]


@pytest.mark.asyncio
async def test_azure_host_uses_api_key_header():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["headers"] = request.headers
        seen["url"] = request.url
        return httpx.Response(200, json={"choices": []})

    session = _session(
        handler,
        base_url="https://my-custom-name.cognitiveservices.azure.com/openai/deployments/gpt-4o",
        api_version="2024-10-21",
        extra_headers={"x-ms-useragent": "tests"},
    )
    await session.complete_chat({"model": "m"})
    assert seen["headers"]["api-key"] == "sk-test-key-123456"
    assert "authorization" not in seen["headers"]
    assert seen["headers"]["x-ms-useragent"] == "tests"
    assert seen["url"].params["api-version"] == "2024-10-21"


@pytest.mark.asyncio
async def test_stream_chat_yields_data_payloads():
    body = b'data: {"id": "1"}\n\n: ping\n\ndata: [DONE]\n\n'

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["accept"] == "text/event-stream"
        assert json.loads(request.content)["stream"] is True
        return httpx.Response(200, content=body, headers={"content-type": "text/event-stream"})

    out = [d async for d in _session(handler).stream_chat({"model": "m", "stream": True})]
    assert out == ['{"id": "1"}', "[DONE]"]


@pytest.mark.parametrize(
    "status,headers,exc_type,retryable",
    [
        (401, {}, AuthenticationError, False),
        (403, {}, AuthenticationError, False),
        (429, {"retry-after": "3"}, RateLimitError, True),
        (400, {}, UpstreamAPIError, False),
        (500, {}, UpstreamAPIError, True),
        (503, {}, UpstreamAPIError, True),
    ],
)
@pytest.mark.asyncio
async def test_error_status_mapping(status, headers, exc_type, retryable):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            status,
            headers=headers,
            json={"error": {"message": f"status {status}", "type": "test_error", "code": "x"}},
        )

    with pytest.raises(exc_type) as exc:
        async for _ in _session(handler).stream_chat({"model": "m"}):
            pass
    assert exc.value.status_code == status
    assert exc.value.retryable is retryable
    assert str(exc.value) == f"status {status}"
    if status == 429:
        assert exc.value.retry_after_seconds == 3


@pytest.mark.asyncio
async def test_error_status_without_json_body():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="<html>bad gateway</html>")

    with pytest.raises(UpstreamAPIError) as exc:
        await _session(handler).complete_chat({"model": "m"})
    assert exc.value.status_code == 502
    assert exc.value.kind is ErrorKind.UPSTREAM


@pytest.mark.asyncio
async def test_transport_failures_are_translated():
    def refused(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    def slow(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(TransportError) as exc:
        async for _ in _session(refused).stream_chat({"model": "m"}):
            pass
    assert exc.value.kind is ErrorKind.TRANSPORT
    assert exc.value.retryable

    with pytest.raises(RequestTimeoutError):
        await _session(slow).complete_chat({"model": "m"})


@pytest.mark.asyncio
async def test_complete_chat_rejects_non_object_json():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[1, 2, 3])

    with pytest.raises(UpstreamProtocolError):
        await _session(handler).complete_chat({"model": "m"})


@pytest.mark.asyncio
async def test_close_leaves_injected_client_open():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200, json={})))
    session = OpenAISession("k", client=client)
    await session.close()
    assert not client.is_closed
    await client.aclose()
