from __future__ import annotations

import json
from typing import Any

import pytest

from openai_stream_provider.contracts import ModelDescriptor
from openai_stream_provider.config import ProviderClientOptions
from openai_stream_provider.tiering import ModelType

GPT = ModelDescriptor(id="gpt-4o", name="GPT-4o", default_max_tokens=1000, supports_images=True)


@pytest.fixture(autouse=True)
def _clear_openai_env(monkeypatch):
    for name in (
        "OPENAI_BASE_URL",
        "OPENAI_API_KEY",
        "OPENAI_API_VERSION",
        "OPENAI_MAX_TOKENS",
        "OPENAI_REASONING_EFFORT",
        "OPENAI_STREAM_BUFFER_SIZE",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def make_options():
    def _make(model: ModelDescriptor = GPT, **kwargs: Any) -> ProviderClientOptions:
        kwargs.setdefault("api_key", "sk-test-key-123456")
        kwargs.setdefault("base_url", "https://api.openai.com/v1")
        return ProviderClientOptions(model=lambda _t: model, model_type=ModelType.LARGE, **kwargs)

    return _make


@pytest.fixture
def sse():
    """Build a text/event-stream body from chunk dicts (strings are sent verbatim)."""

    def _sse(*frames: Any, done: bool = True) -> bytes:
        out = []
        for frame in frames:
            data = frame if isinstance(frame, str) else json.dumps(frame)
            out.append(f"data: {data}\n\n")
        if done:
            out.append("data: [DONE]\n\n")
        return "".join(out).encode("utf-8")

    return _sse


def chunk(*, content: str | None = None, finish_reason: str | None = None, **delta: Any) -> dict[str, Any]:
    if content is not None:
        delta["content"] = content
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion.chunk",
        "created": 1700000000,
        "model": "gpt-4o",
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }


@pytest.fixture
def make_chunk():
    return chunk
