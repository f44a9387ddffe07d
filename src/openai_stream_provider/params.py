from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from .contracts import ModelDescriptor
from .errors import ConfigurationError
from .openai_compat import ChatCompletionRequest, StreamOptions
from .variant import ProviderVariant

REASONING_EFFORTS = ("low", "medium", "high")


def uses_max_completion_tokens(variant: ProviderVariant, model: ModelDescriptor) -> bool:
    """
    Azure deployments always take `max_completion_tokens`; standard endpoints
    only for reasoning-capable models.
    """
    return variant.is_azure or model.can_reason


def build_request_params(
    variant: ProviderVariant,
    model: ModelDescriptor | None,
    messages: list[dict[str, Any]],
    tools: list[dict[str, Any]] | None = None,
    *,
    max_tokens: int | None = None,
    reasoning_effort: str | None = None,
    stream: bool = True,
    include_usage: bool = True,
    extra_body: dict[str, Any] | None = None,
) -> ChatCompletionRequest:
    if model is None or not isinstance(model, ModelDescriptor):
        raise ConfigurationError("A resolved model descriptor is required.")
    if not model.id:
        raise ConfigurationError("Model descriptor is missing an id.")

    budget = max_tokens if max_tokens is not None else model.default_max_tokens
    if not isinstance(budget, int) or budget <= 0:
        raise ConfigurationError(
            f"Model {model.id!r} has no positive default token budget and no override was given."
        )

    fields: dict[str, Any] = dict(extra_body or {})
    fields.update({"model": model.id, "messages": messages, "stream": stream})
    if tools:
        fields["tools"] = tools
    if stream and include_usage:
        fields["stream_options"] = StreamOptions(include_usage=True)

    if uses_max_completion_tokens(variant, model):
        fields["max_completion_tokens"] = budget
    else:
        fields["max_tokens"] = budget

    if model.can_reason:
        effort = reasoning_effort or model.default_reasoning_effort
        if effort is not None:
            if effort not in REASONING_EFFORTS:
                raise ConfigurationError(f"Unsupported reasoning effort: {effort!r}")
            fields["reasoning_effort"] = effort

    try:
        return ChatCompletionRequest(**fields)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid request parameters: {e.errors()[0].get('msg')}") from e
