import pytest

from openai_stream_provider.contracts import ModelDescriptor
from openai_stream_provider.errors import ConfigurationError
from openai_stream_provider.params import build_request_params, uses_max_completion_tokens
from openai_stream_provider.variant import ProviderVariant

MESSAGES = [{"role": "user", "content": "hi"}]

PLAIN = ModelDescriptor(id="gpt-4o", name="GPT-4o", default_max_tokens=1000)
REASONING = ModelDescriptor(id="o3-mini", name="o3", default_max_tokens=1000, can_reason=True)


@pytest.mark.parametrize(
    "variant,model,field",
    [
        (ProviderVariant.STANDARD, PLAIN, "max_tokens"),
        (ProviderVariant.STANDARD, REASONING, "max_completion_tokens"),
        (ProviderVariant.AZURE_OPENAI, PLAIN, "max_completion_tokens"),
        (ProviderVariant.AZURE_OPENAI, REASONING, "max_completion_tokens"),
        (ProviderVariant.AZURE_COGNITIVE_SERVICES, PLAIN, "max_completion_tokens"),
        (ProviderVariant.AZURE_COGNITIVE_SERVICES, REASONING, "max_completion_tokens"),
    ],
)
def test_token_limit_policy(variant, model, field):
    params = build_request_params(variant, model, MESSAGES)
    payload = params.to_payload()

    other = "max_tokens" if field == "max_completion_tokens" else "max_completion_tokens"
    assert payload[field] == 1000
    assert other not in payload
    assert params.effective_max_tokens() == 1000
    assert uses_max_completion_tokens(variant, model) is (field == "max_completion_tokens")


def test_override_wins_over_default_budget():
    params = build_request_params(ProviderVariant.STANDARD, PLAIN, MESSAGES, max_tokens=50)
    assert params.max_tokens == 50


def test_missing_budget_is_configuration_error():
    model = ModelDescriptor(id="gpt-4o", name="GPT-4o", default_max_tokens=0)
    with pytest.raises(ConfigurationError):
        build_request_params(ProviderVariant.STANDARD, model, MESSAGES)


@pytest.mark.parametrize("model", [None, ModelDescriptor(id="", name="nameless", default_max_tokens=10)])
def test_invalid_descriptor_is_configuration_error(model):
    with pytest.raises(ConfigurationError):
        build_request_params(ProviderVariant.STANDARD, model, MESSAGES)


def test_streaming_requests_usage_and_omits_empty_tools():
    payload = build_request_params(ProviderVariant.STANDARD, PLAIN, MESSAGES, tools=[]).to_payload()
    assert payload["stream"] is True
    assert payload["stream_options"] == {"include_usage": True}
    assert "tools" not in payload


def test_non_streaming_request_has_no_stream_options():
    payload = build_request_params(ProviderVariant.STANDARD, PLAIN, MESSAGES, stream=False).to_payload()
    assert payload["stream"] is False
    assert "stream_options" not in payload


def test_reasoning_effort_only_for_reasoning_models():
    plain = build_request_params(ProviderVariant.STANDARD, PLAIN, MESSAGES, reasoning_effort="high")
    reasoning = build_request_params(ProviderVariant.STANDARD, REASONING, MESSAGES, reasoning_effort="high")
    assert "reasoning_effort" not in plain.to_payload()
    assert reasoning.reasoning_effort == "high"


def test_reasoning_effort_falls_back_to_model_default():
    model = ModelDescriptor(
        id="o3-mini", name="o3", default_max_tokens=1000, can_reason=True, default_reasoning_effort="low"
    )
    assert build_request_params(ProviderVariant.STANDARD, model, MESSAGES).reasoning_effort == "low"


def test_unknown_reasoning_effort_is_rejected():
    with pytest.raises(ConfigurationError):
        build_request_params(ProviderVariant.STANDARD, REASONING, MESSAGES, reasoning_effort="extreme")


def test_extra_body_is_merged_but_cannot_override_model():
    params = build_request_params(
        ProviderVariant.STANDARD, PLAIN, MESSAGES, extra_body={"temperature": 0.2, "model": "other"}
    )
    payload = params.to_payload()
    assert payload["temperature"] == 0.2
    assert payload["model"] == "gpt-4o"
