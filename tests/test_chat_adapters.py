from __future__ import annotations

import httpx
import pytest

from conftest import RecordingTransport
from shared.errors import ProviderError, TransportError
from shared.llm_adapter.anthropic_provider import AnthropicApiStyle, AnthropicChatAdapter
from shared.llm_adapter.huggingface_provider import HuggingFaceChatAdapter
from shared.llm_adapter.models import Provider, ProviderRequest, ProviderResponse
from shared.llm_adapter.openai_provider import OpenAIChatAdapter
from shared.llm_adapter.prompts import SYSTEM_PROMPT, render_transcript


def _request(provider: Provider, model: str, messages: list[dict] | None = None) -> ProviderRequest:
    return ProviderRequest(
        provider=provider,
        model=model,
        messages=messages or [{"role": "user", "content": "hello"}],
        api_key="secret-key-for-tests",
    )


def _openai_completion(content: str = "Hello from OpenAI") -> dict:
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 1700000000,
        "model": "gpt-4o-mini",
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
        "usage": {"prompt_tokens": 42, "completion_tokens": 7, "total_tokens": 49},
    }


def _assert_normalized(response: ProviderResponse, provider: Provider) -> None:
    assert isinstance(response, ProviderResponse)
    assert response.content
    assert response.provider == provider
    for field in ("prompt_tokens", "completion_tokens", "total_tokens"):
        assert isinstance(getattr(response.usage, field), int)


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_openai_adapter_builds_request_and_normalizes_response():
    transport = RecordingTransport(lambda request: httpx.Response(200, json=_openai_completion()))
    adapter = OpenAIChatAdapter(httpx.AsyncClient(transport=transport))

    response = await adapter.complete(
        _request(
            Provider.OPENAI,
            "gpt-4o-mini",
            [
                {"role": "system", "content": "ignored"},
                {"role": "user", "content": "hello"},
                {"role": "assistant", "content": "hi"},
                {"role": "user", "content": "any SBIR notices?"},
            ],
        )
    )

    _assert_normalized(response, Provider.OPENAI)
    assert response.content == "Hello from OpenAI"
    assert response.usage.total_tokens == 49
    assert response.model == "gpt-4o-mini"

    request = transport.requests[0]
    assert request.url.path == "/v1/chat/completions"
    assert request.headers["authorization"] == "Bearer secret-key-for-tests"
    body = transport.json_bodies()[0]
    assert body["messages"][0] == {"role": "system", "content": SYSTEM_PROMPT}
    assert [m["role"] for m in body["messages"][1:]] == ["user", "assistant", "user"]
    assert body["temperature"] == 0.7
    assert body["max_tokens"] == 1000
    assert body["stream"] is False


@pytest.mark.asyncio
async def test_openai_error_preserves_status_and_message():
    transport = RecordingTransport(
        lambda request: httpx.Response(
            429, json={"error": {"message": "You exceeded your current quota", "type": "insufficient_quota"}}
        )
    )
    adapter = OpenAIChatAdapter(httpx.AsyncClient(transport=transport))

    with pytest.raises(ProviderError) as exc_info:
        await adapter.complete(_request(Provider.OPENAI, "gpt-4o-mini"))

    err = exc_info.value
    assert err.provider == "openai"
    assert err.status == 429
    assert err.upstream_message == "You exceeded your current quota"
    assert len(transport.requests) == 1


@pytest.mark.asyncio
async def test_openai_connection_failure_is_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("name resolution failed", request=request)

    adapter = OpenAIChatAdapter(httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    with pytest.raises(TransportError):
        await adapter.complete(_request(Provider.OPENAI, "gpt-4o-mini"))


# ---------------------------------------------------------------------------
# Anthropic
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_anthropic_messages_style():
    transport = RecordingTransport(
        lambda request: httpx.Response(
            200,
            json={
                "id": "msg_1",
                "type": "message",
                "role": "assistant",
                "model": "claude-3-haiku-20240307",
                "content": [{"type": "text", "text": "Hello from Anthropic"}],
                "usage": {"input_tokens": 30, "output_tokens": 5},
            },
        )
    )
    adapter = AnthropicChatAdapter(httpx.AsyncClient(transport=transport))

    response = await adapter.complete(_request(Provider.ANTHROPIC, "claude-3-haiku-20240307"))

    _assert_normalized(response, Provider.ANTHROPIC)
    assert response.content == "Hello from Anthropic"
    assert response.usage.prompt_tokens == 30
    assert response.usage.completion_tokens == 5
    assert response.usage.total_tokens == 35

    request = transport.requests[0]
    assert request.url.path == "/v1/messages"
    assert request.headers["x-api-key"] == "secret-key-for-tests"
    assert request.headers["anthropic-version"] == "2023-06-01"
    body = transport.json_bodies()[0]
    assert body["system"] == SYSTEM_PROMPT
    assert body["messages"] == [{"role": "user", "content": "hello"}]
    assert body["max_tokens"] == 1000


@pytest.mark.asyncio
async def test_anthropic_completions_style():
    transport = RecordingTransport(
        lambda request: httpx.Response(
            200,
            json={
                "completion": " Hello from the legacy endpoint",
                "model": "claude-2.1",
                "usage": {"prompt_tokens": 12, "completion_tokens": 4},
            },
        )
    )
    adapter = AnthropicChatAdapter(
        httpx.AsyncClient(transport=transport), api_style=AnthropicApiStyle.COMPLETIONS
    )
    messages = [
        {"role": "system", "content": "ignored"},
        {"role": "user", "content": "hello"},
        {"role": "assistant", "content": "hi"},
        {"role": "user", "content": "what is a set-aside?"},
    ]

    response = await adapter.complete(_request(Provider.ANTHROPIC, "claude-2.1", messages))

    _assert_normalized(response, Provider.ANTHROPIC)
    assert response.usage.total_tokens == 16

    assert transport.requests[0].url.path == "/v1/complete"
    body = transport.json_bodies()[0]
    assert body["prompt"] == (
        f"{SYSTEM_PROMPT}\n\nHuman: hello\n\nAssistant: hi\n\n"
        "Human: what is a set-aside?\n\nAssistant:"
    )
    assert body["stop_sequences"] == ["\nHuman:"]
    assert body["max_tokens_to_sample"] == 1000


@pytest.mark.asyncio
@pytest.mark.parametrize("usage", [None, "n/a", [1, 2]])
async def test_anthropic_malformed_usage_reports_zero_tokens(usage):
    transport = RecordingTransport(
        lambda request: httpx.Response(
            200,
            json={"content": [{"type": "text", "text": "ok"}], "usage": usage},
        )
    )
    adapter = AnthropicChatAdapter(httpx.AsyncClient(transport=transport))

    response = await adapter.complete(_request(Provider.ANTHROPIC, "claude-3-haiku-20240307"))

    assert response.content == "ok"
    assert response.usage.total_tokens == 0


@pytest.mark.asyncio
async def test_anthropic_error_message_extracted():
    transport = RecordingTransport(
        lambda request: httpx.Response(
            400,
            json={"type": "error", "error": {"type": "invalid_request_error", "message": "max_tokens too large"}},
        )
    )
    adapter = AnthropicChatAdapter(httpx.AsyncClient(transport=transport))

    with pytest.raises(ProviderError) as exc_info:
        await adapter.complete(_request(Provider.ANTHROPIC, "claude-3-haiku-20240307"))

    assert exc_info.value.status == 400
    assert exc_info.value.upstream_message == "max_tokens too large"


@pytest.mark.asyncio
async def test_unparseable_error_body_falls_back_to_reason_phrase():
    transport = RecordingTransport(lambda request: httpx.Response(502, text="<html>bad gateway</html>"))
    adapter = AnthropicChatAdapter(httpx.AsyncClient(transport=transport))

    with pytest.raises(ProviderError) as exc_info:
        await adapter.complete(_request(Provider.ANTHROPIC, "claude-3-haiku-20240307"))

    assert exc_info.value.status == 502
    assert exc_info.value.upstream_message == "Bad Gateway"


# ---------------------------------------------------------------------------
# Hugging Face
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        [{"generated_text": "  Hello from Hugging Face  "}],
        {"generated_text": "  Hello from Hugging Face  "},
    ],
)
async def test_huggingface_accepts_list_or_object(payload):
    transport = RecordingTransport(lambda request: httpx.Response(200, json=payload))
    adapter = HuggingFaceChatAdapter(httpx.AsyncClient(transport=transport))

    response = await adapter.complete(_request(Provider.HUGGINGFACE, "mistralai/Mistral-7B-Instruct-v0.2"))

    _assert_normalized(response, Provider.HUGGINGFACE)
    assert response.content == "Hello from Hugging Face"
    assert response.usage.model_dump() == {
        "prompt_tokens": 0,
        "completion_tokens": 0,
        "total_tokens": 0,
    }

    request = transport.requests[0]
    assert request.url.path == "/models/mistralai/Mistral-7B-Instruct-v0.2"
    assert request.headers["authorization"] == "Bearer secret-key-for-tests"
    body = transport.json_bodies()[0]
    assert body["inputs"] == render_transcript(_request(Provider.HUGGINGFACE, "m").conversation())
    assert body["parameters"]["return_full_text"] is False
    assert body["parameters"]["max_new_tokens"] == 1000


@pytest.mark.asyncio
async def test_huggingface_error_string_body():
    transport = RecordingTransport(
        lambda request: httpx.Response(401, json={"error": "Authorization header is invalid"})
    )
    adapter = HuggingFaceChatAdapter(httpx.AsyncClient(transport=transport))

    with pytest.raises(ProviderError) as exc_info:
        await adapter.complete(_request(Provider.HUGGINGFACE, "gpt2"))

    assert exc_info.value.provider == "huggingface"
    assert exc_info.value.status == 401
    assert exc_info.value.upstream_message == "Authorization header is invalid"


@pytest.mark.asyncio
async def test_huggingface_missing_generated_text():
    transport = RecordingTransport(lambda request: httpx.Response(200, json=[]))
    adapter = HuggingFaceChatAdapter(httpx.AsyncClient(transport=transport))

    with pytest.raises(ProviderError):
        await adapter.complete(_request(Provider.HUGGINGFACE, "gpt2"))
