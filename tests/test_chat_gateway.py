from __future__ import annotations

import pytest

from conftest import FakeClock
from shared.errors import ProviderError, RateLimited, ValidationError
from shared.llm_adapter.base import ChatAdapter
from shared.llm_adapter.gateway import ChatGateway, parse_model_spec
from shared.llm_adapter.models import Provider, ProviderRequest, ProviderResponse, Usage
from shared.utils.rate_limiter import FixedWindowRateLimiter

MESSAGES = [{"role": "user", "content": "hello"}]


class _EchoAdapter(ChatAdapter):
    def __init__(self, provider: Provider) -> None:
        self.provider = provider
        self.calls: list[ProviderRequest] = []

    async def complete(self, request: ProviderRequest) -> ProviderResponse:
        self.calls.append(request)
        return ProviderResponse(
            content=f"echo: {request.messages[-1].content}",
            usage=Usage(prompt_tokens=3, completion_tokens=2, total_tokens=5),
            model=request.model,
            provider=self.provider,
        )


class _FailingAdapter(ChatAdapter):
    provider = Provider.OPENAI

    async def complete(self, request: ProviderRequest) -> ProviderResponse:
        key = request.api_key.get_secret_value()
        raise ProviderError("openai", 401, f"Incorrect API key provided: {key}")


def _gateway(limiter: FixedWindowRateLimiter | None = None, **kwargs) -> tuple[ChatGateway, dict]:
    adapters = {p: _EchoAdapter(p) for p in Provider}
    return ChatGateway(adapters, rate_limiter=limiter, **kwargs), adapters


@pytest.mark.asyncio
async def test_dispatches_by_provider_tag():
    gateway, adapters = _gateway()

    response = await gateway.complete("anthropic", "claude-3-haiku", MESSAGES, "sk-ant-hidden")

    assert response.provider == Provider.ANTHROPIC
    assert response.content == "echo: hello"
    assert len(adapters[Provider.ANTHROPIC].calls) == 1
    assert adapters[Provider.OPENAI].calls == []

    request = adapters[Provider.ANTHROPIC].calls[0]
    assert request.temperature == 0.7
    assert request.max_tokens == 1000
    assert "sk-ant-hidden" not in repr(request)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "provider, model, messages, api_key",
    [
        ("openai", "gpt-4o-mini", [], "key"),
        ("openai", "gpt-4o-mini", None, "key"),
        ("openai", "gpt-4o-mini", "hello", "key"),
        ("openai", "", MESSAGES, "key"),
        ("openai", "gpt-4o-mini", MESSAGES, None),
        ("cohere", "command", MESSAGES, "key"),
        (None, "gpt-4o-mini", MESSAGES, "key"),
        ("openai", "gpt-4o-mini", [{"role": "robot", "content": "x"}], "key"),
    ],
)
async def test_invalid_requests_rejected_before_any_call(provider, model, messages, api_key):
    gateway, adapters = _gateway()

    with pytest.raises(ValidationError):
        await gateway.complete(provider, model, messages, api_key)

    assert all(a.calls == [] for a in adapters.values())


@pytest.mark.asyncio
async def test_out_of_range_temperature_is_validation_error():
    gateway, _ = _gateway()
    with pytest.raises(ValidationError) as exc_info:
        await gateway.complete("openai", "gpt-4o-mini", MESSAGES, "key", temperature=5)
    assert "temperature" in exc_info.value.message


@pytest.mark.asyncio
async def test_default_key_used_when_caller_sends_none():
    gateway, adapters = _gateway(default_api_keys={Provider.OPENAI: "env-key"})

    await gateway.complete("openai", "gpt-4o-mini", MESSAGES, None)

    assert adapters[Provider.OPENAI].calls[0].api_key.get_secret_value() == "env-key"
    assert gateway.has_default_key(Provider.OPENAI)
    assert not gateway.has_default_key(Provider.ANTHROPIC)


@pytest.mark.asyncio
async def test_rate_limit_checked_first(clock: FakeClock):
    limiter = FixedWindowRateLimiter("chat", max_requests=1, clock=clock)
    gateway, adapters = _gateway(limiter)

    await gateway.complete("openai", "gpt-4o-mini", MESSAGES, "key", caller="1.2.3.4")
    with pytest.raises(RateLimited):
        await gateway.complete("openai", "gpt-4o-mini", MESSAGES, "key", caller="1.2.3.4")
    with pytest.raises(RateLimited):
        await gateway.complete("openai", "", [], None, caller="1.2.3.4")

    assert len(adapters[Provider.OPENAI].calls) == 1
    await gateway.complete("openai", "gpt-4o-mini", MESSAGES, "key", caller="5.6.7.8")


@pytest.mark.asyncio
async def test_provider_error_keeps_status_and_scrubs_key():
    gateway = ChatGateway({Provider.OPENAI: _FailingAdapter()})

    with pytest.raises(ProviderError) as exc_info:
        await gateway.complete("openai", "gpt-4o-mini", MESSAGES, "sk-live-super-secret")

    err = exc_info.value
    assert err.status == 401
    assert "sk-live-super-secret" not in err.message
    assert "sk-live-super-secret" not in str(err)
    assert "sk-live-super-secret" not in str(err.to_dict())


def test_preflight_validates_without_dispatch():
    gateway, adapters = _gateway()
    request = gateway.preflight("huggingface", "gpt2", MESSAGES, "key")
    assert request.provider == Provider.HUGGINGFACE
    assert all(a.calls == [] for a in adapters.values())


def test_parse_model_spec():
    assert parse_model_spec("openai:gpt-4") == (Provider.OPENAI, "gpt-4")
    assert parse_model_spec("huggingface:org/model:v1") == (Provider.HUGGINGFACE, "org/model:v1")
    for bad in ("gpt-4", "openai:", ":gpt-4", None):
        with pytest.raises(ValidationError):
            parse_model_spec(bad)
    with pytest.raises(ValidationError):
        parse_model_spec("cohere:command")
