"""
Chat gateway: one entry point in front of every chat adapter.

Responsibilities, in order:
1. Consult the chat rate limiter for the caller (fail fast with RateLimited)
2. Validate and normalize the inbound fields into a ProviderRequest
3. Dispatch to the adapter registered for the provider tag
4. Return the adapter's ProviderResponse untouched

There is no cache on this path: every call reaches the provider.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from shared.errors import ProviderError, ValidationError
from shared.llm_adapter.base import ChatAdapter
from shared.llm_adapter.models import ChatTurn, Provider, ProviderRequest, ProviderResponse
from shared.observability.metrics import llm_tokens
from shared.utils.rate_limiter import FixedWindowRateLimiter

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 1000


def parse_provider(name: str | Provider | None) -> Provider:
    if isinstance(name, Provider):
        return name
    if not name or not str(name).strip():
        raise ValidationError("Missing provider")
    try:
        return Provider(str(name).strip().lower())
    except ValueError:
        raise ValidationError(f"Unsupported provider: {name}") from None


def parse_model_spec(spec: str | None) -> tuple[Provider, str]:
    """Split a combined ``provider:model`` string."""
    if not spec or ":" not in spec:
        raise ValidationError('Invalid model format. Use "provider:model" format.')
    provider, model = spec.split(":", 1)
    if not provider or not model:
        raise ValidationError('Invalid model format. Use "provider:model" format.')
    return parse_provider(provider), model


def _scrub(text: str, secret: str) -> str:
    if secret and secret in text:
        return text.replace(secret, "***")
    return text


class ChatGateway:
    def __init__(
        self,
        adapters: Mapping[Provider, ChatAdapter],
        rate_limiter: FixedWindowRateLimiter | None = None,
        default_api_keys: Mapping[Provider, str] | None = None,
    ) -> None:
        self._adapters = dict(adapters)
        self._rate_limiter = rate_limiter
        self._default_api_keys = {k: v for k, v in (default_api_keys or {}).items() if v}

    def has_default_key(self, provider: Provider) -> bool:
        return provider in self._default_api_keys

    def build_request(
        self,
        provider: str | Provider | None,
        model: str | None,
        messages: Sequence[ChatTurn | Mapping[str, Any]] | None,
        api_key: str | None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ProviderRequest:
        """Validate inbound fields; nothing here touches the network."""
        resolved = parse_provider(provider)
        if resolved not in self._adapters:
            raise ValidationError(f"Unsupported provider: {resolved.value}")

        key = api_key or self._default_api_keys.get(resolved)
        if not key:
            raise ValidationError("Missing API key")

        if not model or not str(model).strip():
            raise ValidationError("Missing model parameter")

        if not messages or isinstance(messages, (str, bytes)) or not isinstance(messages, Sequence):
            raise ValidationError("Missing or invalid messages array")

        try:
            return ProviderRequest(
                provider=resolved,
                model=str(model).strip(),
                messages=list(messages),
                temperature=DEFAULT_TEMPERATURE if temperature is None else temperature,
                max_tokens=DEFAULT_MAX_TOKENS if max_tokens is None else max_tokens,
                api_key=key,
            )
        except PydanticValidationError as exc:
            details = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in exc.errors()
            )
            raise ValidationError(f"Invalid chat request: {details}") from None

    def preflight(
        self,
        provider: str | Provider | None,
        model: str | None,
        messages: Sequence[ChatTurn | Mapping[str, Any]] | None,
        api_key: str | None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        caller: str | None = None,
    ) -> ProviderRequest:
        """Rate-limit and validate without calling the provider."""
        if self._rate_limiter is not None:
            self._rate_limiter.check(caller)
        return self.build_request(
            provider, model, messages, api_key, temperature, max_tokens
        )

    async def complete(
        self,
        provider: str | Provider | None,
        model: str | None,
        messages: Sequence[ChatTurn | Mapping[str, Any]] | None,
        api_key: str | None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        caller: str | None = None,
    ) -> ProviderResponse:
        request = self.preflight(
            provider, model, messages, api_key, temperature, max_tokens, caller
        )
        return await self.dispatch(request)

    async def dispatch(self, request: ProviderRequest) -> ProviderResponse:
        adapter = self._adapters[request.provider]
        logger.info(
            "Chat completion via %s (model=%s, turns=%d)",
            request.provider.value,
            request.model,
            len(request.messages),
        )
        try:
            response = await adapter.complete(request)
        except ProviderError as exc:
            secret = request.api_key.get_secret_value()
            exc.upstream_message = _scrub(exc.upstream_message, secret)
            exc.message = _scrub(exc.message, secret)
            exc.args = (exc.message,)
            raise

        llm_tokens.labels(provider=request.provider.value, direction="prompt").inc(
            response.usage.prompt_tokens
        )
        llm_tokens.labels(provider=request.provider.value, direction="completion").inc(
            response.usage.completion_tokens
        )
        return response
