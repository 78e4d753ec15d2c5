"""
OpenAI Chat Completions adapter.

Uses the official SDK on top of the gateway's shared httpx.AsyncClient so
connection pooling, timeouts and test transports are owned by the process.
SDK-level retries are disabled: failures surface to the caller unchanged.

The system prompt is sent as the first message of the conversation.
"""

from __future__ import annotations

import logging
from time import perf_counter

import httpx
from openai import APIConnectionError, APIStatusError, AsyncOpenAI

from shared.errors import ProviderError, TransportError
from shared.llm_adapter.base import ChatAdapter
from shared.llm_adapter.models import (
    ChatRole,
    Provider,
    ProviderRequest,
    ProviderResponse,
    Usage,
)
from shared.llm_adapter.prompts import SYSTEM_PROMPT
from shared.observability.metrics import upstream_latency

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"


def make_openai_client(
    http_client: httpx.AsyncClient,
    api_key: str,
    base_url: str = DEFAULT_BASE_URL,
    timeout: float = 30.0,
) -> AsyncOpenAI:
    """Per-call SDK client; cheap because the transport is shared."""
    return AsyncOpenAI(
        api_key=api_key,
        base_url=base_url,
        http_client=http_client,
        max_retries=0,
        timeout=timeout,
    )


def translate_openai_error(exc: Exception, upstream: str = "openai") -> Exception:
    """Map SDK exceptions onto the gateway error taxonomy."""
    if isinstance(exc, APIStatusError):
        body = exc.body
        message = ""
        if isinstance(body, dict) and body.get("message"):
            message = str(body["message"])
        elif isinstance(body, str) and body:
            message = body
        if not message:
            message = exc.response.reason_phrase or f"HTTP {exc.status_code}"
        return ProviderError(upstream, exc.status_code, message, body=exc.response.text[:2000])
    if isinstance(exc, APIConnectionError):
        detail = str(exc.__cause__ or exc)
        return TransportError(upstream, detail)
    return exc


class OpenAIChatAdapter(ChatAdapter):
    provider = Provider.OPENAI

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
    ) -> None:
        self._http = http_client
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    @staticmethod
    def build_messages(request: ProviderRequest) -> list[dict[str, str]]:
        messages = [{"role": "system", "content": SYSTEM_PROMPT}]
        for turn in request.conversation():
            role = "assistant" if turn.role == ChatRole.ASSISTANT else "user"
            messages.append({"role": role, "content": turn.content})
        return messages

    async def complete(self, request: ProviderRequest) -> ProviderResponse:
        client = make_openai_client(
            self._http,
            request.api_key.get_secret_value(),
            base_url=self._base_url,
            timeout=self._timeout,
        )

        started = perf_counter()
        try:
            response = await client.chat.completions.create(
                model=request.model,
                messages=self.build_messages(request),
                temperature=request.temperature,
                max_tokens=request.max_tokens,
                stream=False,
            )
        except (APIStatusError, APIConnectionError) as exc:
            error = translate_openai_error(exc)
            logger.warning("OpenAI chat completion failed (%s)", type(error).__name__)
            raise error from exc
        finally:
            upstream_latency.labels(upstream=self.provider.value).observe(
                perf_counter() - started
            )

        if not response.choices:
            raise ProviderError(self.provider.value, 200, "Response contained no choices")

        choice = response.choices[0]
        usage = response.usage

        return ProviderResponse(
            content=choice.message.content or "",
            usage=Usage(
                prompt_tokens=usage.prompt_tokens if usage else 0,
                completion_tokens=usage.completion_tokens if usage else 0,
                total_tokens=usage.total_tokens if usage else 0,
            ),
            model=response.model or request.model,
            provider=self.provider,
        )
