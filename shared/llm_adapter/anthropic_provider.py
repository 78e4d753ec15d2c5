"""
Anthropic adapter.

Two wire styles are supported; which one is used depends on the endpoint
the gateway is configured against:

  messages     POST {base}/messages   system field + structured messages
  completions  POST {base}/complete   single Human/Assistant prompt string

Both report usage under their own field names; the adapter sums them into
total_tokens.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

import httpx

from shared.errors import ProviderError
from shared.llm_adapter.base import ChatAdapter, post_json
from shared.llm_adapter.models import (
    ChatRole,
    Provider,
    ProviderRequest,
    ProviderResponse,
    Usage,
)
from shared.llm_adapter.prompts import STOP_SEQUENCE, SYSTEM_PROMPT, render_transcript

DEFAULT_BASE_URL = "https://api.anthropic.com/v1"
ANTHROPIC_VERSION = "2023-06-01"


class AnthropicApiStyle(str, Enum):
    MESSAGES = "messages"
    COMPLETIONS = "completions"


def _int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


class AnthropicChatAdapter(ChatAdapter):
    provider = Provider.ANTHROPIC

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str = DEFAULT_BASE_URL,
        api_style: AnthropicApiStyle = AnthropicApiStyle.MESSAGES,
    ) -> None:
        self._http = http_client
        self._base_url = base_url.rstrip("/")
        self.api_style = AnthropicApiStyle(api_style)

    @staticmethod
    def _headers(api_key: str) -> dict[str, str]:
        return {
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }

    def build_payload(self, request: ProviderRequest) -> dict[str, Any]:
        if self.api_style == AnthropicApiStyle.COMPLETIONS:
            return {
                "model": request.model,
                "prompt": render_transcript(request.conversation()),
                "max_tokens_to_sample": request.max_tokens,
                "temperature": request.temperature,
                "stop_sequences": [STOP_SEQUENCE],
            }
        return {
            "model": request.model,
            "system": SYSTEM_PROMPT,
            "messages": [
                {
                    "role": "assistant" if t.role == ChatRole.ASSISTANT else "user",
                    "content": t.content,
                }
                for t in request.conversation()
            ],
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }

    def _endpoint(self) -> str:
        if self.api_style == AnthropicApiStyle.COMPLETIONS:
            return f"{self._base_url}/complete"
        return f"{self._base_url}/messages"

    async def complete(self, request: ProviderRequest) -> ProviderResponse:
        data = await post_json(
            self._http,
            self.provider,
            self._endpoint(),
            self.build_payload(request),
            self._headers(request.api_key.get_secret_value()),
        )
        if not isinstance(data, dict):
            raise ProviderError(self.provider.value, 200, "Unexpected response shape")

        if self.api_style == AnthropicApiStyle.COMPLETIONS:
            content = data.get("completion") or ""
        else:
            blocks = data.get("content") or []
            content = "".join(
                str(b.get("text", ""))
                for b in blocks
                if isinstance(b, dict) and b.get("type", "text") == "text"
            )

        usage = data.get("usage")
        if not isinstance(usage, dict):
            usage = {}
        prompt_tokens = _int(usage.get("input_tokens", usage.get("prompt_tokens")))
        completion_tokens = _int(usage.get("output_tokens", usage.get("completion_tokens")))

        return ProviderResponse(
            content=content,
            usage=Usage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
            model=data.get("model") or request.model,
            provider=self.provider,
        )
