"""
Adapter factory -- single place where the provider registry is assembled.

Returns one ChatAdapter per Provider value, all sharing the process-wide
httpx.AsyncClient:

  openai       OpenAI Chat Completions via the official SDK
  anthropic    Anthropic messages or legacy completions endpoint,
               selected by ANTHROPIC_API_STYLE
  huggingface  Hugging Face Inference API, per-model endpoint

Adding a provider means adding one Provider member and one entry here.
"""

from __future__ import annotations

import logging

import httpx

from shared.llm_adapter.anthropic_provider import (
    DEFAULT_BASE_URL as ANTHROPIC_BASE_URL,
    AnthropicApiStyle,
    AnthropicChatAdapter,
)
from shared.llm_adapter.base import ChatAdapter
from shared.llm_adapter.huggingface_provider import (
    DEFAULT_BASE_URL as HUGGINGFACE_BASE_URL,
    HuggingFaceChatAdapter,
)
from shared.llm_adapter.models import Provider
from shared.llm_adapter.openai_provider import (
    DEFAULT_BASE_URL as OPENAI_BASE_URL,
    OpenAIChatAdapter,
)

logger = logging.getLogger(__name__)


def build_chat_adapters(
    http_client: httpx.AsyncClient,
    openai_base_url: str = OPENAI_BASE_URL,
    anthropic_base_url: str = ANTHROPIC_BASE_URL,
    anthropic_api_style: AnthropicApiStyle | str = AnthropicApiStyle.MESSAGES,
    huggingface_base_url: str = HUGGINGFACE_BASE_URL,
    timeout: float = 30.0,
) -> dict[Provider, ChatAdapter]:
    adapters: dict[Provider, ChatAdapter] = {
        Provider.OPENAI: OpenAIChatAdapter(
            http_client, base_url=openai_base_url, timeout=timeout
        ),
        Provider.ANTHROPIC: AnthropicChatAdapter(
            http_client,
            base_url=anthropic_base_url,
            api_style=AnthropicApiStyle(anthropic_api_style),
        ),
        Provider.HUGGINGFACE: HuggingFaceChatAdapter(
            http_client, base_url=huggingface_base_url
        ),
    }
    logger.info(
        "Chat adapters initialized: %s (anthropic style=%s)",
        ", ".join(p.value for p in adapters),
        AnthropicApiStyle(anthropic_api_style).value,
    )
    return adapters
