"""
Hugging Face Inference API adapter.

The conversation is flattened into one ``inputs`` string and posted to the
per-model endpoint. The API answers either ``[{"generated_text": ...}]`` or
``{"generated_text": ...}``; both are accepted here so nothing downstream
sees the difference. Token counts are not reported, so usage is all zero.
"""

from __future__ import annotations

from typing import Any

import httpx

from shared.errors import ProviderError
from shared.llm_adapter.base import ChatAdapter, post_json
from shared.llm_adapter.models import Provider, ProviderRequest, ProviderResponse, Usage
from shared.llm_adapter.prompts import render_transcript

DEFAULT_BASE_URL = "https://api-inference.huggingface.co/models"


def _generated_text(data: Any) -> str | None:
    if isinstance(data, list):
        data = data[0] if data else None
    if isinstance(data, dict):
        text = data.get("generated_text")
        if isinstance(text, str):
            return text
    return None


class HuggingFaceChatAdapter(ChatAdapter):
    provider = Provider.HUGGINGFACE

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str = DEFAULT_BASE_URL,
    ) -> None:
        self._http = http_client
        self._base_url = base_url.rstrip("/")

    @staticmethod
    def build_payload(request: ProviderRequest) -> dict[str, Any]:
        return {
            "inputs": render_transcript(request.conversation()),
            "parameters": {
                "max_new_tokens": request.max_tokens,
                "temperature": request.temperature,
                "return_full_text": False,
            },
        }

    async def complete(self, request: ProviderRequest) -> ProviderResponse:
        data = await post_json(
            self._http,
            self.provider,
            f"{self._base_url}/{request.model}",
            self.build_payload(request),
            {
                "Authorization": f"Bearer {request.api_key.get_secret_value()}",
                "Content-Type": "application/json",
            },
        )

        text = _generated_text(data)
        if text is None:
            raise ProviderError(
                self.provider.value, 200, "Response did not contain generated_text"
            )

        return ProviderResponse(
            content=text.strip(),
            usage=Usage(),
            model=request.model,
            provider=self.provider,
        )
