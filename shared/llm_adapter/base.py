"""Abstract base class that all chat adapters must implement."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from time import perf_counter
from typing import Any

import httpx

from shared.errors import ProviderError, TransportError
from shared.llm_adapter.models import Provider, ProviderRequest, ProviderResponse
from shared.observability.metrics import upstream_latency

logger = logging.getLogger(__name__)


class ChatAdapter(ABC):
    """
    Contract for chat-completion providers.

    Every implementation MUST:
    - Inject the shared system prompt in the provider's native position
    - Return a fully populated ProviderResponse (usage defaults to zeros)
    - Raise ProviderError for non-2xx answers, keeping the upstream status
    """

    provider: Provider

    @abstractmethod
    async def complete(self, request: ProviderRequest) -> ProviderResponse:
        """Send the conversation and return the normalized reply."""


def extract_error_message(response: httpx.Response) -> str:
    """
    Pull a human-readable message out of a provider error body.

    Handles ``{"error": {"message": ...}}`` (OpenAI, Anthropic) and
    ``{"error": "..."}`` (Hugging Face); otherwise falls back to the
    HTTP reason phrase.
    """
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        if body.get("message"):
            return str(body["message"])
    return response.reason_phrase or f"HTTP {response.status_code}"


async def post_json(
    client: httpx.AsyncClient,
    provider: Provider,
    url: str,
    payload: dict[str, Any],
    headers: dict[str, str],
) -> Any:
    """POST a JSON payload and return the decoded body or raise a GatewayError."""
    started = perf_counter()
    try:
        resp = await client.post(url, json=payload, headers=headers)
    except httpx.TransportError as exc:
        logger.warning("%s transport failure: %s", provider.value, type(exc).__name__)
        raise TransportError(provider.value, str(exc) or type(exc).__name__) from exc
    finally:
        upstream_latency.labels(upstream=provider.value).observe(perf_counter() - started)

    if not resp.is_success:
        message = extract_error_message(resp)
        logger.warning("%s returned HTTP %d", provider.value, resp.status_code)
        raise ProviderError(provider.value, resp.status_code, message, body=resp.text[:2000])

    try:
        return resp.json()
    except ValueError as exc:
        raise ProviderError(
            provider.value, resp.status_code, "Invalid JSON in provider response"
        ) from exc
