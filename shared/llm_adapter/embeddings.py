"""
Text -> vector conversion for semantic ranking.

Two backends are supported:

  openai-embeddings   OpenAI embeddings endpoint via the SDK
                      (text-embedding-3-small, float encoding)
  hf-embeddings       Hugging Face feature-extraction pipeline for
                      sentence-transformers/all-MiniLM-L6-v2

Results are cached per (backend, text). Concurrent calls for the same
(backend, text) share one upstream request. There is no retry here: any
upstream failure propagates to every caller waiting on it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from time import perf_counter
from typing import Any

import httpx
from openai import APIConnectionError, APIStatusError

from shared.errors import TransportError, UpstreamError, ValidationError
from shared.llm_adapter.base import extract_error_message
from shared.llm_adapter.cache import EmbeddingCache
from shared.llm_adapter.models import EmbeddingBackend
from shared.llm_adapter.openai_provider import (
    DEFAULT_BASE_URL as OPENAI_BASE_URL,
    make_openai_client,
    translate_openai_error,
)
from shared.observability.metrics import upstream_latency

logger = logging.getLogger(__name__)

DEFAULT_OPENAI_MODEL = "text-embedding-3-small"
DEFAULT_HF_URL = (
    "https://api-inference.huggingface.co/pipeline/feature-extraction/"
    "sentence-transformers/all-MiniLM-L6-v2"
)


def _as_vector(data: Any) -> list[float] | None:
    """Unwrap ``[[...]]`` to its first row and coerce to floats."""
    if isinstance(data, list) and data and isinstance(data[0], list):
        data = data[0]
    if not isinstance(data, list) or not data:
        return None
    try:
        return [float(x) for x in data]
    except (TypeError, ValueError):
        return None


@dataclass
class _InFlight:
    task: asyncio.Task
    waiters: int = 0


class EmbeddingClient:
    def __init__(
        self,
        http_client: httpx.AsyncClient,
        cache: EmbeddingCache | None = None,
        openai_base_url: str = OPENAI_BASE_URL,
        openai_model: str = DEFAULT_OPENAI_MODEL,
        hf_url: str = DEFAULT_HF_URL,
        timeout: float = 30.0,
    ) -> None:
        self._http = http_client
        self._cache = cache if cache is not None else EmbeddingCache()
        self._openai_base_url = openai_base_url.rstrip("/")
        self._openai_model = openai_model
        self._hf_url = hf_url
        self._timeout = timeout
        self._inflight: dict[tuple[EmbeddingBackend, str], _InFlight] = {}

    @property
    def cache(self) -> EmbeddingCache:
        return self._cache

    async def embed(
        self,
        text: str,
        backend: EmbeddingBackend | str,
        api_key: str | None,
    ) -> list[float]:
        if isinstance(backend, str) and not isinstance(backend, EmbeddingBackend):
            try:
                backend = EmbeddingBackend.parse(backend)
            except ValueError:
                raise ValidationError(f"Unsupported embedding provider: {backend}") from None

        cached = self._cache.get(backend, text)
        if cached is not None:
            return cached

        if not api_key:
            raise ValidationError(f"Missing API key for {backend.value}")

        key = (backend, text)
        entry = self._inflight.get(key)
        if entry is None:
            entry = _InFlight(asyncio.ensure_future(self._fetch(backend, text, api_key)))
            self._inflight[key] = entry
            entry.task.add_done_callback(lambda _task: self._forget(key, entry))

        # The upstream request is cancelled only once its last waiter goes away.
        entry.waiters += 1
        try:
            vector = await asyncio.shield(entry.task)
        finally:
            entry.waiters -= 1
            if entry.waiters == 0 and not entry.task.done():
                entry.task.cancel()
        return list(vector)

    @property
    def in_flight(self) -> int:
        return len(self._inflight)

    def _forget(self, key: tuple[EmbeddingBackend, str], entry: _InFlight) -> None:
        if self._inflight.get(key) is entry:
            del self._inflight[key]

    async def _fetch(self, backend: EmbeddingBackend, text: str, api_key: str) -> list[float]:
        if backend == EmbeddingBackend.OPENAI:
            vector = await self._embed_openai(text, api_key)
        else:
            vector = await self._embed_huggingface(text, api_key)

        self._cache.put(backend, text, vector)
        return vector

    async def _embed_openai(self, text: str, api_key: str) -> list[float]:
        upstream = EmbeddingBackend.OPENAI.value
        client = make_openai_client(
            self._http, api_key, base_url=self._openai_base_url, timeout=self._timeout
        )
        started = perf_counter()
        try:
            response = await client.embeddings.create(
                model=self._openai_model,
                input=text,
                encoding_format="float",
            )
        except (APIStatusError, APIConnectionError) as exc:
            error = translate_openai_error(exc, upstream=upstream)
            logger.warning("OpenAI embedding failed (%s)", type(error).__name__)
            raise error from exc
        finally:
            upstream_latency.labels(upstream=upstream).observe(perf_counter() - started)

        vector = _as_vector(response.data[0].embedding) if response.data else None
        if vector is None:
            raise UpstreamError(upstream, 200, "Response contained no embedding")
        return vector

    async def _embed_huggingface(self, text: str, api_key: str) -> list[float]:
        upstream = EmbeddingBackend.HUGGINGFACE.value
        started = perf_counter()
        try:
            resp = await self._http.post(
                self._hf_url,
                json={"inputs": text, "options": {"wait_for_model": True}},
                headers={
                    "Authorization": f"Bearer {api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self._timeout,
            )
        except httpx.TransportError as exc:
            logger.warning("%s transport failure: %s", upstream, type(exc).__name__)
            raise TransportError(upstream, str(exc) or type(exc).__name__) from exc
        finally:
            upstream_latency.labels(upstream=upstream).observe(perf_counter() - started)

        if not resp.is_success:
            message = extract_error_message(resp)
            logger.warning("%s returned HTTP %d", upstream, resp.status_code)
            raise UpstreamError(upstream, resp.status_code, message, body=resp.text[:2000])

        try:
            data = resp.json()
        except ValueError as exc:
            raise UpstreamError(upstream, resp.status_code, "Invalid JSON in response") from exc

        vector = _as_vector(data)
        if vector is None:
            raise UpstreamError(upstream, resp.status_code, "Response contained no embedding")
        return vector
