"""
Embedding caching layer.

Vectors are cached by (backend, text) so identical text for the same backend
never reaches the upstream twice. The cache is size-bounded: once it grows
past ``max_entries`` the oldest entries are dropped, keeping the most recent
half. Insertion order is the age order.
"""

from __future__ import annotations

import hashlib
import logging
import threading

from shared.llm_adapter.models import EmbeddingBackend
from shared.observability.metrics import embedding_cache_lookups

logger = logging.getLogger(__name__)


class EmbeddingCache:
    """In-process (backend, text) -> vector map with bounded size."""

    def __init__(self, max_entries: int = 1000) -> None:
        if max_entries < 2:
            raise ValueError("max_entries must be at least 2")
        self.max_entries = max_entries
        self._entries: dict[str, list[float]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _make_key(backend: EmbeddingBackend, text: str) -> str:
        digest = hashlib.sha256(text.encode()).hexdigest()
        return f"embedding:{backend.value}:{digest}"

    def get(self, backend: EmbeddingBackend, text: str) -> list[float] | None:
        key = self._make_key(backend, text)
        with self._lock:
            vector = self._entries.get(key)
        if vector is None:
            embedding_cache_lookups.labels(backend=backend.value, result="miss").inc()
            logger.debug("Embedding cache MISS for key %s", key[:40])
            return None
        embedding_cache_lookups.labels(backend=backend.value, result="hit").inc()
        return list(vector)

    def put(self, backend: EmbeddingBackend, text: str, vector: list[float]) -> None:
        key = self._make_key(backend, text)
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = list(vector)
            if len(self._entries) > self.max_entries:
                keep = self.max_entries // 2
                dropped = len(self._entries) - keep
                self._entries = dict(list(self._entries.items())[-keep:])
                logger.debug("Embedding cache trimmed %d oldest entries", dropped)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, item: tuple[EmbeddingBackend, str]) -> bool:
        backend, text = item
        return self._make_key(backend, text) in self._entries
