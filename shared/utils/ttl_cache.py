"""
Time-boxed in-memory result cache.

Entries are valid while ``now - stored_at < ttl``. get() applies that rule
itself, so an expired entry is a miss even before the sweeper has run; the
background sweep only reclaims memory.

Keys are built by canonical_key(), which serialises a filter mapping with
sorted keys so that equal filters hit the same entry regardless of
insertion order.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TTL_SECONDS = 5 * 60
DEFAULT_SWEEP_INTERVAL_SECONDS = 5 * 60


def canonical_key(filters: Mapping[str, Any], namespace: str = "search") -> str:
    """
    Deterministic cache key for a filter mapping.

    None-valued entries are dropped so an explicit ``None`` and an absent
    field address the same entry.
    """
    cleaned = {k: v for k, v in filters.items() if v is not None}
    raw = json.dumps(cleaned, sort_keys=True, separators=(",", ":"), default=str)
    return f"{namespace}:{hashlib.sha256(raw.encode()).hexdigest()}"


@dataclass
class CacheEntry(Generic[T]):
    value: T
    stored_at: float


class ResultCache(Generic[T]):
    """TTL cache with lazy expiry and an optional owned sweep task."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, CacheEntry[T]] = {}
        self._sweeper: asyncio.Task[None] | None = None

    def get(self, key: str) -> T | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.stored_at >= self.ttl_seconds:
                del self._entries[key]
                return None
            return entry.value

    def put(self, key: str, value: T) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(value=value, stored_at=self._clock())

    def sweep(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [
                k for k, e in self._entries.items()
                if now - e.stored_at >= self.ttl_seconds
            ]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("Swept %d expired cache entries", len(expired))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------
    # Background sweep
    # ------------------------------------------------------------------

    def start_sweeper(
        self, interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS
    ) -> asyncio.Task[None]:
        """Start the periodic sweep on the running loop. Idempotent."""
        if self._sweeper is not None and not self._sweeper.done():
            return self._sweeper
        self._sweeper = asyncio.create_task(
            self._sweep_forever(interval_seconds), name="result-cache-sweeper"
        )
        return self._sweeper

    async def stop_sweeper(self) -> None:
        task, self._sweeper = self._sweeper, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _sweep_forever(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                self.sweep()
            except Exception:
                logger.exception("Result cache sweep failed")
