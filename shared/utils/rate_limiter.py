"""
Per-caller fixed-window request limiter.

Each caller identity owns a window {count, window_start}. The first call
in a fresh window sets count=1; later calls increment until max_requests is
reached, after which calls are rejected until the window elapses. Rejection
is immediate: nothing is queued.

The increment-and-compare happens under a lock and never awaits, so it is
atomic both for interleaved coroutines on one event loop and for threads.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from shared.errors import RateLimited
from shared.observability.metrics import rate_limit_rejections

logger = logging.getLogger(__name__)

UNKNOWN_IDENTITY = "unknown"


@dataclass
class RateWindow:
    count: int
    window_start: float


class FixedWindowRateLimiter:
    """Fixed-window counter keyed by caller identity."""

    def __init__(
        self,
        name: str,
        max_requests: int,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_requests <= 0 or window_seconds <= 0:
            raise ValueError("max_requests and window_seconds must be positive")
        self.name = name
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: dict[str, RateWindow] = {}

    def allow(self, identity: str | None) -> bool:
        key = identity or UNKNOWN_IDENTITY
        with self._lock:
            now = self._clock()
            window = self._windows.get(key)

            if window is None or now - window.window_start > self.window_seconds:
                self._windows[key] = RateWindow(count=1, window_start=now)
                return True

            if window.count >= self.max_requests:
                return False

            window.count += 1
            return True

    def check(self, identity: str | None) -> None:
        """Like allow(), but raise RateLimited on rejection."""
        if self.allow(identity):
            return
        retry_after = self.retry_after(identity)
        rate_limit_rejections.labels(limiter=self.name).inc()
        logger.info(
            "Rate limit '%s' exceeded for caller %s (retry in %.1fs)",
            self.name,
            identity or UNKNOWN_IDENTITY,
            retry_after,
        )
        raise RateLimited(self.name, retry_after)

    def retry_after(self, identity: str | None) -> float:
        key = identity or UNKNOWN_IDENTITY
        with self._lock:
            window = self._windows.get(key)
            if window is None:
                return 0.0
            remaining = window.window_start + self.window_seconds - self._clock()
            return max(0.0, remaining)

    def snapshot(self, identity: str | None) -> RateWindow | None:
        with self._lock:
            window = self._windows.get(identity or UNKNOWN_IDENTITY)
            if window is None:
                return None
            return RateWindow(count=window.count, window_start=window.window_start)

    def __len__(self) -> int:
        return len(self._windows)


def client_identity(
    forwarded_for: str | None,
    real_ip: str | None = None,
    peer: str | None = None,
) -> str:
    """Derive the rate-limit bucket from forwarding headers or the peer address."""
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    if real_ip and real_ip.strip():
        return real_ip.strip()
    if peer:
        return peer
    return UNKNOWN_IDENTITY
