from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: list[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)

    def json_bodies(self) -> list[Any]:
        return [json.loads(r.content) if r.content else None for r in self.requests]


def sam_record(index: int, title: str = "", description: str = "") -> dict[str, Any]:
    return {
        "noticeId": f"notice-{index}",
        "solicitationNumber": f"SOL-{index}",
        "title": title or f"Opportunity {index}",
        "description": description,
        "synopsis": None,
        "type": "Solicitation",
        "naicsCode": "541511",
        "active": "Yes",
    }


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
