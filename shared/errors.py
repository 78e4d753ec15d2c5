"""
Error taxonomy shared by the chat gateway and the opportunity search path.

Every failure that crosses the core boundary is a GatewayError subclass.
Each carries the HTTP status the gateway service should answer with and a
to_dict() rendering that never contains caller credentials.
"""

from __future__ import annotations

from typing import Any


class GatewayError(Exception):
    """Base class for all structured gateway failures."""

    http_status: int = 500
    kind: str = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "type": self.kind}


class ValidationError(GatewayError):
    """Malformed or missing input. Never retried."""

    http_status = 400
    kind = "validation_error"


class DimensionMismatch(ValidationError):
    """Two embedding vectors of different length were compared."""

    kind = "dimension_mismatch"

    def __init__(self, left: int, right: int) -> None:
        super().__init__(
            f"Vectors must have the same length (got {left} and {right})"
        )
        self.left = left
        self.right = right


class RateLimited(GatewayError):
    """The caller exhausted its request window; retrying later may succeed."""

    http_status = 429
    kind = "rate_limited"

    def __init__(self, limiter: str, retry_after_seconds: float) -> None:
        super().__init__("Rate limit exceeded. Please try again later.")
        self.limiter = limiter
        self.retry_after_seconds = retry_after_seconds

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["retry_after_seconds"] = round(self.retry_after_seconds, 3)
        return data


class UpstreamError(GatewayError):
    """An external HTTP dependency answered with a non-success status."""

    http_status = 502
    kind = "upstream_error"

    def __init__(
        self,
        upstream: str,
        upstream_status: int,
        message: str,
        body: str | None = None,
    ) -> None:
        super().__init__(f"{upstream} error ({upstream_status}): {message}")
        self.upstream = upstream
        self.upstream_status = upstream_status
        self.upstream_message = message
        self.body = body

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["upstream"] = self.upstream
        data["upstream_status"] = self.upstream_status
        return data


class ProviderError(UpstreamError):
    """A chat-completion provider rejected or failed the request."""

    kind = "provider_error"

    def __init__(
        self,
        provider: str,
        status: int,
        message: str,
        body: str | None = None,
    ) -> None:
        super().__init__(provider, status, message, body=body)
        self.provider = provider
        self.status = status

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["provider"] = self.provider
        return data


class TransportError(GatewayError):
    """DNS, connection or timeout failure before any HTTP status was seen."""

    http_status = 502
    kind = "transport_error"

    def __init__(self, upstream: str, detail: str) -> None:
        super().__init__(f"{upstream} unreachable: {detail}")
        self.upstream = upstream

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["upstream"] = self.upstream
        return data
