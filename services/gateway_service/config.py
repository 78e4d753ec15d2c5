from __future__ import annotations

import os
from dataclasses import dataclass

from shared.llm_adapter.anthropic_provider import (
    DEFAULT_BASE_URL as DEFAULT_ANTHROPIC_BASE_URL,
    AnthropicApiStyle,
)
from shared.llm_adapter.embeddings import DEFAULT_HF_URL, DEFAULT_OPENAI_MODEL
from shared.llm_adapter.huggingface_provider import (
    DEFAULT_BASE_URL as DEFAULT_HUGGINGFACE_BASE_URL,
)
from shared.llm_adapter.openai_provider import DEFAULT_BASE_URL as DEFAULT_OPENAI_BASE_URL
from shared.sam.opportunities import DEFAULT_BASE_URL as DEFAULT_SAM_BASE_URL


def _int(name: str, default: int) -> int:
    return int(os.environ.get(name, "") or default)


def _float(name: str, default: float) -> float:
    return float(os.environ.get(name, "") or default)


@dataclass(frozen=True)
class GatewayConfig:
    sam_base_url: str = DEFAULT_SAM_BASE_URL
    openai_base_url: str = DEFAULT_OPENAI_BASE_URL
    anthropic_base_url: str = DEFAULT_ANTHROPIC_BASE_URL
    anthropic_api_style: AnthropicApiStyle = AnthropicApiStyle.MESSAGES
    huggingface_base_url: str = DEFAULT_HUGGINGFACE_BASE_URL
    huggingface_embedding_url: str = DEFAULT_HF_URL
    openai_embedding_model: str = DEFAULT_OPENAI_MODEL
    openai_api_key: str | None = None
    anthropic_api_key: str | None = None
    huggingface_api_key: str | None = None
    sam_api_key: str | None = None
    chat_rate_limit_max: int = 20
    search_rate_limit_max: int = 100
    rate_limit_window_seconds: float = 60.0
    search_cache_ttl_seconds: float = 300.0
    cache_sweep_interval_seconds: float = 300.0
    embedding_cache_max_entries: int = 1000
    semantic_top_n: int = 25
    http_timeout: float = 30.0
    log_level: str = "INFO"
    cors_allow_origins: tuple[str, ...] = ("*",)

    def __repr__(self) -> str:
        # keys are reported as present/absent only
        keys = {
            "openai": bool(self.openai_api_key),
            "anthropic": bool(self.anthropic_api_key),
            "huggingface": bool(self.huggingface_api_key),
            "sam": bool(self.sam_api_key),
        }
        return f"GatewayConfig(sam_base_url={self.sam_base_url!r}, keys={keys})"

    @classmethod
    def from_env(cls) -> GatewayConfig:
        origins = os.environ.get("CORS_ALLOW_ORIGINS", "*")
        return cls(
            sam_base_url=os.environ.get("SAM_BASE_URL", DEFAULT_SAM_BASE_URL),
            openai_base_url=os.environ.get("OPENAI_BASE_URL", DEFAULT_OPENAI_BASE_URL),
            anthropic_base_url=os.environ.get("ANTHROPIC_BASE_URL", DEFAULT_ANTHROPIC_BASE_URL),
            anthropic_api_style=AnthropicApiStyle(
                os.environ.get("ANTHROPIC_API_STYLE", "messages").strip().lower()
            ),
            huggingface_base_url=os.environ.get(
                "HUGGINGFACE_BASE_URL", DEFAULT_HUGGINGFACE_BASE_URL
            ),
            huggingface_embedding_url=os.environ.get("HUGGINGFACE_EMBEDDING_URL", DEFAULT_HF_URL),
            openai_embedding_model=os.environ.get("OPENAI_EMBEDDING_MODEL", DEFAULT_OPENAI_MODEL),
            openai_api_key=os.environ.get("OPENAI_API_KEY") or None,
            anthropic_api_key=os.environ.get("ANTHROPIC_API_KEY") or None,
            huggingface_api_key=os.environ.get("HUGGINGFACE_API_KEY") or None,
            sam_api_key=os.environ.get("SAM_API_KEY") or None,
            chat_rate_limit_max=_int("CHAT_RATE_LIMIT_MAX", 20),
            search_rate_limit_max=_int("SEARCH_RATE_LIMIT_MAX", 100),
            rate_limit_window_seconds=_float("RATE_LIMIT_WINDOW_SECONDS", 60.0),
            search_cache_ttl_seconds=_float("SEARCH_CACHE_TTL_SECONDS", 300.0),
            cache_sweep_interval_seconds=_float("CACHE_SWEEP_INTERVAL_SECONDS", 300.0),
            embedding_cache_max_entries=_int("EMBEDDING_CACHE_MAX_ENTRIES", 1000),
            semantic_top_n=_int("SEMANTIC_TOP_N", 25),
            http_timeout=_float("GATEWAY_HTTP_TIMEOUT", 30.0),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            cors_allow_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
        )
