from shared.llm_adapter.base import ChatAdapter
from shared.llm_adapter.cache import EmbeddingCache
from shared.llm_adapter.embeddings import EmbeddingClient
from shared.llm_adapter.factory import build_chat_adapters
from shared.llm_adapter.gateway import ChatGateway, parse_model_spec, parse_provider
from shared.llm_adapter.models import (
    ChatRole,
    ChatTurn,
    EmbeddingBackend,
    Provider,
    ProviderRequest,
    ProviderResponse,
    Usage,
)

__all__ = [
    "ChatAdapter",
    "ChatGateway",
    "ChatRole",
    "ChatTurn",
    "EmbeddingBackend",
    "EmbeddingCache",
    "EmbeddingClient",
    "Provider",
    "ProviderRequest",
    "ProviderResponse",
    "Usage",
    "build_chat_adapters",
    "parse_model_spec",
    "parse_provider",
]
