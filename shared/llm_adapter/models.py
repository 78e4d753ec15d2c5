"""Data models for the LLM adapter layer."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, SecretStr


class Provider(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    HUGGINGFACE = "huggingface"


class EmbeddingBackend(str, Enum):
    OPENAI = "openai-embeddings"
    HUGGINGFACE = "hf-embeddings"

    @classmethod
    def parse(cls, value: str) -> EmbeddingBackend:
        """Accept the canonical names and the short provider aliases."""
        normalized = value.strip().lower()
        aliases = {"openai": cls.OPENAI, "huggingface": cls.HUGGINGFACE, "hf": cls.HUGGINGFACE}
        if normalized in aliases:
            return aliases[normalized]
        return cls(normalized)


class ChatRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatTurn(BaseModel):
    role: ChatRole
    content: str
    timestamp: float | None = None


class ProviderRequest(BaseModel):
    provider: Provider
    model: str
    messages: list[ChatTurn]
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1000, ge=1)
    api_key: SecretStr

    def conversation(self) -> list[ChatTurn]:
        """Turns without system entries; the gateway injects its own."""
        return [t for t in self.messages if t.role != ChatRole.SYSTEM]


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ProviderResponse(BaseModel):
    content: str
    usage: Usage = Field(default_factory=Usage)
    model: str
    provider: Provider
