"""
localchat - Core Data Models

Unified request/response models shared by every backend adapter.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


# ============================================================
# Enums
# ============================================================

class Provider(str, Enum):
    """Supported model-serving backends."""
    OLLAMA = "ollama"
    LMSTUDIO = "lmstudio"
    OPENAI_COMPATIBLE = "openai-compatible"
    ANTHROPIC = "anthropic"
    STUB = "stub"


class Role(str, Enum):
    """Message roles."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


# ============================================================
# Provider configuration
# ============================================================

@dataclass
class ProviderConfig:
    """Where and how to reach one backend."""
    type: Provider
    name: str
    base_url: str
    api_key: Optional[str] = None


DEFAULT_PROVIDERS: Dict[Provider, ProviderConfig] = {
    Provider.OLLAMA: ProviderConfig(
        type=Provider.OLLAMA,
        name="Ollama",
        base_url="http://localhost:11434",
    ),
    Provider.LMSTUDIO: ProviderConfig(
        type=Provider.LMSTUDIO,
        name="LM Studio",
        base_url="http://localhost:1234",
        api_key="lm-studio",
    ),
    Provider.OPENAI_COMPATIBLE: ProviderConfig(
        type=Provider.OPENAI_COMPATIBLE,
        name="OpenAI Compatible",
        base_url="http://localhost:8080",
    ),
    Provider.ANTHROPIC: ProviderConfig(
        type=Provider.ANTHROPIC,
        name="Claude (Anthropic)",
        base_url="https://api.anthropic.com",
        api_key="",
    ),
    Provider.STUB: ProviderConfig(
        type=Provider.STUB,
        name="Stub",
        base_url="http://stub.invalid",
    ),
}


# ============================================================
# Chat models
# ============================================================

@dataclass
class ChatMessage:
    """A single chat message."""
    role: Role
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass
class ChatRequest:
    """Backend-agnostic chat request."""
    messages: List[ChatMessage]
    model: str
    system_prompt: Optional[str] = None
    stream: bool = True
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ChatResponse:
    """Aggregated result of a non-streaming call."""
    content: str
    model: str
    done: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"content": self.content, "model": self.model, "done": self.done}


@dataclass
class ModelInfo:
    """A model a backend can serve."""
    id: str
    name: str
    provider: Provider
    size: Optional[int] = None
    modified: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "provider": self.provider.value,
        }
        if self.size is not None:
            result["size"] = self.size
        if self.modified:
            result["modified"] = self.modified
        return result


def message_from_dict(data: Dict[str, Any]) -> ChatMessage:
    """Build a ChatMessage from a plain ``{"role", "content"}`` dict."""
    return ChatMessage(role=Role(data["role"]), content=data.get("content") or "")
