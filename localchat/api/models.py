"""
localchat - API Request/Response Models

Pydantic models for API validation and serialization.
These are the external-facing models that clients interact with.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..core.models import ChatMessage, ChatRequest, Role
from ..tools.schema import ToolCall


# ============================================================
# Enums
# ============================================================

class RoleEnum(str, Enum):
    """Message roles."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


# ============================================================
# Chat
# ============================================================

class MessageInput(BaseModel):
    """A single message in the conversation."""
    role: RoleEnum
    content: str = ""


class ChatBody(BaseModel):
    """Chat request body shared by the stream, non-stream and turn endpoints."""
    messages: List[MessageInput] = Field(..., min_length=1)
    model: Optional[str] = None
    system_prompt: Optional[str] = Field(default=None, alias="systemPrompt")
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    max_tokens: Optional[int] = Field(default=None, ge=1)

    model_config = {"populate_by_name": True}

    def to_internal(self, default_model: str, stream: bool = True) -> ChatRequest:
        return ChatRequest(
            messages=[ChatMessage(role=Role(m.role.value), content=m.content) for m in self.messages],
            model=self.model or default_model,
            system_prompt=self.system_prompt,
            stream=stream,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )


class ChatResponseBody(BaseModel):
    """Non-streaming chat response."""
    content: str
    model: str
    done: bool


# ============================================================
# Tools
# ============================================================

class ToolCallInput(BaseModel):
    """One call in an explicit tool batch."""
    id: str = ""
    name: str = Field(..., min_length=1)
    arguments: Dict[str, Any] = Field(default_factory=dict)

    def to_internal(self, index: int) -> ToolCall:
        return ToolCall(id=self.id or f"call_{index + 1}", name=self.name, arguments=self.arguments)


class ToolExecuteBody(BaseModel):
    """Body of ``POST /api/tools/execute``."""
    tool_calls: List[ToolCallInput] = Field(default_factory=list, alias="toolCalls")
    timeout: Optional[float] = Field(default=None, gt=0)

    model_config = {"populate_by_name": True}

    def to_internal(self) -> List[ToolCall]:
        return [call.to_internal(i) for i, call in enumerate(self.tool_calls)]
