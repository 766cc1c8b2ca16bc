"""
localchat - API Layer

HTTP surface of the gateway:
- Chat (streaming, non-streaming, full turn with tool dispatch)
- Tool execution
- Provider status and models
"""

from .models import (
    RoleEnum,
    MessageInput,
    ChatBody,
    ChatResponseBody,
    ToolCallInput,
    ToolExecuteBody,
)
from .dependencies import get_chat_service, get_adapter, get_app_settings
from .routes import chat_router, tools_router, providers_router


__all__ = [
    # Routers
    "chat_router",
    "tools_router",
    "providers_router",
    # Models
    "RoleEnum",
    "MessageInput",
    "ChatBody",
    "ChatResponseBody",
    "ToolCallInput",
    "ToolExecuteBody",
    # Dependencies
    "get_chat_service",
    "get_adapter",
    "get_app_settings",
]
