"""
localchat - Core Module

Shared models, configuration and the error taxonomy.
"""

from .models import (
    Provider,
    Role,
    ProviderConfig,
    DEFAULT_PROVIDERS,
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ModelInfo,
    message_from_dict,
)
from .errors import (
    ErrorType,
    ErrorDetails,
    LocalChatException,
    InfraError,
    ConnectionFailedError,
    ReadTimeoutError,
    UpstreamError,
    StreamInterruptedError,
    MalformedResponseError,
    SemanticError,
    InvalidRequestError,
    ModelNotFoundError,
    ProviderAuthError,
    ToolExecutionError,
    handle_http_error,
    create_stream_error_chunk,
)
from .config import Settings, get_settings

__all__ = [
    # Models
    "Provider",
    "Role",
    "ProviderConfig",
    "DEFAULT_PROVIDERS",
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "ModelInfo",
    "message_from_dict",
    # Errors
    "ErrorType",
    "ErrorDetails",
    "LocalChatException",
    "InfraError",
    "ConnectionFailedError",
    "ReadTimeoutError",
    "UpstreamError",
    "StreamInterruptedError",
    "MalformedResponseError",
    "SemanticError",
    "InvalidRequestError",
    "ModelNotFoundError",
    "ProviderAuthError",
    "ToolExecutionError",
    "handle_http_error",
    "create_stream_error_chunk",
    # Config
    "Settings",
    "get_settings",
]
