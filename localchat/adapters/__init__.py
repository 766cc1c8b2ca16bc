"""
localchat Adapters Module

Backend-specific adapters that translate between the unified request
shape and each backend's native API, and normalize every backend's
stream to the same output protocol.
"""

from typing import Optional

import httpx

from .base import BaseAdapter, AdapterConfig, ProviderHealth
from .ollama_adapter import OllamaAdapter
from .openai_adapter import OpenAICompatibleAdapter, LMStudioAdapter
from .anthropic_adapter import AnthropicAdapter
from .stub_adapter import StubAdapter
from ..core.errors import InvalidRequestError
from ..core.models import Provider, ProviderConfig

__all__ = [
    "BaseAdapter",
    "AdapterConfig",
    "ProviderHealth",
    "OllamaAdapter",
    "OpenAICompatibleAdapter",
    "LMStudioAdapter",
    "AnthropicAdapter",
    "StubAdapter",
    "create_adapter",
]


def create_adapter(
    provider_config: ProviderConfig,
    timeout: float = 120.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    marker_open: str = "<tool_call>",
    marker_close: str = "</tool_call>",
) -> BaseAdapter:
    """
    Factory function to get the appropriate adapter for a backend.

    Args:
        provider_config: Backend type, base URL and credentials
        timeout: Upstream timeout in seconds
        transport: Optional httpx transport (tests inject a MockTransport)
        marker_open, marker_close: Tool-call delimiters used when a
            backend returns structured tool calls

    Raises:
        InvalidRequestError: If the backend type is not supported
    """
    config = AdapterConfig(
        base_url=provider_config.base_url,
        api_key=provider_config.api_key,
        timeout=timeout,
    )

    if provider_config.type == Provider.STUB:
        return StubAdapter(config)

    if provider_config.type == Provider.ANTHROPIC:
        return AnthropicAdapter(
            config,
            transport=transport,
            marker_open=marker_open,
            marker_close=marker_close,
        )

    adapters = {
        Provider.OLLAMA: OllamaAdapter,
        Provider.LMSTUDIO: LMStudioAdapter,
        Provider.OPENAI_COMPATIBLE: OpenAICompatibleAdapter,
    }

    adapter_class = adapters.get(provider_config.type)
    if not adapter_class:
        raise InvalidRequestError(
            f"Unsupported provider: {provider_config.type}",
            param="provider",
        )

    return adapter_class(config, transport=transport)
