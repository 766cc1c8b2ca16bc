"""
localchat - Anthropic Adapter

Adapter for Anthropic's Messages API. Streams typed SSE events
(``content_block_delta`` / ``message_stop``); non-streaming responses
embed any ``tool_use`` blocks as tool-call markers so the same extractor
handles every backend.
"""

import json
import time
from typing import Any, Dict, List, Optional

import httpx

from .base import AdapterConfig, BaseAdapter, ProviderHealth
from ..core.models import ChatRequest, ChatResponse, ModelInfo, Provider, Role
from ..streaming.normalizer import WireProtocol


class AnthropicAdapter(BaseAdapter):
    """
    Adapter for Anthropic Claude.

    The system prompt is sent as the top-level ``system`` field and
    system-role messages are folded into it. ``max_tokens`` is required
    by the API and defaults to 4096.
    """

    provider = Provider.ANTHROPIC
    protocol = WireProtocol.TYPED_EVENT_SSE
    CHAT_PATH = "/v1/messages"
    API_VERSION = "2023-06-01"
    DEFAULT_MAX_TOKENS = 4096
    HEALTH_MODEL = "claude-3-5-haiku-20241022"

    MODELS: List[ModelInfo] = [
        ModelInfo(id="claude-sonnet-4-20250514", name="Claude Sonnet 4", provider=Provider.ANTHROPIC),
        ModelInfo(id="claude-3-5-sonnet-20241022", name="Claude 3.5 Sonnet", provider=Provider.ANTHROPIC),
        ModelInfo(id="claude-3-5-haiku-20241022", name="Claude 3.5 Haiku (Fast)", provider=Provider.ANTHROPIC),
        ModelInfo(id="claude-3-opus-20240229", name="Claude 3 Opus", provider=Provider.ANTHROPIC),
    ]

    def __init__(
        self,
        config: AdapterConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        marker_open: str = "<tool_call>",
        marker_close: str = "</tool_call>",
    ):
        super().__init__(config, transport=transport)
        self.marker_open = marker_open
        self.marker_close = marker_close

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        headers["anthropic-version"] = self.API_VERSION
        if self.config.api_key:
            headers["x-api-key"] = self.config.api_key
        return headers

    def _build_payload(self, request: ChatRequest, stream: bool) -> Dict[str, Any]:
        system_parts = [request.system_prompt] if request.system_prompt else []
        messages = []
        for message in request.messages:
            if message.role == Role.SYSTEM:
                system_parts.append(message.content)
            else:
                messages.append(message.to_dict())

        payload: Dict[str, Any] = {
            "model": request.model,
            "max_tokens": request.max_tokens or self.DEFAULT_MAX_TOKENS,
            "messages": messages,
        }
        if system_parts:
            payload["system"] = "\n\n".join(system_parts)
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if stream:
            payload["stream"] = True

        return payload

    def _parse_chat_response(
        self,
        payload: Dict[str, Any],
        request: ChatRequest,
        request_id: str = ""
    ) -> ChatResponse:
        blocks = payload.get("content")
        if not isinstance(blocks, list):
            raise self._malformed(payload, request_id)

        content = ""
        for block in blocks:
            if not isinstance(block, dict):
                continue
            if block.get("type") == "text":
                content += block.get("text") or ""
            elif block.get("type") == "tool_use":
                marker = json.dumps({
                    "id": block.get("id"),
                    "name": block.get("name"),
                    "arguments": block.get("input") or {},
                })
                content += f"{self.marker_open}{marker}{self.marker_close}"

        return ChatResponse(
            content=content,
            model=payload.get("model") or request.model,
            done=payload.get("stop_reason") == "end_turn",
        )

    async def list_models(self) -> List[ModelInfo]:
        """Fixed catalog; the API has no listing the key can always reach."""
        return list(self.MODELS)

    async def health_check(self) -> ProviderHealth:
        """
        Validate the API key with a one-token request.

        Any answer other than 401 means the key was accepted.
        """
        if not self.config.api_key:
            return ProviderHealth(
                provider=self.provider,
                is_healthy=False,
                last_error="API key required",
            )

        try:
            start = time.perf_counter()
            response = await self.client.post(
                self.CHAT_PATH,
                json={
                    "model": self.HEALTH_MODEL,
                    "max_tokens": 1,
                    "messages": [{"role": "user", "content": "Hi"}],
                },
            )
            latency = int((time.perf_counter() - start) * 1000)
        except httpx.HTTPError as e:
            return ProviderHealth(
                provider=self.provider,
                is_healthy=False,
                last_error=str(e) or "Cannot connect to Anthropic",
            )

        if response.status_code == 401:
            return ProviderHealth(
                provider=self.provider,
                is_healthy=False,
                avg_latency_ms=latency,
                last_error="Invalid API key",
            )

        return ProviderHealth(
            provider=self.provider,
            is_healthy=True,
            avg_latency_ms=latency,
            models=list(self.MODELS),
        )
