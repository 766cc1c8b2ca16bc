"""
localchat - OpenAI-Compatible Adapter

Adapter for servers speaking the OpenAI chat completions API
(LM Studio, llama.cpp server, vLLM, ...). Streams ``data:`` SSE blocks
terminated by ``data: [DONE]``.
"""

import time
from typing import Any, Dict, List

import httpx

from .base import BaseAdapter, ProviderHealth
from ..core.models import ChatRequest, ChatResponse, ModelInfo, Provider
from ..streaming.normalizer import WireProtocol


class OpenAICompatibleAdapter(BaseAdapter):
    """
    Adapter for OpenAI-compatible servers.

    Supports:
    - Chat completions, streaming and non-streaming
    - Bearer auth when an API key is configured
    - Model listing from ``/v1/models``
    """

    provider = Provider.OPENAI_COMPATIBLE
    protocol = WireProtocol.OPENAI_SSE
    CHAT_PATH = "/v1/chat/completions"
    MODELS_PATH = "/v1/models"

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    def _build_payload(self, request: ChatRequest, stream: bool) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": request.model,
            "messages": self._messages_with_system(request),
            "stream": stream,
        }
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if request.max_tokens is not None:
            payload["max_tokens"] = request.max_tokens
        return payload

    def _parse_chat_response(
        self,
        payload: Dict[str, Any],
        request: ChatRequest,
        request_id: str = ""
    ) -> ChatResponse:
        choices = payload.get("choices")
        if not isinstance(choices, list):
            raise self._malformed(payload, request_id)

        content = ""
        if choices and isinstance(choices[0], dict):
            message = choices[0].get("message")
            if isinstance(message, dict):
                content = message.get("content") or ""

        # A complete response is always finished
        return ChatResponse(
            content=content,
            model=payload.get("model") or request.model,
            done=True,
        )

    async def list_models(self) -> List[ModelInfo]:
        response = await self.client.get(self.MODELS_PATH)
        response.raise_for_status()
        data = response.json()

        return [
            ModelInfo(id=model["id"], name=model["id"], provider=self.provider)
            for model in data.get("data") or []
            if isinstance(model, dict) and model.get("id")
        ]

    async def health_check(self) -> ProviderHealth:
        try:
            start = time.perf_counter()
            models = await self.list_models()
            latency = int((time.perf_counter() - start) * 1000)

            return ProviderHealth(
                provider=self.provider,
                is_healthy=True,
                avg_latency_ms=latency,
                models=models,
            )
        except (httpx.HTTPError, ValueError) as e:
            return ProviderHealth(
                provider=self.provider,
                is_healthy=False,
                last_error=str(e) or f"Cannot connect to {self.provider.value}",
            )


class LMStudioAdapter(OpenAICompatibleAdapter):
    """LM Studio's local server; accepts any bearer key."""

    provider = Provider.LMSTUDIO
