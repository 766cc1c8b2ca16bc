"""
localchat - Ollama Adapter

Adapter for a local Ollama server. Streams line-delimited JSON from
``/api/chat``; models come from ``/api/tags``.
"""

import time
from typing import Any, Dict, List

import httpx

from .base import BaseAdapter, ProviderHealth
from ..core.models import ChatRequest, ChatResponse, ModelInfo, Provider
from ..streaming.normalizer import WireProtocol


class OllamaAdapter(BaseAdapter):
    """Adapter for the Ollama chat API."""

    provider = Provider.OLLAMA
    protocol = WireProtocol.LINE_JSON
    CHAT_PATH = "/api/chat"
    TAGS_PATH = "/api/tags"

    def _build_payload(self, request: ChatRequest, stream: bool) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": request.model,
            "messages": self._messages_with_system(request),
            "stream": stream,
        }

        # Sampling parameters live under "options"
        options: Dict[str, Any] = {}
        if request.temperature is not None:
            options["temperature"] = request.temperature
        if request.max_tokens is not None:
            options["num_predict"] = request.max_tokens
        if options:
            payload["options"] = options

        return payload

    def _parse_chat_response(
        self,
        payload: Dict[str, Any],
        request: ChatRequest,
        request_id: str = ""
    ) -> ChatResponse:
        message = payload.get("message")
        if not isinstance(message, dict):
            raise self._malformed(payload, request_id)

        return ChatResponse(
            content=message.get("content") or "",
            model=payload.get("model") or request.model,
            done=bool(payload.get("done", True)),
        )

    async def list_models(self) -> List[ModelInfo]:
        """Models pulled into the local Ollama store."""
        response = await self.client.get(self.TAGS_PATH)
        response.raise_for_status()
        data = response.json()

        return [
            ModelInfo(
                id=model["name"],
                name=model["name"],
                provider=self.provider,
                size=model.get("size"),
                modified=model.get("modified_at"),
            )
            for model in data.get("models") or []
            if isinstance(model, dict) and model.get("name")
        ]

    async def health_check(self) -> ProviderHealth:
        """Check Ollama is running and list its models."""
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
        except (httpx.HTTPError, ValueError):
            return ProviderHealth(
                provider=self.provider,
                is_healthy=False,
                last_error="Cannot connect to Ollama",
            )
