"""
localchat - Backend Adapter Base

Abstract base class for model-serving backend adapters.
Each backend (Ollama, OpenAI-compatible, Anthropic) implements this interface.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from ..core.errors import (
    LocalChatException,
    MalformedResponseError,
    StreamInterruptedError,
    UpstreamError,
    create_stream_error_chunk,
    handle_http_error,
)
from ..core.models import ChatRequest, ChatResponse, ModelInfo, Provider
from ..observability.logging import get_logger
from ..observability.metrics import get_metrics
from ..observability.tracing import backend_attributes, get_tracing_manager, trace_backend_call
from ..streaming.decoders import Skip
from ..streaming.normalizer import (
    Delta,
    StreamPipeline,
    UpstreamStreamError,
    WireProtocol,
    create_decoder,
)


logger = get_logger(__name__)


@dataclass
class AdapterConfig:
    """Configuration for a backend adapter."""
    base_url: str
    api_key: Optional[str] = None
    timeout: float = 120.0


@dataclass
class ProviderHealth:
    """Health status of a backend."""
    provider: Provider
    is_healthy: bool
    avg_latency_ms: Optional[int] = None
    last_error: Optional[str] = None
    models: List[ModelInfo] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "provider": self.provider.value,
            "connected": self.is_healthy,
            "models": [model.to_dict() for model in self.models],
        }
        if self.avg_latency_ms is not None:
            result["latency_ms"] = self.avg_latency_ms
        if self.last_error:
            result["error"] = self.last_error
        return result


class BaseAdapter(ABC):
    """
    Abstract base class for backend adapters.

    Streaming, non-streaming and error mapping live here; a subclass
    supplies only what differs per backend:
    - ``protocol``: the wire-protocol family of its stream
    - ``CHAT_PATH``: the chat endpoint
    - ``_headers`` and ``_build_payload``: the request
    - ``_parse_chat_response``: the aggregate of a complete response
    - ``list_models`` and ``health_check``
    """

    provider: Provider
    protocol: WireProtocol
    CHAT_PATH: str = ""

    def __init__(
        self,
        config: AdapterConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.client = httpx.AsyncClient(
            base_url=config.base_url,
            headers=self._headers(),
            timeout=config.timeout,
            transport=transport,
        )

    # ============================================================
    # Backend-specific hooks
    # ============================================================

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    @abstractmethod
    def _build_payload(self, request: ChatRequest, stream: bool) -> Dict[str, Any]:
        """Build the backend-native request body."""
        pass

    @abstractmethod
    def _parse_chat_response(
        self,
        payload: Dict[str, Any],
        request: ChatRequest,
        request_id: str = ""
    ) -> ChatResponse:
        """Aggregate one complete decoded response."""
        pass

    @abstractmethod
    async def list_models(self) -> List[ModelInfo]:
        """List models the backend can serve."""
        pass

    @abstractmethod
    async def health_check(self) -> ProviderHealth:
        """Check whether the backend is reachable."""
        pass

    # ============================================================
    # Streaming
    # ============================================================

    async def stream_deltas(
        self,
        request: ChatRequest,
        request_id: str = ""
    ) -> AsyncIterator[Delta]:
        """
        Stream normalized Deltas from the backend.

        Errors before any content raise the mapped exception; errors
        after content raise StreamInterruptedError carrying the partial
        text. Closing this generator closes the upstream connection.
        """
        provider = self.provider.value
        payload = self._build_payload(request, stream=True)
        pipeline = StreamPipeline(self.protocol)
        metrics = get_metrics()
        tracing = get_tracing_manager()
        span = tracing.open_client_span(
            f"{provider}.chat_stream",
            attributes=backend_attributes(provider, request.model, request_id),
        )

        partial: List[str] = []
        outcome = "error"
        start = time.perf_counter()

        def track(delta: Delta) -> Delta:
            if delta.content:
                if not partial:
                    metrics.record_time_to_first_delta(provider, time.perf_counter() - start)
                partial.append(delta.content)
            return delta

        try:
            with metrics.track_active_stream(provider):
                async with self.client.stream("POST", self.CHAT_PATH, json=payload) as response:
                    if response.status_code >= 400:
                        await response.aread()
                        response.raise_for_status()

                    async for chunk in response.aiter_bytes():
                        for delta in pipeline.feed(chunk):
                            yield track(delta)
                        if pipeline.finished or pipeline.failed:
                            break

                    for delta in pipeline.close():
                        yield track(delta)

            outcome = "completed"

        except UpstreamStreamError as e:
            tracing.record_exception(e, span)
            logger.warning("Backend reported an error mid-stream", provider=provider, error=str(e))
            if partial:
                raise StreamInterruptedError(provider, "".join(partial), request_id, message=str(e)) from e
            raise UpstreamError(provider, 502, str(e), request_id) from e

        except LocalChatException as e:
            tracing.record_exception(e, span)
            raise

        except httpx.HTTPError as e:
            tracing.record_exception(e, span)
            error = handle_http_error(e, provider, request_id)
            logger.warning(
                "Upstream stream failed",
                provider=provider,
                error_code=error.error.code,
                partial_chars=sum(len(p) for p in partial),
            )
            if partial:
                raise StreamInterruptedError(
                    provider,
                    "".join(partial),
                    request_id,
                    message=error.error.message,
                ) from e
            raise error from e

        except (asyncio.CancelledError, GeneratorExit):
            outcome = "completed" if pipeline.finished else "cancelled"
            raise

        finally:
            metrics.record_stream(
                provider,
                outcome,
                deltas=pipeline.deltas_emitted,
                skipped=pipeline.skipped,
            )
            span.set_attribute("localchat.stream_outcome", outcome)
            span.set_attribute("localchat.deltas", pipeline.deltas_emitted)
            span.end()
            logger.debug(
                "Stream closed",
                provider=provider,
                outcome=outcome,
                deltas=pipeline.deltas_emitted,
                skipped=pipeline.skipped,
            )

    async def chat_completion_stream(
        self,
        request: ChatRequest,
        request_id: str = ""
    ) -> AsyncIterator[str]:
        """
        Stream serialized output records.

        Any failure ends the stream with one error record followed by the
        ``[DONE]`` sentinel.
        """
        deltas = self.stream_deltas(request, request_id)
        try:
            async for delta in deltas:
                for record in delta.to_sse():
                    yield record
        except LocalChatException as e:
            yield create_stream_error_chunk(e)
        finally:
            await deltas.aclose()

    # ============================================================
    # Non-streaming
    # ============================================================

    async def chat_completion(
        self,
        request: ChatRequest,
        request_id: str = ""
    ) -> ChatResponse:
        """
        One round trip, decoded with the stream's own decoder.

        A payload that does not decode is a hard error: there is no
        partial result to salvage.
        """
        provider = self.provider.value
        payload = self._build_payload(request, stream=False)

        with trace_backend_call(provider, request.model, "chat", request_id):
            try:
                response = await self.client.post(self.CHAT_PATH, json=payload)
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise handle_http_error(e, provider, request_id) from e

        result = create_decoder(self.protocol).decode_payload(response.text)
        if isinstance(result, Skip):
            logger.warning(
                "Undecodable response body",
                provider=provider,
                reason=result.reason,
            )
            raise MalformedResponseError(provider, request_id, response.text)

        if result.error is not None:
            raise UpstreamError(provider, response.status_code, result.error, request_id)

        return self._parse_chat_response(result.payload, request, request_id)

    # ============================================================
    # Helpers for subclasses
    # ============================================================

    def _messages_with_system(self, request: ChatRequest) -> List[Dict[str, str]]:
        """Messages with the system prompt prepended as a system message."""
        messages = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.extend(message.to_dict() for message in request.messages)
        return messages

    def _malformed(self, payload: Dict[str, Any], request_id: str) -> MalformedResponseError:
        return MalformedResponseError(self.provider.value, request_id, str(payload))

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()
