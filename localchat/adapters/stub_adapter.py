"""
localchat - Stub Adapter

Deterministic in-process backend used for local development and tests.
No network calls: an ``httpx.MockTransport`` answers with canned
OpenAI-compatible bytes, so streams still go through the real
reassembler, decoder and encoder. The canned stream is cut into small
chunks that straddle record boundaries.
"""

import json
from typing import Iterator, List, Optional

import httpx

from .base import AdapterConfig, ProviderHealth
from .openai_adapter import OpenAICompatibleAdapter
from ..core.models import ModelInfo, Provider


STUB_MODEL = "stub-model"


def _last_user_message(body: dict) -> str:
    for message in reversed(body.get("messages") or []):
        if message.get("role") == "user":
            return message.get("content") or ""
    return ""


def _split(data: bytes, size: int) -> Iterator[bytes]:
    for offset in range(0, len(data), size):
        yield data[offset:offset + size]


class StubAdapter(OpenAICompatibleAdapter):
    """
    Deterministic adapter for tests/smoke checks.

    Replies with ``reply`` when given, otherwise echoes the last user
    message as ``stub: <message>``.
    """

    provider = Provider.STUB

    def __init__(
        self,
        config: AdapterConfig,
        reply: Optional[str] = None,
        chunk_size: int = 7,
    ):
        self.reply = reply
        self.chunk_size = chunk_size
        super().__init__(config, transport=httpx.MockTransport(self._handle))

    def _reply_for(self, body: dict) -> str:
        if self.reply is not None:
            return self.reply
        return f"stub: {_last_user_message(body)}"

    def _stream_body(self, text: str, model: str) -> bytes:
        words = text.split(" ")
        pieces = [word if i == 0 else f" {word}" for i, word in enumerate(words)]

        records: List[str] = []
        for piece in pieces:
            chunk = {
                "object": "chat.completion.chunk",
                "model": model,
                "choices": [{"index": 0, "delta": {"content": piece}, "finish_reason": None}],
            }
            records.append(f"data: {json.dumps(chunk)}\n\n")

        final = {
            "object": "chat.completion.chunk",
            "model": model,
            "choices": [{"index": 0, "delta": {}, "finish_reason": "stop"}],
        }
        records.append(f"data: {json.dumps(final)}\n\n")
        records.append("data: [DONE]\n\n")
        return "".join(records).encode("utf-8")

    def _handle(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET" and request.url.path == self.MODELS_PATH:
            return httpx.Response(200, json={"data": [{"id": STUB_MODEL}]})

        if request.method == "POST" and request.url.path == self.CHAT_PATH:
            body = json.loads(request.content or b"{}")
            model = body.get("model") or STUB_MODEL
            text = self._reply_for(body)

            if body.get("stream"):
                return httpx.Response(
                    200,
                    headers={"Content-Type": "text/event-stream"},
                    stream=_ChunkedStream(
                        list(_split(self._stream_body(text, model), self.chunk_size))
                    ),
                )

            return httpx.Response(200, json={
                "object": "chat.completion",
                "model": model,
                "choices": [{
                    "index": 0,
                    "message": {"role": "assistant", "content": text},
                    "finish_reason": "stop",
                }],
            })

        return httpx.Response(404, json={"error": {"message": f"No stub route for {request.url.path}"}})

    async def list_models(self) -> List[ModelInfo]:
        return [ModelInfo(id=STUB_MODEL, name="Stub", provider=self.provider)]

    async def health_check(self) -> ProviderHealth:
        return ProviderHealth(
            provider=self.provider,
            is_healthy=True,
            avg_latency_ms=0,
            models=await self.list_models(),
        )


class _ChunkedStream(httpx.AsyncByteStream):
    """Async body that yields pre-cut chunks one at a time."""

    def __init__(self, chunks: List[bytes]):
        self.chunks = chunks

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk
