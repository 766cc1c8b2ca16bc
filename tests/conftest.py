"""
localchat - Pytest Configuration

Configures:
- Integration test markers (skip by default)
- Fixture streams for the three upstream protocol families
- Mock transports for adapters (no real network calls)
"""

import json
import os
from typing import Any, Callable, Dict, Iterable, List, Optional

import httpx
import pytest

from localchat.core.config import Settings


# ============================================================
# Environment Configuration
# ============================================================

def _is_truthy(value: Optional[str]) -> bool:
    """Check if environment variable is truthy."""
    if value is None:
        return False
    return value.lower() in ("1", "true", "yes", "on")


RUN_INTEGRATION = _is_truthy(os.getenv("RUN_INTEGRATION"))


# ============================================================
# Pytest Markers
# ============================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test (requires RUN_INTEGRATION=1)"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless RUN_INTEGRATION=1."""
    skip_integration = pytest.mark.skip(
        reason="Integration test - set RUN_INTEGRATION=1 to run"
    )

    for item in items:
        if "integration" in item.keywords and not RUN_INTEGRATION:
            item.add_marker(skip_integration)


# ============================================================
# Fixture streams
# ============================================================

# Generated text of every fixture stream, fragment by fragment
FIXTURE_FRAGMENTS = ["Hello", ", wörld", " ✓ ", "done."]
FIXTURE_TEXT = "".join(FIXTURE_FRAGMENTS)


def ollama_stream(fragments: Iterable[str] = FIXTURE_FRAGMENTS) -> bytes:
    """Line-delimited JSON as Ollama's /api/chat streams it."""
    lines = [
        json.dumps({"model": "llama3.2", "message": {"role": "assistant", "content": f}, "done": False}, ensure_ascii=False)
        for f in fragments
    ]
    lines.append(json.dumps({"model": "llama3.2", "message": {"role": "assistant", "content": ""}, "done": True}))
    return ("\n".join(lines) + "\n").encode("utf-8")


def openai_stream(fragments: Iterable[str] = FIXTURE_FRAGMENTS) -> bytes:
    """OpenAI-style SSE as LM Studio streams it."""
    blocks = []
    for f in fragments:
        chunk = {
            "object": "chat.completion.chunk",
            "choices": [{"index": 0, "delta": {"content": f}, "finish_reason": None}],
        }
        blocks.append(f"data: {json.dumps(chunk, ensure_ascii=False)}\n\n")
    final = {"object": "chat.completion.chunk", "choices": [{"index": 0, "delta": {}, "finish_reason": "stop"}]}
    blocks.append(f"data: {json.dumps(final)}\n\n")
    blocks.append("data: [DONE]\n\n")
    return "".join(blocks).encode("utf-8")


def _event(name: str, payload: Dict[str, Any]) -> str:
    return f"event: {name}\ndata: {json.dumps(payload, ensure_ascii=False)}\n\n"


def anthropic_stream(fragments: Iterable[str] = FIXTURE_FRAGMENTS) -> bytes:
    """Typed-event SSE as the Anthropic Messages API streams it."""
    events = [
        _event("message_start", {"type": "message_start", "message": {"id": "msg_1", "content": []}}),
        _event("content_block_start", {"type": "content_block_start", "index": 0,
                                       "content_block": {"type": "text", "text": ""}}),
        _event("ping", {"type": "ping"}),
    ]
    for f in fragments:
        events.append(_event("content_block_delta", {
            "type": "content_block_delta",
            "index": 0,
            "delta": {"type": "text_delta", "text": f},
        }))
    events.extend([
        _event("content_block_stop", {"type": "content_block_stop", "index": 0}),
        _event("message_delta", {"type": "message_delta", "delta": {"stop_reason": "end_turn"}}),
        _event("message_stop", {"type": "message_stop"}),
    ])
    return "".join(events).encode("utf-8")


def split_every(data: bytes, size: int) -> List[bytes]:
    """Cut bytes into fixed-size chunks (may split records and characters)."""
    return [data[i:i + size] for i in range(0, len(data), size)]


class ChunkedBody(httpx.AsyncByteStream):
    """Response body delivered as the given chunks, one per read."""

    def __init__(self, chunks: Iterable[bytes]):
        self.chunks = list(chunks)
        self.sent = 0
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            self.sent += 1
            yield chunk

    async def aclose(self):
        self.closed = True


def streaming_transport(
    chunks: Iterable[bytes],
    status_code: int = 200,
    content_type: str = "text/event-stream",
    on_request: Optional[Callable[[httpx.Request], None]] = None,
) -> httpx.MockTransport:
    """MockTransport answering every request with a chunked body."""
    body_chunks = list(chunks)

    def handler(request: httpx.Request) -> httpx.Response:
        if on_request is not None:
            on_request(request)
        return httpx.Response(
            status_code,
            headers={"Content-Type": content_type},
            stream=ChunkedBody(body_chunks),
        )

    return httpx.MockTransport(handler)


def json_transport(
    payload: Any,
    status_code: int = 200,
    on_request: Optional[Callable[[httpx.Request], None]] = None,
) -> httpx.MockTransport:
    """MockTransport answering every request with one JSON document."""

    def handler(request: httpx.Request) -> httpx.Response:
        if on_request is not None:
            on_request(request)
        return httpx.Response(status_code, json=payload)

    return httpx.MockTransport(handler)


# ============================================================
# Settings
# ============================================================

@pytest.fixture
def stub_settings() -> Settings:
    """Settings for an app backed by the stub adapter."""
    return Settings.from_env({
        "USE_STUB_ADAPTERS": "true",
        "LOG_FORMAT": "text",
        "LOG_LEVEL": "WARNING",
    })
