"""
localchat - Backend Adapter Tests

Covers:
- Streaming through each adapter (httpx.MockTransport upstreams)
- Request payloads and headers per backend
- Error mapping before and after content
- Cancellation closing the upstream connection
- Non-streaming parsing, model listing and health checks
"""

import json
from typing import List

import httpx
import pytest

from localchat.adapters import (
    AdapterConfig,
    AnthropicAdapter,
    LMStudioAdapter,
    OllamaAdapter,
    OpenAICompatibleAdapter,
    StubAdapter,
    create_adapter,
)
from localchat.core.errors import (
    ConnectionFailedError,
    InvalidRequestError,
    MalformedResponseError,
    ModelNotFoundError,
    ProviderAuthError,
    StreamInterruptedError,
    UpstreamError,
)
from localchat.core.models import (
    DEFAULT_PROVIDERS,
    ChatMessage,
    ChatRequest,
    Provider,
    ProviderConfig,
    Role,
)
from localchat.streaming import Delta

from conftest import (
    FIXTURE_TEXT,
    ChunkedBody,
    anthropic_stream,
    json_transport,
    ollama_stream,
    openai_stream,
    split_every,
    streaming_transport,
)


def _request(**kwargs) -> ChatRequest:
    defaults = dict(
        messages=[ChatMessage(role=Role.USER, content="Hi")],
        model="test-model",
    )
    defaults.update(kwargs)
    return ChatRequest(**defaults)


def _config(api_key=None) -> AdapterConfig:
    return AdapterConfig(base_url="http://backend.test", api_key=api_key, timeout=5.0)


async def _collect(adapter, request=None) -> List[Delta]:
    return [delta async for delta in adapter.stream_deltas(request or _request())]


async def _records(adapter, request=None) -> List[str]:
    return [record async for record in adapter.chat_completion_stream(request or _request())]


# ============================================================
# Streaming
# ============================================================

class TestStreaming:
    """Each adapter yields the fixture text and one terminal Delta."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("adapter_class,body", [
        (OllamaAdapter, ollama_stream),
        (OpenAICompatibleAdapter, openai_stream),
        (LMStudioAdapter, openai_stream),
        (AnthropicAdapter, anthropic_stream),
    ])
    async def test_stream_deltas(self, adapter_class, body):
        adapter = adapter_class(_config(), transport=streaming_transport(split_every(body(), 5)))
        deltas = await _collect(adapter)
        await adapter.close()

        assert "".join(d.content for d in deltas) == FIXTURE_TEXT
        assert [d.terminal for d in deltas].count(True) == 1
        assert deltas[-1].terminal

    @pytest.mark.asyncio
    async def test_chat_completion_stream_records(self):
        adapter = OllamaAdapter(_config(), transport=streaming_transport([ollama_stream(["a", "b"])]))
        records = await _records(adapter)
        await adapter.close()

        assert records == [
            'data: {"content": "a", "done": false}\n\n',
            'data: {"content": "b", "done": false}\n\n',
            "data: [DONE]\n\n",
        ]

    @pytest.mark.asyncio
    async def test_stops_reading_after_terminal(self):
        body = ChunkedBody([openai_stream(["x"]), b'data: {"choices": [{"delta": {"content": "late"}}]}\n\n'])
        transport = httpx.MockTransport(lambda request: httpx.Response(200, stream=body))
        adapter = OpenAICompatibleAdapter(_config(), transport=transport)

        deltas = await _collect(adapter)
        await adapter.close()

        assert "".join(d.content for d in deltas) == "x"
        assert body.sent == 1
        assert body.closed


# ============================================================
# Request payloads
# ============================================================

class TestPayloads:
    """Backend-native request bodies and headers."""

    @pytest.mark.asyncio
    async def test_ollama_payload(self):
        seen = []
        adapter = OllamaAdapter(
            _config(),
            transport=streaming_transport([ollama_stream()], on_request=seen.append),
        )
        await _collect(adapter, _request(system_prompt="Be brief.", temperature=0.2, max_tokens=64))
        await adapter.close()

        request = seen[0]
        body = json.loads(request.content)
        assert request.url.path == "/api/chat"
        assert body["stream"] is True
        assert body["options"] == {"temperature": 0.2, "num_predict": 64}
        assert body["messages"][0] == {"role": "system", "content": "Be brief."}
        assert body["messages"][1] == {"role": "user", "content": "Hi"}

    @pytest.mark.asyncio
    async def test_openai_bearer_and_params(self):
        seen = []
        adapter = LMStudioAdapter(
            _config(api_key="lm-studio"),
            transport=streaming_transport([openai_stream()], on_request=seen.append),
        )
        await _collect(adapter, _request(temperature=0.5, max_tokens=10))
        await adapter.close()

        request = seen[0]
        body = json.loads(request.content)
        assert request.url.path == "/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer lm-studio"
        assert body["temperature"] == 0.5
        assert body["max_tokens"] == 10

    @pytest.mark.asyncio
    async def test_openai_without_key_has_no_auth_header(self):
        seen = []
        adapter = OpenAICompatibleAdapter(
            _config(),
            transport=streaming_transport([openai_stream()], on_request=seen.append),
        )
        await _collect(adapter)
        await adapter.close()

        assert "Authorization" not in seen[0].headers

    @pytest.mark.asyncio
    async def test_anthropic_payload(self):
        seen = []
        adapter = AnthropicAdapter(
            _config(api_key="sk-ant-test"),
            transport=streaming_transport([anthropic_stream()], on_request=seen.append),
        )
        request = _request(
            system_prompt="Be brief.",
            messages=[
                ChatMessage(role=Role.SYSTEM, content="Answer in English."),
                ChatMessage(role=Role.USER, content="Hi"),
            ],
        )
        await _collect(adapter, request)
        await adapter.close()

        sent = seen[0]
        body = json.loads(sent.content)
        assert sent.url.path == "/v1/messages"
        assert sent.headers["x-api-key"] == "sk-ant-test"
        assert sent.headers["anthropic-version"] == "2023-06-01"
        assert body["system"] == "Be brief.\n\nAnswer in English."
        assert body["messages"] == [{"role": "user", "content": "Hi"}]
        assert body["max_tokens"] == 4096
        assert body["stream"] is True


# ============================================================
# Errors
# ============================================================

class TestStreamErrors:
    """Failures before and after content."""

    @pytest.mark.asyncio
    async def test_http_500_before_content(self):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(500, json={"error": {"message": "boom"}})
        )
        adapter = OllamaAdapter(_config(), transport=transport)

        with pytest.raises(UpstreamError) as exc_info:
            await _collect(adapter)
        await adapter.close()

        assert exc_info.value.status_code == 502
        assert exc_info.value.error.message == "boom"

    @pytest.mark.asyncio
    async def test_http_404_model(self):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(404, json={"error": "model 'nope' not found"})
        )
        adapter = OllamaAdapter(_config(), transport=transport)

        with pytest.raises(ModelNotFoundError):
            await _collect(adapter)
        await adapter.close()

    @pytest.mark.asyncio
    async def test_http_401(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(401, json={"error": "bad key"}))
        adapter = AnthropicAdapter(_config(api_key="x"), transport=transport)

        with pytest.raises(ProviderAuthError):
            await _collect(adapter)
        await adapter.close()

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        adapter = OllamaAdapter(_config(), transport=httpx.MockTransport(handler))
        with pytest.raises(ConnectionFailedError):
            await _collect(adapter)
        await adapter.close()

    @pytest.mark.asyncio
    async def test_error_becomes_single_error_record(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        adapter = OllamaAdapter(_config(), transport=httpx.MockTransport(handler))
        records = await _records(adapter)
        await adapter.close()

        assert len(records) == 1
        error_record, done_record = records[0].split("\n\n")[:2]
        payload = json.loads(error_record[len("data: "):])
        assert payload["done"] is True
        assert payload["error"]["type"] == "upstream_unavailable"
        assert done_record == "data: [DONE]"

    @pytest.mark.asyncio
    async def test_connection_lost_after_content(self):
        class Broken(httpx.AsyncByteStream):
            async def __aiter__(self):
                yield b'{"message": {"content": "partial "}, "done": false}\n'
                raise httpx.ReadError("connection reset")

        adapter = OllamaAdapter(
            _config(),
            transport=httpx.MockTransport(lambda request: httpx.Response(200, stream=Broken())),
        )
        with pytest.raises(StreamInterruptedError) as exc_info:
            await _collect(adapter)
        await adapter.close()

        assert exc_info.value.error.partial_content == "partial "
        assert exc_info.value.error.retryable is False

    @pytest.mark.asyncio
    async def test_inband_error_after_content(self):
        body = anthropic_stream(["Hel"]).split(b"event: content_block_stop")[0]
        body += b'event: error\ndata: {"type": "error", "error": {"message": "Overloaded"}}\n\n'
        adapter = AnthropicAdapter(_config(api_key="x"), transport=streaming_transport([body]))

        records = await _records(adapter)
        await adapter.close()

        assert records[0] == 'data: {"content": "Hel", "done": false}\n\n'
        error = json.loads(records[1].split("\n\n")[0][len("data: "):])["error"]
        assert error["code"] == "stream_interrupted"
        assert error["partial_content"] == "Hel"
        assert error["message"] == "Overloaded"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("chunks", [
        [b'{"message": {"content": "partial "}, "done": false}\n{"error": "model crashed"}\n'],
        [b'{"message": {"content": "partial "}, "done": false}\n', b'{"error": "model crashed"}\n'],
    ])
    async def test_inband_error_same_result_for_any_split(self, chunks):
        adapter = OllamaAdapter(_config(), transport=streaming_transport(chunks))
        delivered = []

        with pytest.raises(StreamInterruptedError) as exc_info:
            async for delta in adapter.stream_deltas(_request()):
                delivered.append(delta.content)
        await adapter.close()

        assert delivered == ["partial "]
        assert exc_info.value.error.partial_content == "partial "
        assert exc_info.value.error.message == "model crashed"

    @pytest.mark.asyncio
    async def test_inband_error_before_content(self):
        adapter = OllamaAdapter(_config(), transport=streaming_transport([b'{"error": "model is loading"}\n']))
        with pytest.raises(UpstreamError, match="model is loading"):
            await _collect(adapter)
        await adapter.close()


# ============================================================
# Cancellation
# ============================================================

class TestCancellation:
    """Closing the consumer closes the upstream connection."""

    @pytest.mark.asyncio
    async def test_aclose_mid_stream(self):
        lines = ollama_stream(["one", "two", "three", "four"]).split(b"\n")
        chunks = [line + b"\n" for line in lines if line]
        body = ChunkedBody(chunks)
        adapter = OllamaAdapter(
            _config(),
            transport=httpx.MockTransport(lambda request: httpx.Response(200, stream=body)),
        )

        stream = adapter.stream_deltas(_request())
        first = await stream.__anext__()
        await stream.aclose()

        assert first == Delta(content="one")
        assert body.closed
        assert body.sent < len(chunks)
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()
        await adapter.close()

    @pytest.mark.asyncio
    async def test_aclose_record_stream(self):
        body = ChunkedBody(split_every(openai_stream(["a", "b", "c"]), 40))
        adapter = OpenAICompatibleAdapter(
            _config(),
            transport=httpx.MockTransport(lambda request: httpx.Response(200, stream=body)),
        )

        records = adapter.chat_completion_stream(_request())
        first = await records.__anext__()
        await records.aclose()

        assert first == 'data: {"content": "a", "done": false}\n\n'
        assert body.closed
        await adapter.close()


# ============================================================
# Non-streaming
# ============================================================

class TestNonStreaming:
    """One round trip decoded with the family decoder."""

    @pytest.mark.asyncio
    async def test_ollama(self):
        adapter = OllamaAdapter(_config(), transport=json_transport({
            "model": "llama3.2",
            "message": {"role": "assistant", "content": "Hello!"},
            "done": True,
        }))
        response = await adapter.chat_completion(_request())
        await adapter.close()

        assert response.to_dict() == {"content": "Hello!", "model": "llama3.2", "done": True}

    @pytest.mark.asyncio
    async def test_openai(self):
        seen = []
        adapter = LMStudioAdapter(_config(), transport=json_transport({
            "model": "qwen",
            "choices": [{"message": {"role": "assistant", "content": "Hi there"}, "finish_reason": "stop"}],
        }, on_request=seen.append))
        response = await adapter.chat_completion(_request())
        await adapter.close()

        assert json.loads(seen[0].content)["stream"] is False
        assert response.content == "Hi there"
        assert response.done is True

    @pytest.mark.asyncio
    async def test_anthropic_tool_use_rendered_as_marker(self):
        adapter = AnthropicAdapter(_config(api_key="x"), transport=json_transport({
            "model": "claude-3-5-haiku-20241022",
            "stop_reason": "tool_use",
            "content": [
                {"type": "text", "text": "Searching. "},
                {"type": "tool_use", "id": "toolu_1", "name": "web_search", "input": {"query": "news"}},
            ],
        }))
        response = await adapter.chat_completion(_request())
        await adapter.close()

        assert response.done is False
        assert response.content.startswith("Searching. <tool_call>")
        assert response.content.endswith("</tool_call>")
        marker = response.content[len("Searching. <tool_call>"):-len("</tool_call>")]
        assert json.loads(marker) == {"id": "toolu_1", "name": "web_search", "arguments": {"query": "news"}}

    @pytest.mark.asyncio
    async def test_anthropic_end_turn(self):
        adapter = AnthropicAdapter(_config(api_key="x"), transport=json_transport({
            "stop_reason": "end_turn",
            "content": [{"type": "text", "text": "a"}, {"type": "text", "text": "b"}],
        }))
        response = await adapter.chat_completion(_request())
        await adapter.close()

        assert response.content == "ab"
        assert response.done is True
        assert response.model == "test-model"

    @pytest.mark.asyncio
    async def test_undecodable_body(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>oops</html>"))
        adapter = OllamaAdapter(_config(), transport=transport)

        with pytest.raises(MalformedResponseError) as exc_info:
            await adapter.chat_completion(_request())
        await adapter.close()

        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_wrong_shape(self):
        adapter = OpenAICompatibleAdapter(_config(), transport=json_transport({"choices": "nope"}))
        with pytest.raises(MalformedResponseError):
            await adapter.chat_completion(_request())
        await adapter.close()

    @pytest.mark.asyncio
    async def test_http_error(self):
        adapter = OllamaAdapter(_config(), transport=json_transport({"error": "overloaded"}, status_code=503))
        with pytest.raises(UpstreamError):
            await adapter.chat_completion(_request())
        await adapter.close()


# ============================================================
# Models and health
# ============================================================

class TestModelsAndHealth:
    """Model listing and connectivity checks."""

    @pytest.mark.asyncio
    async def test_ollama_tags(self):
        adapter = OllamaAdapter(_config(), transport=json_transport({"models": [
            {"name": "llama3.2:latest", "size": 2019393189, "modified_at": "2024-10-01T10:00:00Z"},
            {"size": 1},
        ]}))
        health = await adapter.health_check()
        await adapter.close()

        assert health.is_healthy
        assert [m.id for m in health.models] == ["llama3.2:latest"]
        assert health.to_dict()["models"][0]["size"] == 2019393189

    @pytest.mark.asyncio
    async def test_ollama_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        adapter = OllamaAdapter(_config(), transport=httpx.MockTransport(handler))
        health = await adapter.health_check()
        await adapter.close()

        assert health.to_dict() == {
            "provider": "ollama",
            "connected": False,
            "models": [],
            "error": "Cannot connect to Ollama",
        }

    @pytest.mark.asyncio
    async def test_openai_models(self):
        adapter = OpenAICompatibleAdapter(_config(), transport=json_transport({"data": [{"id": "qwen2.5"}]}))
        models = await adapter.list_models()
        await adapter.close()

        assert [m.id for m in models] == ["qwen2.5"]

    @pytest.mark.asyncio
    async def test_anthropic_requires_key(self):
        adapter = AnthropicAdapter(_config())
        health = await adapter.health_check()
        await adapter.close()

        assert not health.is_healthy
        assert health.last_error == "API key required"

    @pytest.mark.asyncio
    async def test_anthropic_invalid_key(self):
        adapter = AnthropicAdapter(_config(api_key="bad"), transport=json_transport({}, status_code=401))
        health = await adapter.health_check()
        await adapter.close()

        assert health.last_error == "Invalid API key"

    @pytest.mark.asyncio
    async def test_anthropic_catalog(self):
        adapter = AnthropicAdapter(_config(api_key="ok"), transport=json_transport({"content": []}))
        health = await adapter.health_check()
        await adapter.close()

        assert health.is_healthy
        assert len(health.models) == 4


# ============================================================
# Factory and stub
# ============================================================

class TestFactory:
    """create_adapter and the stub backend."""

    @pytest.mark.parametrize("provider,adapter_class", [
        (Provider.OLLAMA, OllamaAdapter),
        (Provider.LMSTUDIO, LMStudioAdapter),
        (Provider.OPENAI_COMPATIBLE, OpenAICompatibleAdapter),
        (Provider.ANTHROPIC, AnthropicAdapter),
        (Provider.STUB, StubAdapter),
    ])
    def test_create_adapter(self, provider, adapter_class):
        adapter = create_adapter(DEFAULT_PROVIDERS[provider])
        assert type(adapter) is adapter_class
        assert str(adapter.client.base_url).rstrip("/") == DEFAULT_PROVIDERS[provider].base_url

    def test_unknown_provider(self):
        config = ProviderConfig(type="bogus", name="Bogus", base_url="http://x")
        with pytest.raises(InvalidRequestError):
            create_adapter(config)

    @pytest.mark.asyncio
    async def test_stub_echo_stream(self):
        adapter = StubAdapter(_config())
        deltas = await _collect(adapter, _request(messages=[ChatMessage(role=Role.USER, content="hello there")]))
        await adapter.close()

        assert "".join(d.content for d in deltas) == "stub: hello there"
        assert deltas[-1].terminal

    @pytest.mark.asyncio
    async def test_stub_non_stream(self):
        adapter = StubAdapter(_config(), reply="fixed")
        response = await adapter.chat_completion(_request())
        await adapter.close()

        assert response.content == "fixed"
