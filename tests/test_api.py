"""
localchat - API Tests

End-to-end through the FastAPI app with the stub backend (or a mock
transport); no real network calls.
"""

import json

import pytest
from fastapi.testclient import TestClient

from localchat.core.config import Settings
from localchat.server import create_app

from conftest import streaming_transport


def _records(body: str):
    """Split an SSE body into its ``data:`` payloads."""
    return [block[len("data: "):] for block in body.split("\n\n") if block]


@pytest.fixture
def client(stub_settings):
    with TestClient(create_app(stub_settings)) as client:
        yield client


@pytest.fixture
def failing_client():
    """App whose Ollama backend answers every request with a 500."""
    settings = Settings.from_env({"LOCALCHAT_PROVIDER": "ollama", "LOG_FORMAT": "text", "LOG_LEVEL": "WARNING"})
    transport = streaming_transport(
        [b'{"error": "runner crashed"}'],
        status_code=500,
        content_type="application/json",
    )
    with TestClient(create_app(settings, transport=transport)) as client:
        yield client


class TestHealth:
    """Core endpoints."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["provider"] == "stub"
        assert "version" in data

    def test_metrics(self, client):
        client.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}]})
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "localchat_" in response.text


class TestChatStream:
    """POST /api/chat/stream"""

    def test_stream_records(self, client):
        response = client.post("/api/chat/stream", json={"messages": [{"role": "user", "content": "hi"}]})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["x-request-id"]

        records = _records(response.text)
        assert records[-1] == "[DONE]"
        assert records.count("[DONE]") == 1
        payloads = [json.loads(r) for r in records[:-1]]
        assert "".join(p["content"] for p in payloads) == "stub: hi"
        # the terminal Delta carries no content, so only [DONE] marks the end
        assert all(p["done"] is False for p in payloads)

    def test_request_id_propagated(self, client):
        response = client.post(
            "/api/chat/stream",
            json={"messages": [{"role": "user", "content": "hi"}]},
            headers={"X-Request-Id": "req-abc"},
        )
        assert response.headers["x-request-id"] == "req-abc"

    def test_upstream_failure_single_error_record(self, failing_client):
        response = failing_client.post("/api/chat/stream", json={"messages": [{"role": "user", "content": "hi"}]})

        assert response.status_code == 200
        records = _records(response.text)
        assert len(records) == 2
        assert records[1] == "[DONE]"
        error_record = json.loads(records[0])
        assert error_record["done"] is True
        assert error_record["error"]["type"] == "upstream_unavailable"
        assert error_record["error"]["provider"] == "ollama"


class TestChat:
    """POST /api/chat and /api/chat/turn"""

    def test_non_streaming(self, client):
        response = client.post(
            "/api/chat",
            json={"messages": [{"role": "user", "content": "hello"}], "model": "m1"},
        )
        assert response.status_code == 200
        assert response.json() == {"content": "stub: hello", "model": "m1", "done": True}
        assert response.headers["x-request-id"]

    def test_non_streaming_response_schema(self, client):
        schema = client.get("/openapi.json").json()
        ok = schema["paths"]["/api/chat"]["post"]["responses"]["200"]
        assert ok["content"]["application/json"]["schema"]["$ref"].endswith("/ChatResponseBody")
        assert set(schema["components"]["schemas"]["ChatResponseBody"]["required"]) == {"content", "model", "done"}

    def test_non_streaming_upstream_error(self, failing_client):
        response = failing_client.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}]})

        assert response.status_code == 502
        assert response.headers["x-error-type"] == "upstream_unavailable"
        assert response.json()["error"]["code"] == "upstream_500"

    def test_turn_with_unknown_tool(self, client):
        content = 'please <tool_call>{"name": "x"}</tool_call>'
        response = client.post("/api/chat/turn", json={"messages": [{"role": "user", "content": content}]})

        assert response.status_code == 200
        data = response.json()
        assert data["visibleText"] == "stub: please"
        assert data["toolCalls"] == [{"id": "call_1", "name": "x", "arguments": {}}]
        assert data["toolResults"][0]["errorKind"] == "unknown_tool"
        assert data["content"] == "stub: please\n\n❌ x failed: Unknown tool: x"

    def test_turn_without_tools(self, client):
        response = client.post("/api/chat/turn", json={"messages": [{"role": "user", "content": "plain"}]})
        assert response.json()["content"] == "stub: plain"
        assert response.json()["toolResults"] == []

    @pytest.mark.parametrize("body", [
        {"messages": []},
        {},
        {"messages": [{"role": "robot", "content": "hi"}]},
        {"messages": [{"role": "user", "content": "hi"}], "temperature": 5},
    ])
    def test_invalid_body(self, client, body):
        assert client.post("/api/chat", json=body).status_code == 422


class TestTools:
    """/api/tools"""

    def test_list_tools_empty_without_service(self, client):
        assert client.get("/api/tools").json() == {"tools": []}

    def test_execute_empty_batch(self, client):
        response = client.post("/api/tools/execute", json={"toolCalls": []})

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["message"] == "No tool calls provided"
        assert error["type"] == "request_malformed"
        assert response.headers["x-error-type"] == "request_malformed"

    def test_execute_unknown_tool(self, client):
        response = client.post(
            "/api/tools/execute",
            json={"toolCalls": [{"name": "web_search", "arguments": {"query": "q"}}]},
        )

        assert response.status_code == 200
        results = response.json()["results"]
        assert results == [{
            "toolCallId": "call_1",
            "name": "web_search",
            "success": False,
            "error": "Unknown tool: web_search",
            "errorKind": "unknown_tool",
        }]


class TestProviders:
    """/api/providers"""

    def test_status(self, client):
        data = client.get("/api/providers/status").json()
        assert data["provider"] == "stub"
        assert data["connected"] is True
        assert data["models"][0]["id"] == "stub-model"

    def test_models(self, client):
        data = client.get("/api/providers/models").json()
        assert data == {
            "provider": "stub",
            "models": [{"id": "stub-model", "name": "Stub", "provider": "stub"}],
        }
