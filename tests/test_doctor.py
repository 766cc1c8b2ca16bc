"""Tests for preflight doctor checks."""

from __future__ import annotations

import socket

from scripts.doctor import run_doctor


def _free_port() -> str:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return str(sock.getsockname()[1])


def _env(**overrides: str) -> dict:
    env = {"HOST": "127.0.0.1", "PORT": _free_port()}
    env.update(overrides)
    return env


def test_doctor_passes_in_stub_mode() -> None:
    result = run_doctor(_env(USE_STUB_ADAPTERS="true"))
    assert result.ok is True
    assert result.messages[0] == "Doctor checks passed."
    joined = "\n".join(result.messages)
    assert "USE_STUB_ADAPTERS" in joined
    assert "TOOL_SERVICE_URL" in joined


def test_doctor_fails_when_anthropic_key_missing() -> None:
    result = run_doctor(_env(LOCALCHAT_PROVIDER="anthropic"))
    assert result.ok is False
    assert result.messages[0] == "Doctor found configuration issues:"
    assert "ANTHROPIC_API_KEY" in "\n".join(result.messages)


def test_doctor_passes_with_anthropic_key() -> None:
    result = run_doctor(_env(LOCALCHAT_PROVIDER="anthropic", ANTHROPIC_API_KEY="sk-ant"))
    assert result.ok is True


def test_doctor_fails_on_bad_number() -> None:
    result = run_doctor(_env(USE_STUB_ADAPTERS="true", TOOL_TIMEOUT_SECONDS="soon"))
    assert result.ok is False
    assert "TOOL_TIMEOUT_SECONDS" in "\n".join(result.messages)


def test_doctor_fails_on_identical_markers() -> None:
    result = run_doctor(_env(USE_STUB_ADAPTERS="true", TOOL_MARKER_OPEN="##", TOOL_MARKER_CLOSE="##"))
    assert result.ok is False
    assert "TOOL_MARKER_OPEN" in "\n".join(result.messages)


def test_doctor_fails_on_bad_provider_url() -> None:
    result = run_doctor(_env(LOCALCHAT_PROVIDER="ollama", LOCALCHAT_PROVIDER_URL="ftp://models"))
    assert result.ok is False
    assert "LOCALCHAT_PROVIDER_URL" in "\n".join(result.messages)


def test_doctor_fails_when_port_taken() -> None:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        sock.listen(1)
        port = str(sock.getsockname()[1])
        result = run_doctor({"USE_STUB_ADAPTERS": "true", "HOST": "127.0.0.1", "PORT": port})

    assert result.ok is False
    assert "PORT/HOST conflict" in "\n".join(result.messages)
