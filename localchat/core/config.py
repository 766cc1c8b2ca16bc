"""
localchat - Configuration

Environment-driven settings. Everything is read once through
``get_settings()``; tests build ``Settings.from_env(mapping)`` directly.
"""

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Mapping, Optional

from .models import DEFAULT_PROVIDERS, Provider, ProviderConfig


DEFAULT_MODEL = "llama3.2"

DEFAULT_SYSTEM_PROMPT = (
    "You are a friendly and helpful local AI assistant. "
    "You run locally on the user's machine and all conversations stay local. "
    "Be helpful, be concise, and be real."
)

_TRUTHY = {"1", "true", "yes", "on"}


def _is_truthy(value: Optional[str]) -> bool:
    """Check if environment variable is truthy."""
    if value is None:
        return False
    return value.strip().lower() in _TRUTHY


def _parse_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{key} must be positive, got {raw!r}")
    return value


def _parse_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{key} must be positive, got {raw!r}")
    return value


def _parse_provider(raw: str) -> Provider:
    try:
        return Provider(raw.strip().lower())
    except ValueError:
        valid = ", ".join(p.value for p in Provider)
        raise ValueError(f"LOCALCHAT_PROVIDER must be one of: {valid}") from None


@dataclass
class Settings:
    """Resolved runtime configuration."""
    provider: Provider = Provider.OLLAMA
    provider_url: str = ""
    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    system_prompt: str = DEFAULT_SYSTEM_PROMPT

    upstream_timeout: float = 120.0
    tool_timeout: float = 30.0
    tool_max_concurrent: int = 10
    tool_service_url: Optional[str] = None
    tool_marker_open: str = "<tool_call>"
    tool_marker_close: str = "</tool_call>"

    use_stub_adapters: bool = False
    cors_allow_origins: List[str] = field(default_factory=list)

    log_level: str = "INFO"
    log_format: str = "json"
    otlp_endpoint: Optional[str] = None

    host: str = "127.0.0.1"
    port: int = 8000

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from an environment mapping (defaults to ``os.environ``)."""
        env = os.environ if env is None else env

        provider = _parse_provider(env.get("LOCALCHAT_PROVIDER", "ollama"))
        if _is_truthy(env.get("USE_STUB_ADAPTERS")):
            provider = Provider.STUB

        api_key = env.get("LOCALCHAT_API_KEY") or None
        if api_key is None and provider == Provider.ANTHROPIC:
            api_key = env.get("ANTHROPIC_API_KEY") or None

        origins = [
            origin.strip()
            for origin in env.get("CORS_ALLOW_ORIGINS", "").split(",")
            if origin.strip()
        ]

        log_format = env.get("LOG_FORMAT", "json").strip().lower()
        if log_format not in {"json", "text"}:
            raise ValueError("LOG_FORMAT must be one of: json, text")

        return cls(
            provider=provider,
            provider_url=env.get("LOCALCHAT_PROVIDER_URL", "").strip(),
            api_key=api_key,
            model=env.get("LOCALCHAT_MODEL", "").strip() or DEFAULT_MODEL,
            system_prompt=env.get("LOCALCHAT_SYSTEM_PROMPT") or DEFAULT_SYSTEM_PROMPT,
            upstream_timeout=_parse_float(env, "UPSTREAM_TIMEOUT_SECONDS", 120.0),
            tool_timeout=_parse_float(env, "TOOL_TIMEOUT_SECONDS", 30.0),
            tool_max_concurrent=_parse_int(env, "TOOL_MAX_CONCURRENT", 10),
            tool_service_url=env.get("TOOL_SERVICE_URL", "").strip() or None,
            tool_marker_open=env.get("TOOL_MARKER_OPEN") or "<tool_call>",
            tool_marker_close=env.get("TOOL_MARKER_CLOSE") or "</tool_call>",
            use_stub_adapters=_is_truthy(env.get("USE_STUB_ADAPTERS")),
            cors_allow_origins=origins,
            log_level=env.get("LOG_LEVEL", "INFO").strip().upper() or "INFO",
            log_format=log_format,
            otlp_endpoint=env.get("OTEL_EXPORTER_OTLP_ENDPOINT") or None,
            host=env.get("HOST", "127.0.0.1").strip() or "127.0.0.1",
            port=_parse_int(env, "PORT", 8000),
        )

    def provider_config(self) -> ProviderConfig:
        """Provider config with defaults filled in from the built-in table."""
        default = DEFAULT_PROVIDERS[self.provider]
        return ProviderConfig(
            type=self.provider,
            name=default.name,
            base_url=(self.provider_url or default.base_url).rstrip("/"),
            api_key=self.api_key if self.api_key is not None else default.api_key,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, read from the environment on first use."""
    return Settings.from_env()
