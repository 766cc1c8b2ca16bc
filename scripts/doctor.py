"""Environment compatibility and preflight checks for local setup."""

from __future__ import annotations

import os
import socket
import sys
from dataclasses import dataclass
from typing import List, Mapping, Optional, Tuple

import httpx

from localchat.core.config import Settings
from localchat.core.models import Provider

MIN_PYTHON = (3, 10)
MAX_TESTED_PYTHON = (3, 13)


@dataclass
class DoctorResult:
    ok: bool
    messages: List[str]


def _python_version_tuple() -> Tuple[int, int, int]:
    v = sys.version_info
    return (v.major, v.minor, v.micro)


def _check_python_version(errors: List[str], warnings: List[str]) -> None:
    current = _python_version_tuple()
    if current[:2] < MIN_PYTHON:
        errors.append(
            f"Python {current[0]}.{current[1]} is unsupported. "
            f"Use Python {MIN_PYTHON[0]}.{MIN_PYTHON[1]} or newer."
        )
    elif current[:2] > MAX_TESTED_PYTHON:
        warnings.append(
            f"Python {current[0]}.{current[1]} is newer than the last tested "
            f"release ({MAX_TESTED_PYTHON[0]}.{MAX_TESTED_PYTHON[1]})."
        )


def _load_settings(env: Mapping[str, str], errors: List[str]) -> Optional[Settings]:
    try:
        return Settings.from_env(env)
    except ValueError as exc:
        errors.append(str(exc))
        return None


def _check_url(name: str, value: str, errors: List[str]) -> None:
    try:
        url = httpx.URL(value)
    except httpx.InvalidURL:
        errors.append(f"{name} is not a valid URL: `{value}`.")
        return
    if url.scheme not in {"http", "https"} or not url.host:
        errors.append(f"{name} must be an http(s) URL, got `{value}`.")


def _check_provider(settings: Settings, errors: List[str], warnings: List[str]) -> None:
    config = settings.provider_config()

    if settings.provider == Provider.STUB:
        warnings.append("USE_STUB_ADAPTERS=true: replies come from the stub backend, not a model.")
        return

    _check_url("LOCALCHAT_PROVIDER_URL", config.base_url, errors)

    if settings.provider == Provider.ANTHROPIC and not config.api_key:
        errors.append(
            "LOCALCHAT_PROVIDER=anthropic requires `LOCALCHAT_API_KEY` or `ANTHROPIC_API_KEY`."
        )


def _check_tools(settings: Settings, errors: List[str], warnings: List[str]) -> None:
    if settings.tool_marker_open == settings.tool_marker_close:
        errors.append("TOOL_MARKER_OPEN and TOOL_MARKER_CLOSE must differ.")

    if settings.tool_service_url:
        _check_url("TOOL_SERVICE_URL", settings.tool_service_url, errors)
    else:
        warnings.append("TOOL_SERVICE_URL not set: no tools are offered to the model.")


def _check_port_binding(settings: Settings, errors: List[str]) -> None:
    host = settings.host
    port = settings.port

    if not (0 < port < 65536):
        errors.append(f"PORT must be between 1 and 65535, got `{port}`.")
        return

    bind_host = "127.0.0.1" if host in {"0.0.0.0", "localhost", ""} else host
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((bind_host, port))
    except OSError as exc:
        errors.append(
            f"PORT/HOST conflict: cannot bind {bind_host}:{port} ({exc}). "
            "Pick a free port, e.g. `PORT=8010 python -m localchat`."
        )
    finally:
        sock.close()


def run_doctor(env: Optional[Mapping[str, str]] = None) -> DoctorResult:
    env_map: Mapping[str, str] = env or os.environ
    errors: List[str] = []
    warnings: List[str] = []

    _check_python_version(errors, warnings)
    settings = _load_settings(env_map, errors)
    if settings is not None:
        _check_provider(settings, errors, warnings)
        _check_tools(settings, errors, warnings)
        _check_port_binding(settings, errors)

    messages: List[str] = []
    if errors:
        messages.append("Doctor found configuration issues:")
        for i, msg in enumerate(errors, 1):
            messages.append(f"{i}. {msg}")
        messages.append("Fix the items above and rerun `python scripts/doctor.py`.")
    else:
        messages.append("Doctor checks passed.")

    if warnings:
        messages.append("Warnings:")
        for i, msg in enumerate(warnings, 1):
            messages.append(f"- {msg}")

    return DoctorResult(ok=not errors, messages=messages)


def main() -> int:
    result = run_doctor()
    print("\n".join(result.messages))
    return 0 if result.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
