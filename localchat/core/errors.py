"""
localchat - Error Definitions

Every failure a client can see is one of two kinds:
- INFRA ("upstream_unavailable"): the backend could not be reached,
  timed out, answered 5xx, broke mid-stream or sent something
  undecodable. Retrying later may help.
- SEMANTIC ("request_malformed"): the request itself is wrong. Bad
  fields, an unknown model, rejected credentials.

Record-level decode failures and tool failures never surface here: the
streaming layer skips bad records and the tool executor captures
failures into per-call results.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

import httpx


class ErrorType(str, Enum):
    """Error classification."""
    INFRA = "upstream_unavailable"
    SEMANTIC = "request_malformed"


@dataclass
class ErrorDetails:
    """Error body shared by HTTP error responses and stream error records."""
    code: str
    message: str
    type: ErrorType

    provider: Optional[str] = None
    param: Optional[str] = None
    request_id: str = ""

    retryable: bool = False
    partial_content: Optional[str] = None

    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "type": self.type.value,
            "request_id": self.request_id,
            "retryable": self.retryable,
        }
        optional = {
            "provider": self.provider,
            "param": self.param,
            "partial_content": self.partial_content,
            "details": self.details,
        }
        body.update({key: value for key, value in optional.items() if value})
        return {"error": body}


class LocalChatException(Exception):
    """Base exception for all localchat errors."""

    def __init__(self, error: ErrorDetails, status_code: int = 500):
        self.error = error
        self.status_code = status_code
        super().__init__(error.message)


# ============================================================
# Infra errors
# ============================================================

class InfraError(LocalChatException):
    """The backend is unavailable; the request may succeed later."""

    code = "unknown_error"
    http_status = 502
    retryable = True

    @classmethod
    def build(cls, message: str, provider: Optional[str] = None, request_id: str = "", **extra) -> ErrorDetails:
        return ErrorDetails(
            code=extra.pop("code", cls.code),
            message=message,
            type=ErrorType.INFRA,
            provider=provider,
            request_id=request_id,
            retryable=extra.pop("retryable", cls.retryable),
            **extra,
        )


class ConnectionFailedError(InfraError):
    code = "connection_failed"
    http_status = 503

    def __init__(self, provider: str, request_id: str = "", message: str = ""):
        message = message or f"Cannot connect to {provider}. Is it running?"
        super().__init__(self.build(message, provider, request_id), self.http_status)


class ReadTimeoutError(InfraError):
    code = "read_timeout"
    http_status = 504

    def __init__(self, provider: str, request_id: str = ""):
        message = f"{provider} did not respond within timeout"
        super().__init__(self.build(message, provider, request_id), self.http_status)


class UpstreamError(InfraError):
    """The backend answered with a server error (or throttled us)."""

    def __init__(self, provider: str, status_code: int, message: str = "", request_id: str = ""):
        details = self.build(
            message or f"{provider} returned error {status_code}",
            provider,
            request_id,
            code=f"upstream_{status_code}" if status_code >= 500 else "upstream_error",
            details={"upstream_status": status_code},
        )
        super().__init__(details, self.http_status)


class StreamInterruptedError(InfraError):
    """The stream broke after some content was already delivered."""

    code = "stream_interrupted"
    retryable = False

    def __init__(self, provider: str, partial_content: str = "", request_id: str = "", message: str = ""):
        details = self.build(
            message or "Connection lost after receiving partial content",
            provider,
            request_id,
            partial_content=partial_content or None,
        )
        super().__init__(details, self.http_status)


class MalformedResponseError(InfraError):
    """A complete (non-streaming) response body did not decode."""

    code = "malformed_response"

    def __init__(self, provider: str, request_id: str = "", body_preview: str = ""):
        details = self.build(
            f"{provider} returned a response that could not be decoded",
            provider,
            request_id,
            details={"body_preview": body_preview[:200]} if body_preview else {},
        )
        super().__init__(details, self.http_status)


class ServiceUnavailableError(InfraError):
    """localchat itself is not ready to serve (lifespan still starting)."""

    code = "service_unavailable"
    http_status = 503

    def __init__(self, what: str):
        message = f"{what} not initialized. Server may be starting up."
        super().__init__(self.build(message), self.http_status)


# ============================================================
# Semantic errors
# ============================================================

class SemanticError(LocalChatException):
    """The request itself is wrong; retrying it unchanged will not help."""

    code = "invalid_request"
    http_status = 400

    @classmethod
    def build(cls, message: str, provider: Optional[str] = None, request_id: str = "", **extra) -> ErrorDetails:
        return ErrorDetails(
            code=cls.code,
            message=message,
            type=ErrorType.SEMANTIC,
            provider=provider,
            request_id=request_id,
            retryable=False,
            **extra,
        )


class InvalidRequestError(SemanticError):
    def __init__(self, message: str, param: str = "", request_id: str = "", provider: Optional[str] = None):
        details = self.build(message, provider, request_id, param=param or None)
        super().__init__(details, self.http_status)


class ModelNotFoundError(SemanticError):
    code = "model_not_found"
    http_status = 404

    def __init__(self, provider: str, message: str = "", request_id: str = ""):
        details = self.build(message or f"Model not found on {provider}", provider, request_id, param="model")
        super().__init__(details, self.http_status)


class ProviderAuthError(SemanticError):
    """The backend rejected the configured credentials."""

    code = "provider_auth_error"

    def __init__(self, provider: str, message: str = "", request_id: str = "", status_code: int = 401):
        text = f"{provider} authentication failed"
        if message:
            text = f"{text}: {message}"
        super().__init__(self.build(text, provider, request_id), status_code)


class ToolExecutionError(Exception):
    """Raised by a tool executor; always captured into a ToolResult."""


# ============================================================
# httpx error mapping
# ============================================================

def _error_message_from_body(response: httpx.Response) -> str:
    """Human-readable message from an error body, or ``""``."""
    try:
        body = response.read().decode("utf-8", errors="replace")
    except (httpx.HTTPError, RuntimeError):
        # Unread async stream bodies cannot be read synchronously
        return ""

    try:
        data = json.loads(body)
    except ValueError:
        return body.strip()[:500]

    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        return str(error.get("message") or error)
    if isinstance(error, str):
        return error
    return body.strip()[:500]


def _from_status(status_code: int, message: str, provider: str, request_id: str) -> LocalChatException:
    if status_code in (401, 403):
        return ProviderAuthError(provider, message, request_id, status_code=status_code)

    if status_code == 404:
        if "model" in message.lower():
            return ModelNotFoundError(provider, message, request_id)
        return InvalidRequestError(message or "Endpoint not found", request_id=request_id, provider=provider)

    if status_code >= 500 or status_code == 429:
        return UpstreamError(provider, status_code, message, request_id)

    return InvalidRequestError(
        message or f"{provider} rejected the request ({status_code})",
        request_id=request_id,
        provider=provider,
    )


def handle_http_error(error: Exception, provider: str, request_id: str = "") -> LocalChatException:
    """
    Map an httpx exception onto the localchat error it stands for.

    Connect failures, timeouts, 429 and 5xx are INFRA; other 4xx
    responses are SEMANTIC. Already-mapped errors pass through.
    """
    if isinstance(error, LocalChatException):
        return error

    if isinstance(error, httpx.ConnectTimeout):
        return ConnectionFailedError(provider, request_id)
    if isinstance(error, httpx.TimeoutException):
        return ReadTimeoutError(provider, request_id)
    if isinstance(error, (httpx.ConnectError, httpx.RemoteProtocolError)):
        return ConnectionFailedError(provider, request_id)

    if isinstance(error, httpx.HTTPStatusError):
        response = error.response
        return _from_status(response.status_code, _error_message_from_body(response), provider, request_id)

    if isinstance(error, httpx.HTTPError):
        return ConnectionFailedError(provider, request_id, message=str(error))

    return InfraError(InfraError.build(str(error), provider, request_id), status_code=500)


# ============================================================
# Streaming error record
# ============================================================

def create_stream_error_chunk(error: LocalChatException, partial_content: str = "") -> str:
    """
    Terminal records of a failed stream.

    A failed stream ends with exactly one error record followed by the
    ``[DONE]`` sentinel, so consumers see a single terminal condition.
    """
    if partial_content:
        error.error.partial_content = partial_content

    record = {
        "content": "",
        "done": True,
        "error": error.error.to_dict()["error"],
    }
    return f"data: {json.dumps(record)}\n\ndata: [DONE]\n\n"
