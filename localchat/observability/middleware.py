"""
localchat - Observability Middleware

One middleware ties the three signals together for every API request:
a server span (continuing an incoming ``traceparent``), the request's
LogContext, and the request counter/histogram. The request id and trace
id are echoed back as ``X-Request-Id`` and ``X-Trace-Id``.

Usage:
    setup_observability(settings)
    app.add_middleware(ObservabilityMiddleware)
"""

import time
import uuid
from typing import Any, Dict, Optional

from fastapi import Request, Response
from opentelemetry.trace import Span, Status, StatusCode
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from ..core.config import Settings
from .logging import LogContext, get_logger, setup_logging
from .metrics import get_metrics, setup_metrics
from .tracing import TraceContext, get_tracing_manager, setup_tracing


def new_request_id() -> str:
    return f"req_{uuid.uuid4().hex[:24]}"


def get_request_id(request: Request) -> str:
    """Request ID assigned by the middleware, or a fresh one."""
    return getattr(request.state, "request_id", "") or new_request_id()


def _mark_span(span: Span, status_code: int):
    span.set_attribute("http.status_code", status_code)
    if status_code >= 500:
        span.set_status(Status(StatusCode.ERROR, f"HTTP {status_code}"))
    elif status_code >= 400:
        span.set_attribute("http.error", True)
    else:
        span.set_status(Status(StatusCode.OK))


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """
    Per-request span, log context and metrics.

    A streaming response is measured until its headers are sent; the
    adapter measures the stream itself.
    """

    EXCLUDE_PATHS = frozenset({"/health", "/metrics", "/openapi.json", "/docs", "/redoc"})

    def __init__(self, app: ASGIApp, exclude_paths: Optional[set] = None):
        super().__init__(app)
        self.exclude_paths = frozenset(exclude_paths) if exclude_paths else self.EXCLUDE_PATHS
        self.logger = get_logger("localchat.http")

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if path in self.exclude_paths:
            return await call_next(request)

        headers = dict(request.headers)
        request_id = headers.get("x-request-id") or new_request_id()
        started = time.perf_counter()

        span_cm = get_tracing_manager().start_server_span(
            f"{request.method} {path}",
            headers,
            attributes={
                "http.method": request.method,
                "http.route": path,
                "localchat.request_id": request_id,
            },
        )
        with span_cm as span:
            trace_ctx = TraceContext.from_span(span)
            request.state.request_id = request_id
            request.state.trace_id = trace_ctx.trace_id
            LogContext.set_current(LogContext(
                request_id=request_id,
                trace_id=trace_ctx.trace_id,
                span_id=trace_ctx.span_id,
                endpoint=path,
            ))

            try:
                response = await call_next(request)
                _mark_span(span, response.status_code)
                self._finish(request, response.status_code, started)
            except Exception as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                self._finish(request, 500, started)
                raise
            finally:
                LogContext.clear()

            response.headers["X-Request-Id"] = request_id
            response.headers["X-Trace-Id"] = trace_ctx.trace_id
            return response

    def _finish(self, request: Request, status_code: int, started: float):
        elapsed = time.perf_counter() - started
        get_metrics().record_request(
            endpoint=request.url.path,
            method=request.method,
            status_code=status_code,
            duration_seconds=elapsed,
        )

        fields = {
            "method": request.method,
            "path": request.url.path,
            "status_code": status_code,
            "duration_ms": round(elapsed * 1000, 2),
        }
        if status_code >= 500:
            self.logger.error("Request failed", **fields)
        elif status_code >= 400:
            self.logger.warning("Request rejected", **fields)
        else:
            self.logger.info("Request completed", **fields)


_announced = False


def setup_observability(
    settings: Settings,
    service_name: str = "localchat",
    service_version: str = "1.0.0",
) -> Dict[str, Any]:
    """Configure logging, metrics and tracing from settings; repeatable."""
    global _announced

    setup_logging(level=settings.log_level, json_output=settings.log_format == "json")
    components: Dict[str, Any] = {
        "logging": True,
        "metrics": setup_metrics(),
        "tracing": setup_tracing(
            service_name=service_name,
            service_version=service_version,
            otlp_endpoint=settings.otlp_endpoint,
        ),
    }

    if not _announced:
        get_logger("localchat.observability").info(
            "Observability initialized",
            service_name=service_name,
            service_version=service_version,
            log_format=settings.log_format,
            otlp_endpoint=settings.otlp_endpoint or "none",
        )
        _announced = True

    return components
