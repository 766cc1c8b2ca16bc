"""
localchat - OpenTelemetry Tracing

Span layout of one chat request:

    POST /api/chat/stream            SERVER  (ObservabilityMiddleware)
    └── ollama.chat_stream           CLIENT  (BaseAdapter.stream_deltas)
    POST /api/chat/turn              SERVER
    ├── ollama.chat_stream           CLIENT
    └── tool.web_search              CLIENT  (one per dispatched call)

Incoming ``traceparent`` headers are honored, so a UI that traces its
own requests sees localchat's spans in the same trace. Spans are
exported over OTLP when OTEL_EXPORTER_OTLP_ENDPOINT is set and the
exporter package is installed (extra ``otlp``).
"""

import os
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Optional

from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.propagate import extract, set_global_textmap
from opentelemetry.sdk.resources import Resource, SERVICE_NAME, SERVICE_VERSION
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
)
from opentelemetry.trace import Span, SpanKind, Status, StatusCode
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

# Optional OTLP exporter (requires opentelemetry-exporter-otlp)
try:
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    OTLP_AVAILABLE = True
except ImportError:
    OTLP_AVAILABLE = False


# ============================================================
# Span attributes
# ============================================================

def backend_attributes(provider: str, model: str, request_id: str = "", **extra: Any) -> Dict[str, Any]:
    """Attributes of a span around a backend call."""
    attributes: Dict[str, Any] = {
        "localchat.provider": provider,
        "localchat.model": model,
    }
    if request_id:
        attributes["localchat.request_id"] = request_id
    attributes.update({f"localchat.{key}": value for key, value in extra.items()})
    return attributes


def tool_attributes(name: str, call_id: str) -> Dict[str, Any]:
    """Attributes of a span around one tool invocation."""
    return {"localchat.tool.name": name, "localchat.tool.call_id": call_id}


@dataclass
class TraceContext:
    """Hex trace identifiers of a span, as returned in X-Trace-Id."""
    trace_id: str
    span_id: str
    trace_flags: int = 1

    @classmethod
    def from_span(cls, span: Span) -> "TraceContext":
        ctx = span.get_span_context()
        return cls(
            trace_id=format(ctx.trace_id, "032x"),
            span_id=format(ctx.span_id, "016x"),
            trace_flags=ctx.trace_flags,
        )

    def to_traceparent(self) -> str:
        """W3C traceparent header value."""
        return f"00-{self.trace_id}-{self.span_id}-{self.trace_flags:02x}"


# ============================================================
# Manager
# ============================================================

_global_provider_installed = False


class TracingManager:
    """Owns the tracer provider and hands out localchat's spans."""

    def __init__(
        self,
        service_name: str = "localchat",
        service_version: str = "1.0.0",
        otlp_endpoint: Optional[str] = None,
        console_export: bool = False,
    ):
        global _global_provider_installed

        self.service_name = service_name
        self.service_version = service_version

        self.provider = TracerProvider(resource=Resource.create({
            SERVICE_NAME: service_name,
            SERVICE_VERSION: service_version,
        }))

        if otlp_endpoint and OTLP_AVAILABLE:
            self.provider.add_span_processor(
                BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint))
            )

        if console_export:
            self.provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

        # The global provider can only be set once per process; spans are
        # created from our own provider either way
        if not _global_provider_installed:
            trace.set_tracer_provider(self.provider)
            set_global_textmap(TraceContextTextMapPropagator())
            _global_provider_installed = True

        self.tracer = self.provider.get_tracer(service_name, service_version)

    @classmethod
    def reset_instance(cls):
        """Forget the shared manager; the next lookup builds a fresh one."""
        global _tracing_instance
        _tracing_instance = None

    def extract_context(self, headers: Dict[str, str]) -> Context:
        """Trace context carried by incoming request headers."""
        return extract({k.lower(): v for k, v in headers.items()})

    def start_server_span(
        self,
        name: str,
        headers: Dict[str, str],
        attributes: Optional[Dict[str, Any]] = None,
    ):
        """Current-span context manager for an incoming HTTP request."""
        return self.tracer.start_as_current_span(
            name,
            kind=SpanKind.SERVER,
            attributes=attributes,
            context=self.extract_context(headers),
        )

    def start_client_span(
        self,
        name: str,
        attributes: Optional[Dict[str, Any]] = None,
    ):
        """Current-span context manager for an outgoing call."""
        return self.tracer.start_as_current_span(
            name,
            kind=SpanKind.CLIENT,
            attributes=attributes,
        )

    def open_client_span(
        self,
        name: str,
        attributes: Optional[Dict[str, Any]] = None,
    ) -> Span:
        """
        Client span that is not made current; the caller ends it.

        Async generators may be resumed and closed from a different
        context than the one they started in, so a stream cannot hold a
        current-span token across its lifetime.
        """
        return self.tracer.start_span(name, kind=SpanKind.CLIENT, attributes=attributes)

    def record_exception(self, exception: BaseException, span: Optional[Span] = None):
        """Mark the given (or current) span as failed."""
        span = span or trace.get_current_span()
        span.record_exception(exception)
        span.set_status(Status(StatusCode.ERROR, str(exception)))

    def shutdown(self):
        """Flush and stop exporters."""
        self.provider.shutdown()


_tracing_instance: Optional[TracingManager] = None


def setup_tracing(
    service_name: str = "localchat",
    service_version: str = "1.0.0",
    otlp_endpoint: Optional[str] = None,
    console_export: bool = False,
) -> TracingManager:
    """Build the shared manager; each app lifespan gets a fresh one."""
    global _tracing_instance

    if otlp_endpoint is None:
        otlp_endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if os.getenv("OTEL_CONSOLE_EXPORT", "").lower() == "true":
        console_export = True

    _tracing_instance = TracingManager(
        service_name=service_name,
        service_version=service_version,
        otlp_endpoint=otlp_endpoint,
        console_export=console_export,
    )
    return _tracing_instance


def get_tracing_manager() -> TracingManager:
    """The shared manager, created with defaults on first use."""
    global _tracing_instance
    if _tracing_instance is None:
        _tracing_instance = TracingManager()
    return _tracing_instance


@contextmanager
def trace_backend_call(provider: str, model: str, operation: str, request_id: str = ""):
    """
    Client span around one non-streaming backend call.

    Usage:
        with trace_backend_call("ollama", "llama3.2", "chat", request_id):
            response = await client.post(...)
    """
    with get_tracing_manager().start_client_span(
        f"{provider}.{operation}",
        attributes=backend_attributes(provider, model, request_id, operation=operation),
    ) as span:
        yield span
