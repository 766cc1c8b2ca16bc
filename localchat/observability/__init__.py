"""
localchat - Observability Module

- Prometheus metrics (streams, deltas, malformed records, tool calls)
- OpenTelemetry distributed tracing
- Structured JSON logging with context injection

Usage:
    from localchat.observability import get_logger, get_metrics

    logger = get_logger(__name__)
    metrics = get_metrics()
"""

from .metrics import (
    MetricsCollector,
    get_metrics,
    setup_metrics,
    metrics_endpoint,
)
from .tracing import (
    TracingManager,
    get_tracing_manager,
    setup_tracing,
    trace_backend_call,
)
from .logging import (
    JSONFormatter,
    TextFormatter,
    StructuredLogger,
    TimedOperation,
    get_logger,
    setup_logging,
    LogContext,
)
from .middleware import (
    ObservabilityMiddleware,
    get_request_id,
    setup_observability,
)

__all__ = [
    # Metrics
    "MetricsCollector",
    "get_metrics",
    "setup_metrics",
    "metrics_endpoint",
    # Tracing
    "TracingManager",
    "get_tracing_manager",
    "setup_tracing",
    "trace_backend_call",
    # Logging
    "JSONFormatter",
    "TextFormatter",
    "StructuredLogger",
    "TimedOperation",
    "get_logger",
    "setup_logging",
    "LogContext",
    # Combined
    "ObservabilityMiddleware",
    "get_request_id",
    "setup_observability",
]
