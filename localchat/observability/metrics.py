"""
localchat - Prometheus Metrics

HTTP:
- localchat_requests_total{endpoint,method,status}
- localchat_request_duration_seconds{endpoint,method}

Streams (recorded by the adapters when a stream closes):
- localchat_streams_total{provider,outcome}  outcome = completed/error/cancelled
- localchat_deltas_total{provider}
- localchat_malformed_records_total{provider}
- localchat_time_to_first_delta_seconds{provider}
- localchat_active_streams{provider}

Tools (recorded by the parallel executor per call):
- localchat_tool_calls_total{tool,status}  status = ToolResult.status
- localchat_tool_duration_seconds{tool}

Usage:
    metrics = get_metrics()
    metrics.record_stream("ollama", "completed", deltas=12, skipped=0)
"""

import weakref
from typing import Optional

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

from .. import __version__

HTTP_BUCKETS = (0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 25.0, 50.0, 100.0, float("inf"))
FIRST_DELTA_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, float("inf"))
TOOL_BUCKETS = (0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0, float("inf"))


class MetricsCollector:
    """
    localchat's metric families on one registry.

    prometheus_client refuses to register a name twice, so collectors
    built on the same registry share the first collector's families.
    """

    _families: "weakref.WeakKeyDictionary[CollectorRegistry, dict]" = weakref.WeakKeyDictionary()

    def __init__(self, registry: CollectorRegistry = REGISTRY):
        self.registry = registry

        families = MetricsCollector._families.get(registry)
        if families is None:
            families = self._register(registry)
            MetricsCollector._families[registry] = families
        self.__dict__.update(families)

    @staticmethod
    def _register(registry: CollectorRegistry) -> dict:
        info = Info("localchat", "localchat service information", registry=registry)
        info.info({"version": __version__, "service": "localchat"})

        return {
            "info": info,
            "requests_total": Counter(
                "localchat_requests_total",
                "HTTP requests by endpoint, method and status",
                labelnames=["endpoint", "method", "status"],
                registry=registry,
            ),
            "request_duration": Histogram(
                "localchat_request_duration_seconds",
                "HTTP request duration",
                labelnames=["endpoint", "method"],
                buckets=HTTP_BUCKETS,
                registry=registry,
            ),
            "streams_total": Counter(
                "localchat_streams_total",
                "Upstream streams by outcome",
                labelnames=["provider", "outcome"],
                registry=registry,
            ),
            "deltas_total": Counter(
                "localchat_deltas_total",
                "Normalized deltas emitted",
                labelnames=["provider"],
                registry=registry,
            ),
            "malformed_records_total": Counter(
                "localchat_malformed_records_total",
                "Upstream records skipped as undecodable",
                labelnames=["provider"],
                registry=registry,
            ),
            "time_to_first_delta": Histogram(
                "localchat_time_to_first_delta_seconds",
                "Time from request to first content delta",
                labelnames=["provider"],
                buckets=FIRST_DELTA_BUCKETS,
                registry=registry,
            ),
            "active_streams": Gauge(
                "localchat_active_streams",
                "Upstream streams currently open",
                labelnames=["provider"],
                registry=registry,
            ),
            "tool_calls_total": Counter(
                "localchat_tool_calls_total",
                "Tool invocations by outcome",
                labelnames=["tool", "status"],
                registry=registry,
            ),
            "tool_duration": Histogram(
                "localchat_tool_duration_seconds",
                "Tool invocation duration",
                labelnames=["tool"],
                buckets=TOOL_BUCKETS,
                registry=registry,
            ),
        }

    def record_request(self, endpoint: str, method: str, status_code: int, duration_seconds: float):
        self.requests_total.labels(endpoint=endpoint, method=method, status=str(status_code)).inc()
        self.request_duration.labels(endpoint=endpoint, method=method).observe(duration_seconds)

    def record_stream(self, provider: str, outcome: str, deltas: int = 0, skipped: int = 0):
        """Count a closed upstream stream with its delta and skip totals."""
        self.streams_total.labels(provider=provider, outcome=outcome).inc()
        if deltas:
            self.deltas_total.labels(provider=provider).inc(deltas)
        if skipped:
            self.malformed_records_total.labels(provider=provider).inc(skipped)

    def record_time_to_first_delta(self, provider: str, seconds: float):
        self.time_to_first_delta.labels(provider=provider).observe(seconds)

    def track_active_stream(self, provider: str) -> "ActiveStreamTracker":
        return ActiveStreamTracker(self.active_streams.labels(provider=provider))

    def record_tool_call(self, tool: str, status: str, duration_seconds: float):
        self.tool_calls_total.labels(tool=tool, status=status).inc()
        self.tool_duration.labels(tool=tool).observe(duration_seconds)


class ActiveStreamTracker:
    """Holds the active-streams gauge up while the block runs."""

    def __init__(self, gauge):
        self.gauge = gauge

    def __enter__(self):
        self.gauge.inc()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.gauge.dec()


_metrics_instance: Optional[MetricsCollector] = None


def setup_metrics(registry: CollectorRegistry = REGISTRY) -> MetricsCollector:
    """Collector for ``registry``; repeated calls return the same one."""
    global _metrics_instance

    if _metrics_instance is None or _metrics_instance.registry is not registry:
        _metrics_instance = MetricsCollector(registry)
    return _metrics_instance


def get_metrics() -> MetricsCollector:
    """The process collector, on the default registry unless set up otherwise."""
    return _metrics_instance or setup_metrics()


def metrics_endpoint() -> Response:
    """Prometheus exposition of the default registry."""
    return Response(content=generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)
