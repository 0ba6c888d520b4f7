"""Prometheus metrics instrumentation."""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

REQUEST_COUNT = Counter(
    "crag_requests_total",
    "Total HTTP requests",
    labelnames=("endpoint", "method", "status"),
    registry=REGISTRY,
)

REQUEST_LATENCY = Histogram(
    "crag_request_latency_seconds",
    "Latency of HTTP requests",
    labelnames=("endpoint", "method"),
    registry=REGISTRY,
)

INGEST_DURATION = Histogram(
    "crag_ingest_duration_seconds",
    "Ingest pipeline duration",
    labelnames=("source",),
    registry=REGISTRY,
)

INDEX_SIZE = Gauge(
    "crag_index_chunks",
    "Number of chunks stored in the vector index",
    registry=REGISTRY,
)

FALLBACK_EXTRACTIONS = Counter(
    "crag_fallback_extractions_total",
    "Documents routed to multimodal extraction",
    labelnames=("file_type",),
    registry=REGISTRY,
)

EXTERNAL_CALLS = Counter(
    "crag_external_calls_total",
    "Calls made to external model endpoints",
    labelnames=("service", "outcome"),
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "INGEST_DURATION",
    "INDEX_SIZE",
    "FALLBACK_EXTRACTIONS",
    "EXTERNAL_CALLS",
    "metrics_response",
]
