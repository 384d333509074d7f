"""
Prometheus metrics registry.

Provides Prometheus-compatible metrics for:
- HTTP request counts and latencies
- Labeled segments created per detection type and engine mode
- Image relocations (S3 copies) by outcome
- Labeling failures by error kind
- Segments dropped by the reconciler for invalid details
"""
import re
import logging
from typing import Optional
from prometheus_client import (
    Counter, Histogram, Info,
    CollectorRegistry, generate_latest, CONTENT_TYPE_LATEST
)

logger = logging.getLogger(__name__)

# Custom registry to avoid conflicts with the default registry
REGISTRY = CollectorRegistry()

app_info = Info(
    'app',
    'Application information',
    registry=REGISTRY
)

# ============================================================================
# HTTP Request Metrics
# ============================================================================

http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'path', 'status_code'],
    registry=REGISTRY
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'path'],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=REGISTRY
)

# ============================================================================
# Labeling Metrics
# ============================================================================

segments_labeled_total = Counter(
    'segments_labeled_total',
    'Labeled segments persisted',
    ['detection_type', 'mode'],
    registry=REGISTRY
)

labeled_events_total = Counter(
    'labeled_events_total',
    'Events attached to a labeled segment',
    ['detection_type'],
    registry=REGISTRY
)

image_relocations_total = Counter(
    'image_relocations_total',
    'Image copies from unlabeled to labeled storage',
    ['status'],
    registry=REGISTRY
)

image_relocation_duration_seconds = Histogram(
    'image_relocation_duration_seconds',
    'Duration of a single image copy',
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
    registry=REGISTRY
)

labeling_failures_total = Counter(
    'labeling_failures_total',
    'Label requests aborted, by error kind',
    ['kind'],
    registry=REGISTRY
)

segments_skipped_total = Counter(
    'segments_skipped_total',
    'Labeled segments dropped from display grouping due to invalid details',
    registry=REGISTRY
)

_NUMERIC_SEGMENT = re.compile(r'/\d+(?=/|$)')


def init_metrics(version: str = "1.0.0"):
    """Initialize metrics with application info."""
    app_info.info({
        'version': version,
        'name': 'apm-labeling'
    })

    logger.info("Prometheus metrics initialized", extra={"version": version})


def record_request_metrics(
    method: str,
    path: str,
    status_code: int,
    response_time_seconds: float
):
    """Record HTTP request count and latency."""
    normalized_path = _normalize_path(path)

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status_code=str(status_code)
    ).inc()

    http_request_duration_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(response_time_seconds)


def record_segments_labeled(detection_type: str, mode: str, segment_count: int, event_count: int):
    """Record segments persisted by one label request."""
    segments_labeled_total.labels(detection_type=detection_type, mode=mode).inc(segment_count)
    labeled_events_total.labels(detection_type=detection_type).inc(event_count)


def record_relocation(status: str, duration_seconds: Optional[float] = None):
    """Record one image relocation attempt ("success" or "error")."""
    image_relocations_total.labels(status=status).inc()
    if duration_seconds is not None:
        image_relocation_duration_seconds.observe(duration_seconds)


def record_labeling_failure(kind: str):
    labeling_failures_total.labels(kind=kind).inc()


def record_segments_skipped(count: int):
    if count > 0:
        segments_skipped_total.inc(count)


def get_metrics() -> bytes:
    """Generate Prometheus text format output."""
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST


def _normalize_path(path: str) -> str:
    """Replace numeric path IDs with a placeholder to keep label cardinality low."""
    return _NUMERIC_SEGMENT.sub('/{id}', path)
