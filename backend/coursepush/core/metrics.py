"""
Prometheus Metrics Registry

Provides Prometheus-compatible metrics for:
- HTTP request counts and latencies
- Push dispatch outcomes per target type
- Per-token delivery outcomes
- Device token registrations
"""
import re
import time
import logging
from prometheus_client import (
    Counter, Histogram, Info,
    CollectorRegistry, generate_latest, CONTENT_TYPE_LATEST
)

logger = logging.getLogger(__name__)

# Create a custom registry to avoid conflicts with default registry
REGISTRY = CollectorRegistry()

_start_time: float = 0.0

# ============================================================================
# Application Info
# ============================================================================

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
# Push Dispatch Metrics
# ============================================================================

push_dispatch_total = Counter(
    'push_dispatch_total',
    'Total push dispatch requests',
    ['target_type', 'outcome'],  # outcome: sent, rejected, error
    registry=REGISTRY
)

push_deliveries_total = Counter(
    'push_deliveries_total',
    'Per-token push delivery outcomes',
    ['status'],
    registry=REGISTRY
)

push_dispatch_duration_seconds = Histogram(
    'push_dispatch_duration_seconds',
    'Push dispatch duration in seconds',
    ['target_type'],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
    registry=REGISTRY
)

# ============================================================================
# Registration Metrics
# ============================================================================

token_registrations_total = Counter(
    'token_registrations_total',
    'Device token registration attempts',
    ['outcome'],  # outcome: updated, not_found, invalid
    registry=REGISTRY
)


def init_metrics(version: str = "1.0.0"):
    """
    Initialize metrics with application info.

    Args:
        version: Application version string
    """
    global _start_time
    _start_time = time.time()

    app_info.info({
        'version': version,
        'name': 'coursepush'
    })

    logger.info("Prometheus metrics initialized", extra={"version": version})


def record_request_metrics(
    method: str,
    path: str,
    status_code: int,
    response_time_seconds: float
):
    """Record HTTP request metrics."""
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


def record_dispatch(target_type: str, outcome: str, duration_seconds: float = 0.0):
    """
    Record a push dispatch.

    Args:
        target_type: individual, course, specific-version, general-topic or unresolved
        outcome: sent, rejected (client/resolution error) or error (gateway/config)
        duration_seconds: Dispatch duration
    """
    push_dispatch_total.labels(target_type=target_type, outcome=outcome).inc()
    if duration_seconds > 0:
        push_dispatch_duration_seconds.labels(target_type=target_type).observe(duration_seconds)


def record_delivery(status: str, count: int = 1):
    """Record per-token delivery outcomes."""
    if count > 0:
        push_deliveries_total.labels(status=status).inc(count)


def record_token_registration(outcome: str):
    """Record a device token registration attempt."""
    token_registrations_total.labels(outcome=outcome).inc()


def get_uptime_seconds() -> float:
    """Seconds since init_metrics was called."""
    if not _start_time:
        return 0.0
    return time.time() - _start_time


def get_metrics() -> bytes:
    """Generate Prometheus metrics output in text format."""
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST


def _normalize_path(path: str) -> str:
    """
    Normalize request path to avoid high cardinality.

    Replaces UUIDs and numeric IDs with placeholders.
    """
    path = re.sub(
        r'[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}',
        '{id}',
        path,
        flags=re.IGNORECASE
    )
    path = re.sub(r'/\d+', '/{id}', path)
    return path
