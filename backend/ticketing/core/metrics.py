"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at the /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Webhook metrics
webhook_notifications = Counter(
    'webhook_notifications_total',
    'Payment notifications received',
    ['result']  # applied, ignored, invalid_signature, not_found, error
)

reconciliation_latency = Histogram(
    'reconciliation_latency_seconds',
    'Time spent reconciling one payment notification',
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
)

tickets_issued = Counter(
    'tickets_issued_total',
    'Purchased tickets created by reconciliation'
)

review_flags = Counter(
    'review_flags_total',
    'Orders put on the manual review queue',
    ['reason']  # amount_mismatch_requires_review, stock_validation_failed_requires_review
)

# Capacity metrics
capacity_cas_retries = Counter(
    'capacity_cas_retries_total',
    'Capacity compare-and-swap retries due to version conflicts'
)

capacity_increments_dropped = Counter(
    'capacity_increments_dropped_total',
    'Sold-capacity increments dropped after exhausting CAS retries'
)

queue_overflow_tickets = Counter(
    'queue_overflow_tickets_total',
    'Tickets numbered beyond their session capacity'
)

# Session validation metrics
session_validation_attempts = Counter(
    'session_validation_attempts_total',
    'Authentication checks performed by the session validator',
    ['outcome']  # success, network, expired, unknown
)

# Redis metrics
redis_connection_errors = Counter(
    'redis_connection_errors_total',
    'Redis operations that failed and were degraded'
)

# Retention metrics
retention_rows_deleted = Counter(
    'retention_rows_deleted_total',
    'Rows removed by the retention sweeper',
    ['table']
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_webhook(result: str):
    """Record a notification outcome."""
    webhook_notifications.labels(result=result).inc()


def record_review_flag(reason: str):
    review_flags.labels(reason=reason).inc()


def record_session_attempt(outcome: str):
    session_validation_attempts.labels(outcome=outcome).inc()


def record_retention(table: str, deleted: int):
    if deleted:
        retention_rows_deleted.labels(table=table).inc(deleted)
