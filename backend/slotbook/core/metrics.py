"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Booking metrics
booking_attempts = Counter(
    'booking_attempts_total',
    'Total booking attempts',
    ['outcome']  # success, conflict, not_found, invalid_request, forbidden, internal
)

booking_cancellations = Counter(
    'booking_cancellations_total',
    'Total cancellation attempts',
    ['outcome']
)

admission_latency = Histogram(
    'admission_transaction_latency_seconds',
    'Admission transaction latency, including lock wait',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
)

# Database metrics
db_retries = Counter(
    'db_serialization_retries_total',
    'Admission transactions retried after a serialization failure or deadlock'
)

storage_conflicts = Counter(
    'storage_conflicts_total',
    'Storage-level failures mapped to an outcome',
    ['kind']  # unique_violation, exclusion_violation, serialization_failure, ...
)

# Rate limiter metrics
rate_limit_decisions = Counter(
    'rate_limit_decisions_total',
    'Rate limiter decisions',
    ['purpose', 'result']  # permitted, denied, fail_open
)

# Queue metrics
queue_jobs = Counter(
    'booking_queue_jobs_total',
    'Booking jobs processed by the FCFS worker',
    ['result']  # success, rejected, malformed
)

queue_wait_latency = Histogram(
    'booking_queue_wait_seconds',
    'Time a caller waited for its queued booking result',
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0]
)

queue_timeouts = Counter(
    'booking_queue_timeouts_total',
    'Callers that gave up waiting on a queued booking'
)

worker_running = Gauge(
    'booking_worker_running',
    'FCFS booking worker state (1=running, 0=stopped)'
)

redis_connection_errors = Counter(
    'redis_connection_errors_total',
    'Redis connection errors'
)


def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Usage:
        @app.get("/metrics")
        def metrics():
            return metrics_endpoint()
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


# Convenience functions for instrumentation
def record_booking_attempt(outcome: str):
    """Record booking attempt. Outcome: success or a lowercased rejection code."""
    booking_attempts.labels(outcome=outcome).inc()


def record_cancellation(outcome: str):
    booking_cancellations.labels(outcome=outcome).inc()


def record_storage_conflict(kind: str):
    storage_conflicts.labels(kind=kind).inc()


def record_rate_limit(purpose: str, result: str):
    """Record rate limiter decision. Result: permitted, denied, fail_open"""
    rate_limit_decisions.labels(purpose=purpose, result=result).inc()


def record_queue_job(result: str):
    queue_jobs.labels(result=result).inc()
