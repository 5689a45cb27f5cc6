"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Admission metrics
admission_decisions = Counter(
    'rsvp_admission_decisions_total',
    'Admission decisions for requested "going" statuses',
    ['result']  # admitted, waitlisted, rejected
)

admission_latency = Histogram(
    'rsvp_admission_latency_seconds',
    'Status change request latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
)

# Waitlist metrics
waitlist_operations = Counter(
    'rsvp_waitlist_operations_total',
    'Waitlist ledger operations',
    ['operation']  # join, leave, recalculate
)

# Optimistic concurrency metrics
transaction_conflicts = Counter(
    'rsvp_transaction_conflicts_total',
    'Transaction conflicts detected at commit',
    ['outcome']  # retried, surfaced
)

# Promotion / cascade metrics
promotions = Counter(
    'rsvp_promotions_total',
    'Waitlisted attendees promoted to going'
)

promotion_races_lost = Counter(
    'rsvp_promotion_races_lost_total',
    'Promotion attempts abandoned after losing a race'
)

cascade_updates = Counter(
    'rsvp_cascade_updates_total',
    'Dependent attendees updated by status fan-out'
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
def record_admission(result: str):
    """Record admission decision. Result: admitted, waitlisted, rejected"""
    admission_decisions.labels(result=result).inc()

def record_waitlist_operation(operation: str):
    """Record waitlist operation. Operation: join, leave, recalculate"""
    waitlist_operations.labels(operation=operation).inc()

def record_conflict(retried: bool):
    """Record a commit-time conflict."""
    outcome = "retried" if retried else "surfaced"
    transaction_conflicts.labels(outcome=outcome).inc()
