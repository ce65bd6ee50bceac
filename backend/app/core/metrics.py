"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# Reservation metrics
reservation_outcomes = Counter(
    'reservation_outcomes_total',
    'Reservation attempts by outcome',
    ['outcome']  # confirmed, or a rejection reason such as SEAT_CONFLICT
)

reservation_latency = Histogram(
    'reservation_latency_seconds',
    'Time spent inside the reservation unit of work',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
)

seats_reserved = Counter(
    'seats_reserved_total',
    'Seats committed by successful reservations'
)

booking_cancellations = Counter(
    'booking_cancellations_total',
    'Bookings cancelled (seats returned to the event)'
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set/invalidate, hit/miss/error
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_reservation(outcome: str, duration_seconds: float, seats: int = 0):
    """Record a reservation attempt. Outcome: confirmed or a rejection reason."""
    reservation_outcomes.labels(outcome=outcome).inc()
    reservation_latency.observe(duration_seconds)
    if seats:
        seats_reserved.inc(seats)


def record_cancellation():
    booking_cancellations.inc()


def record_cache_operation(operation: str, result: str):
    """Record cache operation. Result: hit, miss, error or ok."""
    cache_operations.labels(operation=operation, result=result).inc()
