"""
Prometheus-based metrics for production monitoring.
Provides /metrics endpoint for scraping.
"""
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response


# Counters
payments_initialized_total = Counter(
    "payments_initialized_total",
    "Total number of payments initialized with the gateway",
    ["service"],
)

payment_transitions_total = Counter(
    "payment_transitions_total",
    "Total guarded payment state transitions that won",
    ["status", "source"],  # source: verify, webhook, reconcile
)

payment_race_lost_total = Counter(
    "payment_race_lost_total",
    "Confirmations that found the payment already transitioned by another caller",
    ["source"],
)

fulfillment_failures_total = Counter(
    "fulfillment_failures_total",
    "Completions rolled back because fulfillment failed",
    ["service"],
)

webhook_events_total = Counter(
    "webhook_events_total",
    "Total webhook deliveries by outcome",
    ["result"],  # processed, duplicate, ignored, unknown_reference, invalid_signature, malformed
)

gateway_requests_total = Counter(
    "gateway_requests_total",
    "Total payment gateway API requests",
    ["operation", "status"],
)

circuit_breaker_state = Gauge(
    "circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=open)",
    ["name"],
)

# Histograms
gateway_request_duration_seconds = Histogram(
    "gateway_request_duration_seconds",
    "Payment gateway API request duration",
    ["operation"],
    buckets=[0.1, 0.5, 1, 2, 5, 10, 15],
)


# Metrics endpoint router
router = APIRouter()


@router.get("/metrics")
def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint for scraping."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
