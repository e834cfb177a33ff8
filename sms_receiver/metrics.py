"""
Prometheus metrics for the SMS webhook receiver.

Counters and the latency histogram live in the default prometheus-client
registry and are exposed by GET /metrics.
"""

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)

# One increment per POST /sms, labelled with how it ended
sms_webhook_requests_total = Counter(
    "sms_webhook_requests_total",
    "Total SMS webhook processing outcomes",
    labelnames=["result"]
)

WEBHOOK_RESULTS = (
    "stored",
    "malformed_request",
    "missing_fields",
    "input_too_long",
    "persistence_error",
)


def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """Count one finished request and observe its latency."""
    http_requests_total.labels(method, path, str(status)).inc()
    request_latency_seconds.labels(method, path).observe(latency_seconds)


def record_webhook_outcome(result: str) -> None:
    if result not in WEBHOOK_RESULTS:
        raise ValueError(f"Unknown webhook result: {result}")
    sms_webhook_requests_total.labels(result=result).inc()


def get_metrics() -> bytes:
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
