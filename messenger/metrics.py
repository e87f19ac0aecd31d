"""
Prometheus metrics for the messenger API.

Exposed series:
- http_requests_total{method, path, status}
- request_latency_seconds{method, path}
- verification_attempts_total{result}: sent, verified, rejected
- ai_stream_attempts_total{outcome}: ok, retry, failed

`path` is the route template (e.g. /chats/{chat_id}/messages).
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Series
# =============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "HTTP requests handled, by route template and status",
    ["method", "path", "status"],
)

request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Time spent handling a request",
    ["method", "path"],
)

verification_attempts_total = Counter(
    "verification_attempts_total",
    "Verification codes issued and checked",
    ["result"],
)

ai_stream_attempts_total = Counter(
    "ai_stream_attempts_total",
    "Streaming calls to the generative AI API",
    ["outcome"],
)


# =============================================================================
# Recording
# =============================================================================

def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Count one handled request and observe its latency.

    Args:
        method: HTTP verb
        path: Route template, or the raw path for unmatched requests
        status: Response status code
        latency_seconds: Wall time spent in the app
    """
    path = path.partition("?")[0]
    http_requests_total.labels(method, path, str(status)).inc()
    request_latency_seconds.labels(method, path).observe(latency_seconds)


def record_verification(result: str) -> None:
    verification_attempts_total.labels(result).inc()


def record_ai_stream_attempt(outcome: str) -> None:
    ai_stream_attempts_total.labels(outcome).inc()


def render_metrics():
    """Return the text exposition body and its content type."""
    return generate_latest(), CONTENT_TYPE_LATEST
