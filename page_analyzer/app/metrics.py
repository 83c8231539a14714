"""
Prometheus collectors for the HTTP surface.
"""

from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

REQUESTS_TOTAL = Counter(
    "page_analyzer_requests_total",
    "Total number of API requests",
    ["path", "method", "status"],
)

REQUEST_DURATION = Histogram(
    "page_analyzer_request_duration_seconds",
    "Duration of API requests in seconds",
    ["path"],
)


def observe_request(path: str, method: str, status: int, duration: float) -> None:
    REQUESTS_TOTAL.labels(path=path, method=method, status=str(status)).inc()
    REQUEST_DURATION.labels(path=path).observe(duration)


def render_latest() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
