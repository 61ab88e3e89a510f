"""Prometheus metric helpers."""
from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

REQUEST_COUNT = Counter(
    "tempchat_requests_total",
    "HTTP requests processed by the API",
    ("method", "path", "status"),
)

REQUEST_LATENCY = Histogram(
    "tempchat_request_latency_seconds",
    "Latency of HTTP requests processed by the API",
    ("method", "path"),
    buckets=(
        0.005,
        0.01,
        0.025,
        0.05,
        0.1,
        0.25,
        0.5,
        1.0,
        2.5,
        5.0,
        10.0,
    ),
)

TASK_RESULTS = Counter(
    "tempchat_task_results_total",
    "Background worker task outcomes",
    ("task", "status"),
)

ROOMS_EXPIRED = Counter(
    "tempchat_rooms_expired_total",
    "Rooms removed by the cascade delete, by trigger",
    ("trigger",),
)

LIVE_SUBSCRIPTIONS = Gauge(
    "tempchat_live_subscriptions",
    "Document subscriptions currently registered with the change feed",
)


def record_request(method: str, path: str, status_code: int, duration: float) -> None:
    """Record counters and histograms for a processed HTTP request."""

    REQUEST_COUNT.labels(method, path, str(status_code)).inc()
    REQUEST_LATENCY.labels(method, path).observe(duration)


def record_task_result(task_name: str, status: str) -> None:
    """Increment the task results counter for the provided status."""

    TASK_RESULTS.labels(task_name, status).inc()


def record_room_expired(trigger: str) -> None:
    ROOMS_EXPIRED.labels(trigger).inc()
