"""Prometheus metrics for generation requests.

Exposed through the default registry; a host process can serve them with
``prometheus_client.start_http_server``.
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

GENERATION_LATENCY = Histogram(
    "blogify_generation_seconds",
    "Wall time of one generation turn in seconds",
    labelnames=("outcome",),
    buckets=(0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 20.0, 30.0, 60.0, 120.0),
)

STREAM_EVENTS = Counter(
    "blogify_stream_events_total",
    "Stream events received from the agent",
    labelnames=("kind",),
)


def observe_generation(outcome: str, elapsed: float) -> None:
    GENERATION_LATENCY.labels(outcome=outcome).observe(elapsed)


def count_event(kind: str) -> None:
    STREAM_EVENTS.labels(kind=kind).inc()
