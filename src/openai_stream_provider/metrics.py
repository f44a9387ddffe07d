from __future__ import annotations

from prometheus_client import Counter, Histogram

requests_total = Counter(
    "provider_requests_total",
    "Total requests handled by provider",
    labelnames=["provider", "variant", "status"],
)

request_latency_seconds = Histogram(
    "provider_request_latency_seconds",
    "Provider request latency, from dispatch to terminal event",
    buckets=[0.1, 0.3, 0.5, 1, 2, 5, 10, 30, 60, 120, 300],
    labelnames=["provider"],
)

stream_events_total = Counter(
    "provider_stream_events_total",
    "Stream events delivered to consumers",
    labelnames=["type"],
)

empty_choices_frames_total = Counter(
    "provider_empty_choices_frames_total",
    "Streamed chunks whose choices array was empty",
)
