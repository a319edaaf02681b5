from __future__ import annotations

import os

from prometheus_client import Counter, Gauge, Histogram

from .config import parse_bool

METRICS_ENABLED = parse_bool(os.environ.get("FOLIO_METRICS_ENABLED", "true"))

if METRICS_ENABLED:
    REQUEST_LATENCY = Histogram(
        "folio_http_request_duration_seconds",
        "HTTP request latency",
        ["method", "endpoint"],
    )
    REQUEST_COUNT = Counter(
        "folio_http_requests_total",
        "Total HTTP requests",
        ["method", "endpoint", "status"],
    )
    REQUEST_ERRORS = Counter(
        "folio_http_request_errors_total",
        "HTTP error responses",
        ["method", "endpoint", "status"],
    )
    REQUEST_IN_FLIGHT = Gauge(
        "folio_http_requests_in_flight",
        "In-flight HTTP requests",
    )
    THUMBNAIL_COUNT = Counter(
        "folio_thumbnail_total",
        "Total thumbnail generation attempts",
        ["status"],
    )
    THUMBNAIL_LATENCY = Histogram(
        "folio_thumbnail_duration_seconds",
        "Thumbnail generation duration, entry to exit",
        ["status"],
        buckets=(0.25, 0.5, 1, 2.5, 5, 10, 30, 60, 120, 300),
    )
    THUMBNAIL_STAGE_LATENCY = Histogram(
        "folio_thumbnail_stage_duration_seconds",
        "Thumbnail pipeline stage duration",
        ["stage"],
        buckets=(0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60, 120, 300),
    )
else:
    REQUEST_LATENCY = None
    REQUEST_COUNT = None
    REQUEST_ERRORS = None
    REQUEST_IN_FLIGHT = None
    THUMBNAIL_COUNT = None
    THUMBNAIL_LATENCY = None
    THUMBNAIL_STAGE_LATENCY = None


def observe_stage(stage: str, seconds: float) -> None:
    if THUMBNAIL_STAGE_LATENCY is not None:
        THUMBNAIL_STAGE_LATENCY.labels(stage).observe(seconds)
