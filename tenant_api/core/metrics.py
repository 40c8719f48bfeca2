"""Prometheus metric inventory.

Every metric the service exports is declared here; the modules that own
the behaviour import the metric and increment it at the point of action.
Scraped from GET /metrics.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP (populated by MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    # Most requests make one identity round-trip plus one or two store
    # calls, so the interesting range is 25ms..1s.
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Domain
# ---------------------------------------------------------------------------

IDENTITY_LOOKUPS = Counter(
    "identity_lookups_total",
    "Bearer token lookups against the identity service",
    ["result"],  # ok | rejected | error
)

INVITATION_EVENTS = Counter(
    "invitation_events_total",
    "Invitation workflow operations by outcome",
    ["event", "outcome"],  # event: issued|validated|redeemed|revoked
)

STORE_ERRORS = Counter(
    "store_errors_total",
    "Store operations that failed, by operation and error code",
    ["operation", "code"],
)

RATE_LIMIT_HITS = Counter(
    "rate_limit_hits_total",
    "Requests rejected by rate limiting (429s)",
    ["route"],
)
