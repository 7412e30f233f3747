"""Prometheus metrics for the settlement service.

HTTP request metrics plus counters for provider calls, webhook outcomes,
payouts and the balance release job.
"""

import os

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
    multiprocess,
)

REGISTRY = CollectorRegistry()

if "prometheus_multiproc_dir" in os.environ:
    multiprocess.MultiProcessCollector(REGISTRY)


APP_INFO = Info(
    "pix_settlement_app",
    "Application information",
    registry=REGISTRY,
)


# ============================================
# HTTP Request Metrics
# ============================================
HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
    registry=REGISTRY,
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=REGISTRY,
)

HTTP_REQUESTS_IN_PROGRESS = Gauge(
    "http_requests_in_progress",
    "Number of HTTP requests currently in progress",
    ["method", "endpoint"],
    registry=REGISTRY,
)


# ============================================
# Payment Provider Metrics
# ============================================
GATEWAY_REQUESTS_TOTAL = Counter(
    "pix_gateway_requests_total",
    "Outbound PIX provider requests by operation and outcome",
    ["provider", "operation", "outcome"],
    registry=REGISTRY,
)

GATEWAY_REQUEST_DURATION_SECONDS = Histogram(
    "pix_gateway_request_duration_seconds",
    "Outbound PIX provider request duration in seconds",
    ["provider", "operation"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
    registry=REGISTRY,
)


# ============================================
# Settlement Metrics
# ============================================
CHECKOUTS_TOTAL = Counter(
    "pix_checkouts_total",
    "Checkout attempts by outcome (created, reused, failed)",
    ["provider", "outcome"],
    registry=REGISTRY,
)

WEBHOOK_EVENTS_TOTAL = Counter(
    "pix_webhook_events_total",
    "Inbound webhook deliveries by provider, event type and outcome",
    ["provider", "event_type", "outcome"],
    registry=REGISTRY,
)

PAYOUTS_TOTAL = Counter(
    "pix_payouts_total",
    "Payout requests by outcome (processing, compensated, rejected)",
    ["provider", "outcome"],
    registry=REGISTRY,
)

BALANCE_RELEASES_TOTAL = Counter(
    "pix_balance_releases_total",
    "Payments whose frozen earnings were released, by outcome",
    ["outcome"],
    registry=REGISTRY,
)

RELEASED_AMOUNT_CENTS_TOTAL = Counter(
    "pix_released_amount_cents_total",
    "Total creator earnings moved from frozen to available, in cents",
    registry=REGISTRY,
)


def get_metrics() -> bytes:
    """Generate latest metrics in Prometheus format."""
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST


def set_app_info(version: str, environment: str) -> None:
    """Publish static application info."""
    APP_INFO.info({
        "version": version,
        "environment": environment,
    })
