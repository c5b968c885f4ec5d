"""
Prometheus metrics for Riftwatch.
Wraps prometheus_client with the latency helpers used around upstream calls.
"""
from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from prometheus_client import Counter, Gauge, Histogram, start_http_server

from shared.config import Settings, get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Counters ────────────────────────────────────────────────────────────
UPSTREAM_REQUESTS = Counter(
    "rw_upstream_requests_total",
    "Total Riot API HTTP requests",
    ["endpoint", "status"],
)
UPSTREAM_RETRIES = Counter(
    "rw_upstream_retries_total",
    "Riot API requests retried after a transient failure",
    ["endpoint"],
)
POLL_CYCLES = Counter(
    "rw_poll_cycles_total",
    "Poll cycles by outcome",
    ["outcome"],
)
ENTITY_CHECKS = Counter(
    "rw_entity_checks_total",
    "Per-entity poll results",
    ["result"],
)
NOTIFICATIONS = Counter(
    "rw_notifications_total",
    "Match summaries delivered or failed",
    ["outcome"],
)

# ── Histograms ──────────────────────────────────────────────────────────
UPSTREAM_LATENCY = Histogram(
    "rw_upstream_latency_seconds",
    "Riot API request latency in seconds",
    ["endpoint"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)
POLL_CYCLE_DURATION = Histogram(
    "rw_poll_cycle_seconds",
    "Wall time of a full poll cycle",
    buckets=(1, 2, 5, 10, 20, 30, 60, 120, 300),
)

# ── Gauges ──────────────────────────────────────────────────────────────
TRACKED_ENTITIES = Gauge(
    "rw_tracked_entities",
    "Number of tracked players across all tenants",
)
POLL_CYCLE_RUNNING = Gauge(
    "rw_poll_cycle_running",
    "1 while a poll cycle is in flight",
)


@asynccontextmanager
async def atrack_latency(histogram: Histogram, **labels: str) -> AsyncIterator[None]:
    """Async context manager to track operation latency."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        if labels:
            histogram.labels(**labels).observe(elapsed)
        else:
            histogram.observe(elapsed)


def start_metrics_server(settings: Settings | None = None) -> None:
    """Start the Prometheus metrics HTTP server."""
    settings = settings or get_settings()
    if not settings.metrics_enabled:
        return
    try:
        start_http_server(settings.metrics_port)
        logger.info("metrics_server_started", port=settings.metrics_port)
    except OSError as exc:
        logger.warning("metrics_server_failed", error=str(exc), port=settings.metrics_port)
