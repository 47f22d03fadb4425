"""
Lightweight metrics collection for Contest Tracker.
Wraps prometheus_client with async-safe patterns.
"""
from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from prometheus_client import Counter, Gauge, Histogram, start_http_server

from shared.config import get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Counters ────────────────────────────────────────────────────────────
ADAPTER_REQUESTS = Counter(
    "ct_adapter_requests_total",
    "Total upstream HTTP requests made by contest adapters",
    ["upstream", "status"],
)
ADAPTER_FETCHES = Counter(
    "ct_adapter_fetches_total",
    "Adapter fetch outcomes per platform",
    ["platform", "outcome"],
)
CONTESTS_UPSERTED = Counter(
    "ct_contests_upserted_total",
    "Contest records written by the reconciliation store",
    ["platform"],
)
STATUS_TRANSITIONS = Counter(
    "ct_status_transitions_total",
    "Contest status transitions applied by the lifecycle scan",
    ["to_status"],
)
SOLUTION_LOOKUPS = Counter(
    "ct_solution_lookups_total",
    "Solution video lookups by outcome",
    ["platform", "outcome"],
)
JOB_RUNS = Counter(
    "ct_job_runs_total",
    "Scheduled job executions by outcome",
    ["job", "outcome"],
)

# ── Histograms ──────────────────────────────────────────────────────────
ADAPTER_LATENCY = Histogram(
    "ct_adapter_latency_seconds",
    "Upstream request latency in seconds",
    ["upstream"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0),
)
JOB_DURATION = Histogram(
    "ct_job_duration_seconds",
    "Wall time of a single scheduled job run",
    ["job"],
    buckets=(0.1, 0.5, 1.0, 5.0, 15.0, 30.0, 60.0, 300.0),
)

# ── Gauges ──────────────────────────────────────────────────────────────
CONTESTS_TRACKED = Gauge(
    "ct_contests_tracked",
    "Non-past contests seen by the last lifecycle scan",
)


@asynccontextmanager
async def atrack_latency(histogram: Histogram, **labels: str) -> AsyncIterator[None]:
    """Async context manager to track operation latency."""
    start = time.perf_counter()
    try:
        yield
    finally:
        histogram.labels(**labels).observe(time.perf_counter() - start)


def start_metrics_server(port: int | None = None) -> None:
    """Start the Prometheus metrics HTTP server."""
    settings = get_settings()
    if not settings.metrics_enabled:
        return
    metrics_port = port or settings.metrics_port
    try:
        start_http_server(metrics_port)
        logger.info("metrics_server_started", port=metrics_port)
    except OSError as exc:
        logger.warning("metrics_server_failed", error=str(exc), port=metrics_port)
