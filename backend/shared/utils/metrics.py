"""
Lightweight metrics collection for the answer consensus engine.
Metric definitions on the default prometheus_client registry.
"""
from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, start_http_server

from shared.config import get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Counters ────────────────────────────────────────────────────────────
SOURCE_FETCHES = Counter(
    "av_source_fetches_total",
    "Total source fetch-and-extract attempts",
    ["source", "status"],
)
VERIFICATIONS = Counter(
    "av_verifications_total",
    "Consensus computations by resulting status",
    ["status"],
)
SCHEDULER_TASKS = Counter(
    "av_scheduler_tasks_total",
    "Scheduler task executions",
    ["task", "success"],
)
STORE_WRITE_RETRIES = Counter(
    "av_store_write_retries_total",
    "Retried prediction store writes",
    ["operation"],
)

# ── Histograms ──────────────────────────────────────────────────────────
SOURCE_LATENCY = Histogram(
    "av_source_latency_seconds",
    "Source fetch latency in seconds",
    ["source"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0),
)
CONSENSUS_CONFIDENCE = Histogram(
    "av_consensus_confidence",
    "Confidence score of computed consensus",
    buckets=(0.0, 0.1, 0.3, 0.5, 0.7, 0.8, 0.9, 1.0),
)
PIPELINE_DURATION = Histogram(
    "av_pipeline_duration_seconds",
    "Collector + verifier pipeline wall time",
    ["task"],
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)

# ── Gauges ──────────────────────────────────────────────────────────────
SCHEDULER_RUNNING = Gauge(
    "av_scheduler_running",
    "1 while the scheduler control loop is running",
)
ACTIVE_SOURCES = Gauge(
    "av_active_sources",
    "Number of active sources in the registry",
)


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
