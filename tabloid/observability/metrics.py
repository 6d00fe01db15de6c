"""
Prometheus metrics for monitoring the sync engine.

Defines and exposes metrics for:
- Records fetched and stored per source
- Fetch errors and rate-limit pauses
- Poll cycle latency per job
- Retention cleanup
- Source and network health

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from tabloid.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for cycle latency histograms (in seconds)
LATENCY_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)


class MetricsCollector:
    """
    Prometheus metrics collector for the sync engine.

    Usage:
        metrics = get_metrics()
        metrics.start_server()

        metrics.record_fetch("3437070832", count=5)
        metrics.record_cycle("feed-poll", latency=0.8)
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        self.records_fetched = Counter(
            "tabloid_records_fetched_total",
            "Total number of records fetched from upstream",
            ["source_id"],
        )

        self.records_stored = Counter(
            "tabloid_records_stored_total",
            "Total number of new records stored",
            ["source_id"],
        )

        self.fetch_errors = Counter(
            "tabloid_fetch_errors_total",
            "Total per-source fetch errors",
            ["source_id", "error_type"],
        )

        self.rate_limit_pauses = Counter(
            "tabloid_rate_limit_pauses_total",
            "Times a client suspended for its rate limit",
            ["client", "reason"],  # reason: server, budget
        )

        self.records_deleted = Counter(
            "tabloid_records_deleted_total",
            "Total records removed by retention cleanup",
        )

        self.price_updates = Counter(
            "tabloid_price_updates_total",
            "Total successful price polls",
        )

        self.cycle_latency = Histogram(
            "tabloid_cycle_latency_seconds",
            "Time to run one scheduler job cycle",
            ["job"],  # feed-poll, price-poll, cleanup
            buckets=LATENCY_BUCKETS,
        )

        self.cycles_skipped = Counter(
            "tabloid_cycles_skipped_total",
            "Timer ticks skipped because the job was still running",
            ["job"],
        )

        self.source_health = Gauge(
            "tabloid_source_health",
            "Last fetch outcome per source (1=ok, 0=error)",
            ["source_id"],
        )

        self.network_online = Gauge(
            "tabloid_network_online",
            "Observed upstream connectivity (1=online, 0=offline)",
        )

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to listen on (default from settings)
        """
        port = port or get_settings().metrics_port
        start_http_server(port)
        logger.info(f"Metrics server started on port {port}")

    def record_fetch(self, source_id: str, count: int) -> None:
        """Record a successful fetch for a source."""
        self.records_fetched.labels(source_id=source_id).inc(count)
        self.source_health.labels(source_id=source_id).set(1)

    def record_stored(self, source_id: str, count: int) -> None:
        """Record newly inserted records for a source."""
        self.records_stored.labels(source_id=source_id).inc(count)

    def record_fetch_error(self, source_id: str, error_type: str) -> None:
        """Record a failed fetch for a source."""
        self.fetch_errors.labels(source_id=source_id, error_type=error_type).inc()
        self.source_health.labels(source_id=source_id).set(0)

    def record_rate_limit_pause(self, client: str, reason: str) -> None:
        """Record a rate-limit suspension."""
        self.rate_limit_pauses.labels(client=client, reason=reason).inc()

    def record_cycle(self, job: str, latency: float) -> None:
        """Record the duration of a completed job cycle."""
        self.cycle_latency.labels(job=job).observe(latency)

    def record_skipped_cycle(self, job: str) -> None:
        """Record a timer tick skipped due to overlap."""
        self.cycles_skipped.labels(job=job).inc()

    def record_cleanup(self, deleted: int) -> None:
        """Record records deleted by retention cleanup."""
        self.records_deleted.inc(deleted)

    def record_price_update(self) -> None:
        """Record a successful price poll."""
        self.price_updates.inc()

    def set_network_online(self, online: bool) -> None:
        """Set observed network status."""
        self.network_online.set(1 if online else 0)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
