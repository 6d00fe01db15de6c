"""Observability layer - logging and metrics."""

from tabloid.observability.logging import setup_logging
from tabloid.observability.metrics import MetricsCollector, get_metrics

__all__ = ["setup_logging", "MetricsCollector", "get_metrics"]
