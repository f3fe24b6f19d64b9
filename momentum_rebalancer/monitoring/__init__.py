"""Monitoring: structured logging and per-run metrics."""

from momentum_rebalancer.monitoring.logging import configure_logging, get_logger
from momentum_rebalancer.monitoring.metrics import RunMetrics

__all__ = ["configure_logging", "get_logger", "RunMetrics"]
