"""
Observability module - Logging, Metrics, and Tracing.
"""

from playsubs.observability.logging import get_logger, setup_logging
from playsubs.observability.metrics import metrics
from playsubs.observability.tracing import setup_tracing

__all__ = [
    "get_logger",
    "setup_logging",
    "metrics",
    "setup_tracing",
]
