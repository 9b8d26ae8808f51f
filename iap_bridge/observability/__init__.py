"""
Observability module - Logging, Metrics, and Tracing.
"""

from iap_bridge.observability.logging import get_logger, log_context, setup_logging
from iap_bridge.observability.metrics import metrics, track_operation
from iap_bridge.observability.tracing import setup_tracing, trace_operation

__all__ = [
    "get_logger",
    "log_context",
    "setup_logging",
    "metrics",
    "track_operation",
    "setup_tracing",
    "trace_operation",
]
