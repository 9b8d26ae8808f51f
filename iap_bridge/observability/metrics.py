"""
Metrics Collection with Prometheus.

Exposes purchase-flow metrics for monitoring.
"""

import time
from enum import Enum

from prometheus_client import Counter, Histogram, Info

from iap_bridge.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    OPERATION = "operation"
    OUTCOME = "outcome"
    STATE = "state"
    ERROR_TYPE = "error_type"


class StoreMetrics:
    """
    Centralized metrics for the purchase bridge.

    Covers:
    - Facade operations (rate, outcome, duration)
    - Transactions observed per state
    - Outcomes nobody was waiting for
    """

    def __init__(self) -> None:
        self.service_info = Info(
            "iap_bridge_service",
            "Service information",
        )
        self.service_info.info(
            {
                "version": settings.service_version,
                "service_name": settings.service_name,
            }
        )

        self.operations_total = Counter(
            "iap_operations_total",
            "Total facade operations by outcome",
            [MetricLabels.OPERATION, MetricLabels.OUTCOME],
        )

        self.operation_duration_seconds = Histogram(
            "iap_operation_duration_seconds",
            "Time from request to storefront outcome",
            [MetricLabels.OPERATION],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 300.0),
        )

        self.transactions_total = Counter(
            "iap_transactions_total",
            "Transactions observed by state",
            [MetricLabels.STATE],
        )

        self.transactions_finished_total = Counter(
            "iap_transactions_finished_total",
            "Transactions acknowledged on the payment queue",
        )

        self.orphaned_outcomes_total = Counter(
            "iap_orphaned_outcomes_total",
            "Outcomes delivered after the caller stopped waiting",
            [MetricLabels.OPERATION],
        )

        self.errors_total = Counter(
            "iap_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE, MetricLabels.OPERATION],
        )

    def record_operation(self, operation: str, outcome: str, duration: float) -> None:
        """Record a completed facade operation."""
        if not settings.metrics_enabled:
            return
        self.operations_total.labels(operation=operation, outcome=outcome).inc()
        self.operation_duration_seconds.labels(operation=operation).observe(duration)

    def record_transaction(self, state: str) -> None:
        if not settings.metrics_enabled:
            return
        self.transactions_total.labels(state=state).inc()

    def record_finished(self) -> None:
        if not settings.metrics_enabled:
            return
        self.transactions_finished_total.inc()

    def record_orphan(self, operation: str) -> None:
        if not settings.metrics_enabled:
            return
        self.orphaned_outcomes_total.labels(operation=operation).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        if not settings.metrics_enabled:
            return
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = StoreMetrics()


class track_operation:
    """
    Context manager for timing a facade operation.

    Usage:
        with track_operation("purchase") as tracker:
            ok = await ...
            tracker.set_outcome("success")
    """

    def __init__(self, operation: str) -> None:
        self.operation = operation
        self.outcome = "success"
        self.start_time: float = 0.0

    def set_outcome(self, outcome: str) -> None:
        self.outcome = outcome

    def __enter__(self) -> "track_operation":
        self.start_time = time.monotonic()
        return self

    def __exit__(self, exc_type: type, exc_val: BaseException, exc_tb: object) -> None:
        duration = time.monotonic() - self.start_time
        if exc_type is not None:
            self.outcome = "error"
            metrics.record_error(exc_type.__name__, self.operation)
        metrics.record_operation(self.operation, self.outcome, duration)
