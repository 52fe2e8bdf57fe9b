"""
Metrics Collection with Prometheus.

Exposes subscription reconciliation and system metrics for monitoring.
"""

import time
from enum import Enum

from prometheus_client import Counter, Histogram, Info

from playsubs.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    SKU_TYPE = "sku_type"
    OUTCOME = "outcome"
    NOTIFICATION_TYPE = "notification_type"
    ERROR_TYPE = "error_type"


class SubscriptionMetrics:
    """
    Centralized metrics for the Play Subscriptions API.

    Covers HTTP traffic, Play Developer API verifications, purchase
    registrations, developer notifications and push fan-out.
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "playsubs_service",
            "Service information",
        )
        self.service_info.info(
            {
                "version": settings.api_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "playsubs_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "playsubs_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        # ====================================================================
        # Play Developer API Metrics
        # ====================================================================
        self.verifications_total = Counter(
            "playsubs_purchase_verifications_total",
            "Total Play Developer API purchase lookups",
            [MetricLabels.SKU_TYPE, MetricLabels.OUTCOME],
        )

        self.verification_duration_seconds = Histogram(
            "playsubs_purchase_verification_duration_seconds",
            "Play Developer API lookup duration in seconds",
            [MetricLabels.SKU_TYPE],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        # ====================================================================
        # Registration Metrics
        # ====================================================================
        self.registrations_total = Counter(
            "playsubs_registrations_total",
            "Purchase registrations by outcome",
            [MetricLabels.SKU_TYPE, MetricLabels.OUTCOME],
        )

        self.replaced_purchases_total = Counter(
            "playsubs_replaced_purchases_total",
            "Purchases invalidated because a newer purchase replaced them",
        )

        # ====================================================================
        # Notification Metrics
        # ====================================================================
        self.notifications_total = Counter(
            "playsubs_developer_notifications_total",
            "Real-Time Developer Notifications received",
            [MetricLabels.NOTIFICATION_TYPE, MetricLabels.OUTCOME],
        )

        self.push_messages_total = Counter(
            "playsubs_push_messages_total",
            "Push messages sent to user devices",
            [MetricLabels.OUTCOME],
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "playsubs_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE, MetricLabels.OPERATION],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_verification(self, sku_type: str, outcome: str, duration: float) -> None:
        """Record a Play Developer API lookup (outcome: found, not_found, error)."""
        self.verifications_total.labels(sku_type=sku_type, outcome=outcome).inc()
        self.verification_duration_seconds.labels(sku_type=sku_type).observe(duration)

    def record_registration(self, sku_type: str, outcome: str) -> None:
        """Outcome: registered, already_registered, conflict, invalid_token or error."""
        self.registrations_total.labels(sku_type=sku_type, outcome=outcome).inc()

    def record_notification(self, notification_type: str, outcome: str) -> None:
        self.notifications_total.labels(
            notification_type=notification_type, outcome=outcome
        ).inc()

    def record_push(self, outcome: str, count: int = 1) -> None:
        if count > 0:
            self.push_messages_total.labels(outcome=outcome).inc(count)

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = SubscriptionMetrics()


class track_duration:
    """
    Context manager measuring elapsed wall time in seconds.

    Usage:
        with track_duration() as timer:
            await client.verify(...)
        metrics.record_verification("subs", "found", timer.elapsed)
    """

    def __init__(self) -> None:
        self.start_time = 0.0
        self.end_time: float | None = None

    @property
    def elapsed(self) -> float:
        """Seconds since entry; frozen once the block exits."""
        end = time.perf_counter() if self.end_time is None else self.end_time
        return end - self.start_time

    def __enter__(self) -> "track_duration":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.end_time = time.perf_counter()

