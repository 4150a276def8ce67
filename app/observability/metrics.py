"""
Metrics Collection with Prometheus.

Exposes payment and HTTP metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from app.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    ERROR_TYPE = "error_type"
    SOURCE = "source"
    DECISION = "decision"
    RESULT = "result"
    EVENT_TYPE = "event_type"
    OUTCOME = "outcome"


def _labels(*labels: MetricLabels) -> list[str]:
    """Label names as plain strings for the exposition format."""
    return [label.value for label in labels]


class ServiceMetrics:
    """
    Centralized metrics for the lessons API.

    Covers:
    - HTTP requests (rate, duration, in progress)
    - Checkout session creation
    - Payment reconciliation by source, decision and result
    - Webhook deliveries by event type and outcome
    - Errors by type
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        self.service_info = Info(
            "lessons_service",
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
            "lessons_http_requests_total",
            "Total HTTP requests",
            _labels(MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE),
        )

        self.http_request_duration_seconds = Histogram(
            "lessons_http_request_duration_seconds",
            "HTTP request duration in seconds",
            _labels(MetricLabels.ENDPOINT, MetricLabels.METHOD),
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "lessons_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            _labels(MetricLabels.ENDPOINT, MetricLabels.METHOD),
        )

        # ====================================================================
        # Payment Metrics
        # ====================================================================
        self.checkout_sessions_total = Counter(
            "lessons_checkout_sessions_total",
            "Checkout sessions requested from the payment provider",
            _labels(MetricLabels.OUTCOME),
        )

        self.reconciliations_total = Counter(
            "lessons_reconciliations_total",
            "Payment reconciliations by call site, decision and result",
            _labels(MetricLabels.SOURCE, MetricLabels.DECISION, MetricLabels.RESULT),
        )

        self.reconciliation_duration_seconds = Histogram(
            "lessons_reconciliation_duration_seconds",
            "Time spent applying one reconciliation to the account store",
            _labels(MetricLabels.SOURCE),
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0),
        )

        self.webhook_events_total = Counter(
            "lessons_webhook_events_total",
            "Webhook deliveries by event type and outcome",
            _labels(MetricLabels.EVENT_TYPE, MetricLabels.OUTCOME),
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "lessons_errors_total",
            "Total errors by type",
            _labels(MetricLabels.ERROR_TYPE, MetricLabels.OPERATION),
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

    def record_checkout(self, outcome: str) -> None:
        """Record a checkout session attempt (created, invalid, upstream_error)."""
        self.checkout_sessions_total.labels(outcome=outcome).inc()

    def record_reconciliation(
        self, source: str, decision: str, result: str, duration: float
    ) -> None:
        """Record one reconciliation."""
        self.reconciliations_total.labels(source=source, decision=decision, result=result).inc()
        self.reconciliation_duration_seconds.labels(source=source).observe(duration)

    def record_webhook(self, event_type: str, outcome: str) -> None:
        """Record one webhook delivery."""
        self.webhook_events_total.labels(event_type=event_type, outcome=outcome).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = ServiceMetrics()
