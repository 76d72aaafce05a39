"""
Metrics Collection with Prometheus.

Counts validations, decode errors, anomalies and verdicts. Exposition is left
to the surrounding service (see get_metrics_text).
"""

import time
from collections.abc import Iterable

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram, Info, generate_latest

from receiptguard.config import settings


class MetricLabels:
    """Standard metric label names."""

    RECEIPT_TYPE = "receipt_type"
    ENVIRONMENT = "environment"
    ANOMALY_KIND = "anomaly_kind"
    ERROR_TYPE = "error_type"
    EXPIRED = "expired"


class ReceiptMetrics:
    """
    Centralized metrics for the receipt engine.

    Covers:
    - Receipt validations (rate, duration, by receipt type)
    - Decode errors (by error type)
    - Anomalies (by kind)
    - Transaction decode failures
    - Verdicts (by environment and expiry)
    """

    def __init__(self, registry: CollectorRegistry = REGISTRY, enabled: bool = True) -> None:
        """Initialize all Prometheus metrics on the given registry."""
        self.enabled = enabled
        self.registry = registry

        self.service_info = Info(
            "receiptguard_service",
            "Service information",
            registry=registry,
        )
        self.service_info.info(
            {
                "version": settings.service_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # Validation Metrics
        # ====================================================================
        self.receipts_validated_total = Counter(
            "receiptguard_receipts_validated_total",
            "Total receipts decoded successfully",
            [MetricLabels.RECEIPT_TYPE],
            registry=registry,
        )

        self.validation_duration_seconds = Histogram(
            "receiptguard_validation_duration_seconds",
            "Receipt validation duration in seconds",
            buckets=(0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1),
            registry=registry,
        )

        self.decode_errors_total = Counter(
            "receiptguard_decode_errors_total",
            "Total receipts that failed to decode",
            [MetricLabels.ERROR_TYPE],
            registry=registry,
        )

        self.transaction_failures_total = Counter(
            "receiptguard_transaction_failures_total",
            "Total in_app entries that failed to decode",
            registry=registry,
        )

        # ====================================================================
        # Anomaly and Verdict Metrics
        # ====================================================================
        self.anomalies_total = Counter(
            "receiptguard_anomalies_total",
            "Total anomalies found during validation",
            [MetricLabels.ANOMALY_KIND],
            registry=registry,
        )

        self.verdicts_total = Counter(
            "receiptguard_verdicts_total",
            "Total verdicts issued",
            [MetricLabels.ENVIRONMENT, MetricLabels.EXPIRED],
            registry=registry,
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_validation(
        self, receipt_type: str, anomaly_kinds: Iterable[str], failed_transactions: int
    ) -> None:
        """Record a successful receipt decode."""
        if not self.enabled:
            return
        self.receipts_validated_total.labels(receipt_type=receipt_type).inc()
        for kind in anomaly_kinds:
            self.anomalies_total.labels(anomaly_kind=kind).inc()
        if failed_transactions:
            self.transaction_failures_total.inc(failed_transactions)

    def record_decode_error(self, error_type: str) -> None:
        """Record a receipt that could not be decoded."""
        if not self.enabled:
            return
        self.decode_errors_total.labels(error_type=error_type).inc()

    def record_verdict(self, environment: str, is_expired: bool) -> None:
        """Record a classifier verdict."""
        if not self.enabled:
            return
        self.verdicts_total.labels(environment=environment, expired=str(is_expired)).inc()

    def observe_duration(self, duration: float) -> None:
        if not self.enabled:
            return
        self.validation_duration_seconds.observe(duration)


# Global metrics instance
metrics = ReceiptMetrics(enabled=settings.metrics_enabled)


class track_validation:
    """
    Context manager for timing receipt validations.

    Usage:
        with track_validation():
            result = validator.validate(payload)
    """

    def __init__(self, receipt_metrics: ReceiptMetrics | None = None) -> None:
        self.metrics = receipt_metrics or metrics
        self.start_time: float = 0.0

    def __enter__(self) -> "track_validation":
        """Start tracking."""
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type: type, exc_val: Exception, exc_tb: object) -> None:
        """Record duration, including failed decodes."""
        self.metrics.observe_duration(time.perf_counter() - self.start_time)


def get_metrics_text(registry: CollectorRegistry = REGISTRY) -> bytes:
    """Render metrics in Prometheus exposition format for the host service."""
    return generate_latest(registry)
