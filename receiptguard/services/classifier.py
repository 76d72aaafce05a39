"""
Receipt Classifier.

Turns a validated receipt into a Verdict at a given instant. The verdict is
derived data: the same receipt and as_of always give the same verdict.
"""

from datetime import datetime

from structlog import get_logger

from receiptguard.config import get_settings
from receiptguard.models.domain import (
    Anomaly,
    AnomalyKind,
    Receipt,
    ValidationResult,
    Verdict,
    epoch_ms_from_instant,
)
from receiptguard.observability.metrics import ReceiptMetrics, metrics

logger = get_logger(__name__)


def classify(
    result: ValidationResult | Receipt,
    as_of: datetime,
    *,
    tolerance_ms: int | None = None,
    receipt_metrics: ReceiptMetrics | None = None,
) -> Verdict:
    """
    Classify a receipt at as_of.

    Args:
        result: Validation result (or a bare Receipt, which carries no
            validation anomalies)
        as_of: Timezone-aware instant to classify at
        tolerance_ms: Clock skew tolerated before flagging a receipt created
            after as_of (defaults to the configured temporal tolerance)
        receipt_metrics: Metrics sink (defaults to the global metrics)

    Returns:
        Verdict with environment, expiry and the union of all anomalies

    Raises:
        ValueError: If as_of is naive
    """
    if as_of.tzinfo is None or as_of.utcoffset() is None:
        raise ValueError("as_of must be timezone-aware")

    if isinstance(result, Receipt):
        receipt, anomalies = result, ()
    else:
        receipt, anomalies = result.receipt, result.anomalies
    if tolerance_ms is None:
        tolerance_ms = get_settings().temporal_tolerance_ms

    # No expiration date means the receipt never expires
    is_expired = receipt.expiration_date is not None and receipt.expiration_date.instant < as_of

    details = anomalies + tuple(_classifier_anomalies(receipt, as_of, tolerance_ms))
    verdict = Verdict(
        environment=receipt.environment,
        is_expired=is_expired,
        anomalies=frozenset(anomaly.kind for anomaly in details),
        details=details,
        as_of=as_of,
    )

    (receipt_metrics or metrics).record_verdict(verdict.environment.value, verdict.is_expired)
    logger.debug(
        "receipt_classified",
        bundle_id=receipt.bundle_id,
        environment=verdict.environment.value,
        is_expired=verdict.is_expired,
        anomalies=sorted(kind.value for kind in verdict.anomalies),
    )
    return verdict


def _classifier_anomalies(receipt: Receipt, as_of: datetime, tolerance_ms: int) -> list[Anomaly]:
    findings: list[Anomaly] = []
    skew_ms = receipt.receipt_creation_date.epoch_ms - epoch_ms_from_instant(as_of)
    if skew_ms > tolerance_ms:
        findings.append(
            Anomaly(
                kind=AnomalyKind.CREATED_AFTER_AS_OF,
                field="receipt_creation_date",
                detail=f"Receipt created {skew_ms} ms after classification instant",
            )
        )
    return findings
