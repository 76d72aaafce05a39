"""
Receipt Validator.

Decodes a signature-verified receipt payload into a Receipt, reconciles its
timestamps, runs cross-field rules and aggregates per-entry transaction
results.

Decode errors (missing required fields, unknown receipt_type, timestamps with
no parseable representation) raise DecodeError subclasses: the receipt has no
verdict. Everything else is an Anomaly returned next to the Receipt so the
caller can apply its own risk policy.
"""

from collections.abc import Mapping

from structlog import get_logger

from receiptguard.config import Settings, get_settings
from receiptguard.exceptions import (
    DecodeError,
    InvalidEnumError,
    InvalidFieldTypeError,
    MissingFieldError,
)
from receiptguard.models.domain import (
    Anomaly,
    AnomalyKind,
    DecodedTransaction,
    Receipt,
    ReceiptType,
    TemporalTriple,
    TransactionFailure,
    TransactionResult,
    ValidationResult,
)
from receiptguard.observability.logging import receipt_context
from receiptguard.observability.metrics import ReceiptMetrics, metrics, track_validation
from receiptguard.services.fields import require_identifier, require_integer, require_string
from receiptguard.services.temporal import reconcile
from receiptguard.services.transactions import decode_transactions

logger = get_logger(__name__)


class ReceiptValidator:
    """
    Validates decoded receipt payloads.

    Holds no per-receipt state: one instance can validate any number of
    receipts, concurrently.
    """

    def __init__(
        self,
        config: Settings | None = None,
        *,
        expected_bundle_id: str | None = None,
        receipt_metrics: ReceiptMetrics | None = None,
    ) -> None:
        """
        Initialize the validator.

        Args:
            config: Engine settings (defaults to the global settings)
            expected_bundle_id: Flag receipts issued for any other bundle
            receipt_metrics: Metrics sink (defaults to the global metrics)
        """
        self.config = config or get_settings()
        self.tolerance_ms = self.config.temporal_tolerance_ms
        self.expected_bundle_id = expected_bundle_id or self.config.expected_bundle_id
        self.metrics = receipt_metrics or metrics

    def validate(self, payload: Mapping[str, object]) -> ValidationResult:
        """
        Decode and validate one receipt.

        Args:
            payload: Decoded JSON object of the receipt

        Returns:
            ValidationResult with the receipt, its anomalies and every
            in_app decode result

        Raises:
            DecodeError: If the receipt cannot be decoded
        """
        with receipt_context(payload):
            with track_validation(self.metrics):
                try:
                    result = self._validate(payload)
                except DecodeError as exc:
                    logger.warning(
                        "receipt_decode_failed",
                        error_type=exc.error_type,
                        field=exc.field_name,
                        error=exc.message,
                    )
                    self.metrics.record_decode_error(exc.error_type)
                    raise

            self.metrics.record_validation(
                result.receipt.receipt_type.value,
                [anomaly.kind.value for anomaly in result.anomalies],
                len(result.failed_transactions),
            )
            logger.info(
                "receipt_validated",
                transaction_count=len(result.transaction_results),
                failed_transactions=len(result.failed_transactions),
                anomaly_count=len(result.anomalies),
            )
            for anomaly in result.anomalies:
                logger.debug(
                    "receipt_anomaly",
                    kind=anomaly.kind.value,
                    field=anomaly.field,
                    detail=anomaly.detail,
                )
        return result

    def _validate(self, payload: Mapping[str, object]) -> ValidationResult:
        if not isinstance(payload, Mapping):
            raise DecodeError(f"Receipt payload must be an object, got {type(payload).__name__}")

        anomalies: list[Anomaly] = []

        def triple(name: str, required: bool) -> TemporalTriple | None:
            result = reconcile(payload, name, required=required, tolerance_ms=self.tolerance_ms)
            if result is None:
                return None
            anomalies.extend(result.anomalies)
            return result.triple

        receipt_type = _parse_receipt_type(payload.get("receipt_type"))
        adam_id = require_identifier(payload, "adam_id")
        app_item_id = require_identifier(payload, "app_item_id")
        bundle_id = require_string(payload, "bundle_id")
        application_version = require_string(payload, "application_version")
        original_application_version = require_string(payload, "original_application_version")
        download_id = require_integer(payload, "download_id")
        version_external_identifier = require_integer(payload, "version_external_identifier")

        receipt_creation_date = triple("receipt_creation_date", required=True)
        original_purchase_date = triple("original_purchase_date", required=True)
        request_date = triple("request_date", required=True)
        expiration_date = triple("expiration_date", required=False)
        preorder_date = triple("preorder_date", required=False)

        transaction_results = decode_transactions(
            _in_app_entries(payload.get("in_app")), tolerance_ms=self.tolerance_ms
        )
        anomalies.extend(_transaction_anomalies(transaction_results))

        receipt = Receipt(
            adam_id=adam_id,
            app_item_id=app_item_id,
            bundle_id=bundle_id,
            application_version=application_version,
            original_application_version=original_application_version,
            download_id=download_id,
            version_external_identifier=version_external_identifier,
            receipt_type=receipt_type,
            receipt_creation_date=receipt_creation_date,
            original_purchase_date=original_purchase_date,
            request_date=request_date,
            expiration_date=expiration_date,
            preorder_date=preorder_date,
            in_app=tuple(
                result.transaction
                for result in transaction_results
                if isinstance(result, DecodedTransaction)
            ),
        )
        anomalies.extend(self._cross_check(receipt))

        return ValidationResult(
            receipt=receipt,
            anomalies=tuple(anomalies),
            transaction_results=transaction_results,
        )

    def _cross_check(self, receipt: Receipt) -> list[Anomaly]:
        """Cross-field rules. Every finding is non-fatal."""
        findings: list[Anomaly] = []

        # VPP receipts may carry an expiration (already reconciled); others should not
        if receipt.expiration_date is not None and not receipt.receipt_type.is_vpp:
            findings.append(
                Anomaly(
                    kind=AnomalyKind.UNEXPECTED_EXPIRATION_FIELD,
                    field="expiration_date",
                    detail=f"Expiration date on non-VPP receipt type {receipt.receipt_type.value}",
                )
            )

        expected_version = self.config.sandbox_application_version
        if receipt.receipt_type.is_sandbox and receipt.application_version != expected_version:
            findings.append(
                Anomaly(
                    kind=AnomalyKind.SANDBOX_VERSION_MISMATCH,
                    field="application_version",
                    detail=(
                        f"Sandbox receipt reports application_version "
                        f"{receipt.application_version!r}, expected {expected_version!r}"
                    ),
                )
            )

        created_ms = receipt.receipt_creation_date.epoch_ms
        requested_ms = receipt.request_date.epoch_ms
        if created_ms - requested_ms > self.tolerance_ms:
            findings.append(
                Anomaly(
                    kind=AnomalyKind.REQUEST_BEFORE_CREATION,
                    field="request_date",
                    detail=(
                        f"Request processed {created_ms - requested_ms} ms "
                        "before receipt creation"
                    ),
                )
            )

        if self.expected_bundle_id is not None and receipt.bundle_id != self.expected_bundle_id:
            findings.append(
                Anomaly(
                    kind=AnomalyKind.BUNDLE_ID_MISMATCH,
                    field="bundle_id",
                    detail=(
                        f"Receipt issued for {receipt.bundle_id!r}, "
                        f"expected {self.expected_bundle_id!r}"
                    ),
                )
            )

        return findings


def validate_receipt(payload: Mapping[str, object]) -> ValidationResult:
    """Validate a receipt with the default settings."""
    return ReceiptValidator().validate(payload)


def _parse_receipt_type(value: object) -> ReceiptType:
    if value is None:
        raise MissingFieldError("receipt_type")
    if not isinstance(value, str):
        raise InvalidEnumError("receipt_type", value)
    try:
        return ReceiptType(value)
    except ValueError as exc:
        raise InvalidEnumError("receipt_type", value) from exc


def _in_app_entries(value: object) -> list[object]:
    # Absent in_app is a zero-transaction receipt (app download only)
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise InvalidFieldTypeError("in_app", "array", value)
    return list(value)


def _transaction_anomalies(results: tuple[TransactionResult, ...]) -> list[Anomaly]:
    anomalies: list[Anomaly] = []
    for result in results:
        if isinstance(result, TransactionFailure):
            anomalies.append(
                Anomaly(
                    kind=AnomalyKind.TRANSACTION_DECODE_FAILURE,
                    field=f"in_app[{result.index}]",
                    detail=result.reason,
                )
            )
        else:
            anomalies.extend(result.anomalies)
    return anomalies
