"""
Transaction Decoder.

Decodes each entry of a receipt's in_app array on its own. A bad entry
becomes a TransactionFailure in its slot; it never aborts the receipt.
Entries keep their input order and are never deduplicated.
"""

from collections.abc import Mapping, Sequence

from structlog import get_logger

from receiptguard.exceptions import DecodeError
from receiptguard.models.domain import (
    Anomaly,
    DecodedTransaction,
    InAppTransaction,
    TemporalTriple,
    TransactionFailure,
    TransactionResult,
)
from receiptguard.services.fields import (
    optional_flag,
    optional_integer,
    optional_string,
    require_string,
)
from receiptguard.services.temporal import DEFAULT_TOLERANCE_MS, reconcile

logger = get_logger(__name__)


def decode_transaction(
    index: int,
    entry: object,
    *,
    tolerance_ms: int = DEFAULT_TOLERANCE_MS,
) -> TransactionResult:
    """
    Decode one in_app entry.

    Args:
        index: Position of the entry in the in_app array
        entry: Raw entry from the decoded payload
        tolerance_ms: Temporal reconciliation tolerance

    Returns:
        DecodedTransaction on success, TransactionFailure otherwise
    """
    prefix = f"in_app[{index}]"

    if not isinstance(entry, Mapping):
        logger.warning("transaction_decode_failed", index=index, error="entry is not an object")
        return TransactionFailure(
            index=index,
            reason=f"Entry is not an object: {type(entry).__name__}",
            field_name=prefix,
        )

    try:
        transaction, anomalies = _decode_entry(index, entry, prefix, tolerance_ms)
    except DecodeError as exc:
        logger.warning(
            "transaction_decode_failed",
            index=index,
            field=exc.field_name,
            error=exc.message,
        )
        return TransactionFailure(index=index, reason=exc.message, field_name=exc.field_name)

    return DecodedTransaction(index=index, transaction=transaction, anomalies=anomalies)


def decode_transactions(
    entries: Sequence[object],
    *,
    tolerance_ms: int = DEFAULT_TOLERANCE_MS,
) -> tuple[TransactionResult, ...]:
    """Decode every in_app entry, collecting all results in input order."""
    return tuple(
        decode_transaction(index, entry, tolerance_ms=tolerance_ms)
        for index, entry in enumerate(entries)
    )


def _decode_entry(
    index: int,
    entry: Mapping[str, object],
    prefix: str,
    tolerance_ms: int,
) -> tuple[InAppTransaction, tuple[Anomaly, ...]]:
    anomalies: list[Anomaly] = []

    def triple(name: str, required: bool) -> TemporalTriple | None:
        result = reconcile(
            entry,
            name,
            required=required,
            tolerance_ms=tolerance_ms,
            label=f"{prefix}.{name}",
        )
        if result is None:
            return None
        anomalies.extend(result.anomalies)
        return result.triple

    product_id = require_string(entry, "product_id", f"{prefix}.product_id")
    transaction_id = _opaque_id(entry, "transaction_id", prefix)
    original_transaction_id = (
        optional_string(entry, "original_transaction_id", f"{prefix}.original_transaction_id")
        or transaction_id
    )
    quantity = optional_integer(entry, "quantity", 1, f"{prefix}.quantity")
    if quantity < 1:
        raise DecodeError(f"Quantity must be positive: {quantity}", f"{prefix}.quantity")

    transaction = InAppTransaction(
        index=index,
        product_id=product_id,
        transaction_id=transaction_id,
        original_transaction_id=original_transaction_id,
        quantity=quantity,
        purchase_date=triple("purchase_date", required=True),
        original_purchase_date=triple("original_purchase_date", required=True),
        expires_date=triple("expires_date", required=False),
        cancellation_date=triple("cancellation_date", required=False),
        cancellation_reason=optional_string(
            entry, "cancellation_reason", f"{prefix}.cancellation_reason"
        ),
        web_order_line_item_id=optional_string(
            entry, "web_order_line_item_id", f"{prefix}.web_order_line_item_id"
        ),
        promotional_offer_id=optional_string(
            entry, "promotional_offer_id", f"{prefix}.promotional_offer_id"
        ),
        is_trial_period=optional_flag(entry, "is_trial_period", f"{prefix}.is_trial_period"),
        is_in_intro_offer_period=optional_flag(
            entry, "is_in_intro_offer_period", f"{prefix}.is_in_intro_offer_period"
        ),
    )
    return transaction, tuple(anomalies)


def _opaque_id(entry: Mapping[str, object], name: str, prefix: str) -> str:
    value = optional_string(entry, name, f"{prefix}.{name}")
    if not value:
        return require_string(entry, name, f"{prefix}.{name}")
    return value
