"""
Domain Models - Immutable dataclasses for decoded receipts.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
Dictionaries only appear at the edge, in to_payload(), which renders a model
back to the platform's snake_case field names.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from zoneinfo import ZoneInfo

UTC_ZONE_NAME = "Etc/GMT"
PACIFIC_ZONE_NAME = "America/Los_Angeles"
PACIFIC = ZoneInfo(PACIFIC_ZONE_NAME)
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def instant_from_epoch_ms(epoch_ms: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime without float rounding."""
    return EPOCH + timedelta(milliseconds=epoch_ms)


def epoch_ms_from_instant(instant: datetime) -> int:
    """Convert an aware datetime to epoch milliseconds (floored)."""
    return (instant - EPOCH) // timedelta(milliseconds=1)


class ReceiptType(str, Enum):
    """Receipt type - the environment the app or VPP purchase was made in."""

    PRODUCTION = "Production"
    PRODUCTION_VPP = "ProductionVPP"
    PRODUCTION_SANDBOX = "ProductionSandbox"
    PRODUCTION_VPP_SANDBOX = "ProductionVPPSandbox"

    @property
    def is_vpp(self) -> bool:
        """Volume Purchase Program receipts carry their own expiration."""
        return "VPP" in self.value

    @property
    def is_sandbox(self) -> bool:
        return "Sandbox" in self.value


class Environment(str, Enum):
    """Environment a receipt was issued in."""

    PRODUCTION = "Production"
    SANDBOX = "Sandbox"


class AnomalyKind(str, Enum):
    """Non-fatal inconsistencies surfaced for caller policy."""

    TEMPORAL_MISMATCH = "TemporalMismatch"
    INCOMPLETE_TEMPORAL_TRIPLE = "IncompleteTemporalTriple"
    MALFORMED_TIMESTAMP_REPRESENTATION = "MalformedTimestampRepresentation"
    UNEXPECTED_EXPIRATION_FIELD = "UnexpectedExpirationField"
    SANDBOX_VERSION_MISMATCH = "SandboxVersionMismatch"
    TRANSACTION_DECODE_FAILURE = "TransactionDecodeFailure"
    BUNDLE_ID_MISMATCH = "BundleIdMismatch"
    REQUEST_BEFORE_CREATION = "RequestBeforeCreation"
    CREATED_AFTER_AS_OF = "CreatedAfterAsOf"


@dataclass(frozen=True)
class Anomaly:
    """One non-fatal finding, tied to the field it was found on."""

    kind: AnomalyKind
    field: str | None
    detail: str


@dataclass(frozen=True)
class TemporalTriple:
    """One instant with its three platform serializations.

    Always complete: an absent optional timestamp is None, never a
    partially filled triple.
    """

    iso_like: str  # 2021-03-01 07:00:00 Etc/GMT
    epoch_ms: int  # 1614582000000
    zone_local: str  # 2021-02-28 23:00:00 America/Los_Angeles

    def __post_init__(self) -> None:
        """Validate triple fields."""
        if isinstance(self.epoch_ms, bool) or not isinstance(self.epoch_ms, int):
            raise ValueError(f"epoch_ms must be an integer: {self.epoch_ms!r}")
        if not self.iso_like:
            raise ValueError("iso_like cannot be empty")
        if not self.zone_local:
            raise ValueError("zone_local cannot be empty")

    @classmethod
    def from_epoch_ms(cls, epoch_ms: int) -> "TemporalTriple":
        """Render the canonical triple for an instant."""
        instant = instant_from_epoch_ms(epoch_ms)
        local = instant.astimezone(PACIFIC)
        return cls(
            iso_like=f"{instant.strftime(TIMESTAMP_FORMAT)} {UTC_ZONE_NAME}",
            epoch_ms=epoch_ms,
            zone_local=f"{local.strftime(TIMESTAMP_FORMAT)} {PACIFIC_ZONE_NAME}",
        )

    @property
    def instant(self) -> datetime:
        """Canonical instant as an aware UTC datetime."""
        return instant_from_epoch_ms(self.epoch_ms)

    def to_payload(self, name: str) -> dict[str, str]:
        """Render as the platform's three keys: name, name_ms, name_pst."""
        return {
            name: self.iso_like,
            f"{name}_ms": str(self.epoch_ms),
            f"{name}_pst": self.zone_local,
        }


@dataclass(frozen=True)
class InAppTransaction:
    """One in-app purchase or subscription event within a receipt."""

    index: int = field(compare=False)  # Position in the in_app array, not part of equality
    product_id: str
    transaction_id: str
    original_transaction_id: str
    quantity: int
    purchase_date: TemporalTriple
    original_purchase_date: TemporalTriple

    # Optional fields
    expires_date: TemporalTriple | None = None  # Auto-renewable subscriptions only
    cancellation_date: TemporalTriple | None = None  # Refunded or upgraded
    cancellation_reason: str | None = None  # "0": other, "1": app issue
    web_order_line_item_id: str | None = None
    promotional_offer_id: str | None = None
    is_trial_period: bool | None = None
    is_in_intro_offer_period: bool | None = None

    def __post_init__(self) -> None:
        """Validate transaction fields."""
        if not self.product_id:
            raise ValueError("product_id cannot be empty")
        if not self.transaction_id:
            raise ValueError("transaction_id cannot be empty")
        if self.quantity < 1:
            raise ValueError(f"Quantity must be positive: {self.quantity}")

    def is_cancelled(self) -> bool:
        """Check if the platform cancelled (refunded) this transaction."""
        return self.cancellation_date is not None

    def is_subscription(self) -> bool:
        """Check if this is an auto-renewable subscription transaction."""
        return self.expires_date is not None

    def to_payload(self) -> dict[str, object]:
        """Render back to the platform's in_app entry field names."""
        payload: dict[str, object] = {
            "product_id": self.product_id,
            "transaction_id": self.transaction_id,
            "original_transaction_id": self.original_transaction_id,
            "quantity": str(self.quantity),
            **self.purchase_date.to_payload("purchase_date"),
            **self.original_purchase_date.to_payload("original_purchase_date"),
        }
        if self.expires_date is not None:
            payload.update(self.expires_date.to_payload("expires_date"))
        if self.cancellation_date is not None:
            payload.update(self.cancellation_date.to_payload("cancellation_date"))
        optional_strings = {
            "cancellation_reason": self.cancellation_reason,
            "web_order_line_item_id": self.web_order_line_item_id,
            "promotional_offer_id": self.promotional_offer_id,
        }
        payload.update({k: v for k, v in optional_strings.items() if v is not None})
        optional_flags = {
            "is_trial_period": self.is_trial_period,
            "is_in_intro_offer_period": self.is_in_intro_offer_period,
        }
        payload.update({k: str(v).lower() for k, v in optional_flags.items() if v is not None})
        return payload


@dataclass(frozen=True)
class Receipt:
    """Decoded and validated purchase receipt.

    Identifiers issued as 64-bit integers (adam_id, app_item_id) are kept
    as digit strings so large values never lose precision.
    """

    adam_id: str
    app_item_id: str
    bundle_id: str
    application_version: str
    original_application_version: str
    download_id: int
    version_external_identifier: int
    receipt_type: ReceiptType
    receipt_creation_date: TemporalTriple
    original_purchase_date: TemporalTriple
    request_date: TemporalTriple

    # Optional clusters - present as a whole or not at all
    expiration_date: TemporalTriple | None = None  # VPP licenses only
    preorder_date: TemporalTriple | None = None

    in_app: tuple[InAppTransaction, ...] = ()

    def __post_init__(self) -> None:
        """Validate receipt fields."""
        if not self.bundle_id:
            raise ValueError("bundle_id cannot be empty")
        for name in ("adam_id", "app_item_id"):
            value = getattr(self, name)
            if not (value.isascii() and value.isdigit()):
                raise ValueError(f"{name} must be a digit string: {value!r}")

    @property
    def environment(self) -> Environment:
        """Environment derived from the receipt type."""
        return Environment.SANDBOX if self.receipt_type.is_sandbox else Environment.PRODUCTION

    def expires(self) -> bool:
        """Receipts without an expiration date never expire."""
        return self.expiration_date is not None

    def to_payload(self) -> dict[str, object]:
        """Render back to the platform's receipt field names."""
        payload: dict[str, object] = {
            "adam_id": self.adam_id,
            "app_item_id": self.app_item_id,
            "bundle_id": self.bundle_id,
            "application_version": self.application_version,
            "original_application_version": self.original_application_version,
            "download_id": self.download_id,
            "version_external_identifier": self.version_external_identifier,
            "receipt_type": self.receipt_type.value,
            **self.receipt_creation_date.to_payload("receipt_creation_date"),
            **self.original_purchase_date.to_payload("original_purchase_date"),
            **self.request_date.to_payload("request_date"),
        }
        if self.expiration_date is not None:
            payload.update(self.expiration_date.to_payload("expiration_date"))
        if self.preorder_date is not None:
            payload.update(self.preorder_date.to_payload("preorder_date"))
        payload["in_app"] = [transaction.to_payload() for transaction in self.in_app]
        return payload


@dataclass(frozen=True)
class DecodedTransaction:
    """Successful decode of one in_app entry."""

    index: int
    transaction: InAppTransaction
    anomalies: tuple[Anomaly, ...] = ()

    @property
    def ok(self) -> bool:
        """Always True; the entry decoded."""
        return True


@dataclass(frozen=True)
class TransactionFailure:
    """Failed decode of one in_app entry, isolated to its slot."""

    index: int
    reason: str
    field_name: str | None = None

    @property
    def ok(self) -> bool:
        """Always False; see reason and field_name."""
        return False


TransactionResult = DecodedTransaction | TransactionFailure


@dataclass(frozen=True)
class ValidationResult:
    """Receipt plus everything found while decoding it."""

    receipt: Receipt
    anomalies: tuple[Anomaly, ...]
    transaction_results: tuple[TransactionResult, ...]  # Auxiliary decode metadata

    @property
    def failed_transactions(self) -> tuple[TransactionFailure, ...]:
        return tuple(r for r in self.transaction_results if isinstance(r, TransactionFailure))

    @property
    def anomaly_kinds(self) -> frozenset[AnomalyKind]:
        return frozenset(anomaly.kind for anomaly in self.anomalies)


@dataclass(frozen=True)
class Verdict:
    """Classification of a validated receipt at a point in time."""

    environment: Environment
    is_expired: bool
    anomalies: frozenset[AnomalyKind]
    details: tuple[Anomaly, ...]
    as_of: datetime

    def is_sandbox(self) -> bool:
        """Check if this is a sandbox (test) receipt."""
        return self.environment == Environment.SANDBOX

    def is_clean(self) -> bool:
        """Check if no anomalies were found."""
        return not self.anomalies
