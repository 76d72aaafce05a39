"""
API Models - Pydantic models for serializing engine output.

The host service returns these from its own endpoints or writes them to
logs. Field names follow the platform's snake_case receipt schema so the
vocabulary is the same on the way in and on the way out.
"""

from typing import Any

from pydantic import BaseModel, Field

from receiptguard.exceptions import DecodeError
from receiptguard.models.domain import (
    Anomaly,
    AnomalyKind,
    DecodedTransaction,
    Environment,
    TransactionResult,
    ValidationResult,
    Verdict,
)


class AnomalyResponse(BaseModel):
    """Single non-fatal finding."""

    kind: AnomalyKind
    field: str | None = None
    detail: str

    @classmethod
    def from_anomaly(cls, anomaly: Anomaly) -> "AnomalyResponse":
        return cls(kind=anomaly.kind, field=anomaly.field, detail=anomaly.detail)


class TransactionResultResponse(BaseModel):
    """Decode outcome of one in_app entry."""

    index: int = Field(..., ge=0)
    ok: bool
    transaction: dict[str, Any] | None = None  # in_app entry field names
    reason: str | None = None
    field: str | None = None

    @classmethod
    def from_result(cls, result: TransactionResult) -> "TransactionResultResponse":
        if isinstance(result, DecodedTransaction):
            return cls(index=result.index, ok=True, transaction=result.transaction.to_payload())
        return cls(index=result.index, ok=False, reason=result.reason, field=result.field_name)


class VerdictResponse(BaseModel):
    """Classifier verdict."""

    environment: Environment
    is_expired: bool
    anomalies: list[AnomalyKind] = Field(default_factory=list)  # Sorted for stable output
    as_of: str  # ISO 8601 timestamp

    @classmethod
    def from_verdict(cls, verdict: Verdict) -> "VerdictResponse":
        return cls(
            environment=verdict.environment,
            is_expired=verdict.is_expired,
            anomalies=sorted(verdict.anomalies, key=lambda kind: kind.value),
            as_of=verdict.as_of.isoformat(),
        )


class ValidationReport(BaseModel):
    """Full outcome of a successful validation, optionally with its verdict."""

    receipt: dict[str, Any]  # Receipt field names, in_app holds decoded entries only
    anomalies: list[AnomalyResponse] = Field(default_factory=list)
    in_app_results: list[TransactionResultResponse] = Field(default_factory=list)
    verdict: VerdictResponse | None = None

    @classmethod
    def from_result(
        cls, result: ValidationResult, verdict: Verdict | None = None
    ) -> "ValidationReport":
        """Build a report; when a verdict is given its anomalies are reported in full."""
        details = verdict.details if verdict is not None else result.anomalies
        return cls(
            receipt=result.receipt.to_payload(),
            anomalies=[AnomalyResponse.from_anomaly(anomaly) for anomaly in details],
            in_app_results=[
                TransactionResultResponse.from_result(entry) for entry in result.transaction_results
            ],
            verdict=VerdictResponse.from_verdict(verdict) if verdict is not None else None,
        )


class DecodeErrorResponse(BaseModel):
    """A receipt that could not be decoded. It has no verdict."""

    error_type: str
    field: str | None = None
    message: str

    @classmethod
    def from_error(cls, error: DecodeError) -> "DecodeErrorResponse":
        return cls(error_type=error.error_type, field=error.field_name, message=error.message)
