"""
Pytest Configuration and Centralized Fixtures.

Provides reusable payloads and engine objects for testing:
- Well-formed receipt and in_app payloads (Production, Sandbox, VPP)
- Validators wired to an isolated metrics registry
- Settings instances for tolerance and bundle checks
"""

import os
from datetime import UTC, datetime
from typing import Any

import pytest
from prometheus_client import CollectorRegistry

# Set environment variables BEFORE importing receiptguard modules
os.environ.setdefault("RECEIPTGUARD_LOG_FORMAT", "console")
os.environ.setdefault("RECEIPTGUARD_METRICS_ENABLED", "true")

from factories import (  # noqa: E402
    BASE_EPOCH_MS,
    build_receipt_payload,
    build_sandbox_payload,
    build_transaction_payload,
    build_vpp_payload,
)

from receiptguard.config import Settings  # noqa: E402
from receiptguard.models.domain import instant_from_epoch_ms  # noqa: E402
from receiptguard.observability.metrics import ReceiptMetrics  # noqa: E402
from receiptguard.services.validator import ReceiptValidator  # noqa: E402

# ============================================================================
# Payload Fixtures
# ============================================================================


@pytest.fixture
def receipt_payload() -> dict[str, Any]:
    """Well-formed Production receipt with one in_app entry."""
    return build_receipt_payload()


@pytest.fixture
def sandbox_payload() -> dict[str, Any]:
    """Well-formed ProductionSandbox receipt."""
    return build_sandbox_payload()


@pytest.fixture
def vpp_payload() -> dict[str, Any]:
    """ProductionVPP receipt expiring ten days after creation."""
    return build_vpp_payload(BASE_EPOCH_MS + 10 * 86_400_000)


@pytest.fixture
def transaction_payload() -> dict[str, Any]:
    """Well-formed in_app entry."""
    return build_transaction_payload()


@pytest.fixture
def base_instant() -> datetime:
    """Receipt creation instant of the default payloads."""
    return instant_from_epoch_ms(BASE_EPOCH_MS)


@pytest.fixture
def now() -> datetime:
    return datetime(2021, 3, 2, 12, 0, 0, tzinfo=UTC)


# ============================================================================
# Engine Fixtures
# ============================================================================


@pytest.fixture
def metrics_registry() -> CollectorRegistry:
    """Isolated Prometheus registry so counters start at zero."""
    return CollectorRegistry()


@pytest.fixture
def receipt_metrics(metrics_registry: CollectorRegistry) -> ReceiptMetrics:
    return ReceiptMetrics(registry=metrics_registry)


@pytest.fixture
def engine_settings() -> Settings:
    """Default engine settings, independent of the process environment."""
    return Settings(_env_file=None)


@pytest.fixture
def validator(engine_settings: Settings, receipt_metrics: ReceiptMetrics) -> ReceiptValidator:
    """Validator with default settings and isolated metrics."""
    return ReceiptValidator(engine_settings, receipt_metrics=receipt_metrics)
