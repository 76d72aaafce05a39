"""
Observability module - Logging and Metrics.
"""

from receiptguard.observability.logging import receipt_context, setup_logging
from receiptguard.observability.metrics import metrics, track_validation

__all__ = [
    "receipt_context",
    "setup_logging",
    "metrics",
    "track_validation",
]
