"""
Structured Logging with Structlog.

Validation events are emitted from three modules (validator, transaction
decoder, classifier). receipt_context() binds the receipt's bundle_id and
receipt_type as context variables for the length of one validation, so a
transaction_decode_failed warning can be traced back to its receipt.
"""

import logging
import sys
from collections.abc import Iterator, Mapping
from contextlib import contextmanager

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from receiptguard.config import Settings, get_settings

# Raw payload keys bound into the log context of a validation
RECEIPT_CONTEXT_KEYS = ("bundle_id", "receipt_type")


def service_context(config: Settings) -> Processor:
    """Build a processor that stamps events with the service name and version."""

    def add_service(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", config.service_name)
        event_dict.setdefault("version", config.service_version)
        return event_dict

    return add_service


def drop_unset_fields(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Remove keys logged as None, e.g. field=None on receipt-level decode errors."""
    return {key: value for key, value in event_dict.items() if value is not None}


def setup_logging(config: Settings | None = None) -> None:
    """
    Configure structlog for the receipt engine.

    Args:
        config: Settings supplying log level, format and service identity
            (defaults to the global settings)

    A JSON event looks like:
    {
        "event": "receipt_validated",
        "level": "info",
        "logger": "receiptguard.services.validator",
        "bundle_id": "com.example.app",
        "receipt_type": "ProductionSandbox",
        "anomaly_count": 1,
        "service": "receiptguard",
        "timestamp": "2021-03-01T07:00:05.123456Z"
    }
    """
    config = config or get_settings()
    level = getattr(logging, config.log_level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    renderer: Processor
    if config.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            service_context(config),
            drop_unset_fields,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


@contextmanager
def receipt_context(payload: object) -> Iterator[None]:
    """
    Bind the receipt's bundle_id and receipt_type while it is validated.

    Values are read from the raw payload, so a receipt that fails to decode
    is still identifiable in its receipt_decode_failed event. Non-string
    values are skipped.

    Usage:
        with receipt_context(payload):
            result = validator.validate(payload)
    """
    context: dict[str, str] = {}
    if isinstance(payload, Mapping):
        for key in RECEIPT_CONTEXT_KEYS:
            value = payload.get(key)
            if isinstance(value, str):
                context[key] = value
    with structlog.contextvars.bound_contextvars(**context):
        yield
