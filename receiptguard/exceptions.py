"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.

Only decode errors are exceptions. Anomalies are values collected
alongside a successful decode.
"""


class ReceiptError(Exception):
    """Base exception for all receipt engine errors."""

    pass


class DecodeError(ReceiptError):
    """Raised when a receipt cannot be decoded into a Receipt.

    A receipt that fails to decode has no verdict: callers must not treat
    it as valid, expired or unexpired.
    """

    def __init__(self, message: str, field_name: str | None = None) -> None:
        self.message = message
        self.field_name = field_name
        super().__init__(message)

    @property
    def error_type(self) -> str:
        """Stable error name used in logs, metrics and API responses."""
        return type(self).__name__.removesuffix("Error")


class MissingFieldError(DecodeError):
    """Raised when a required scalar or temporal field is absent."""

    def __init__(self, field_name: str) -> None:
        super().__init__(f"Missing required field: {field_name}", field_name)


class InvalidEnumError(DecodeError):
    """Raised when an enumerated field carries an unknown literal."""

    def __init__(self, field_name: str, value: object) -> None:
        self.value = value
        super().__init__(f"Invalid value for {field_name}: {value!r}", field_name)


class UnparseableTimestampError(DecodeError):
    """Raised when none of a timestamp's representations can be parsed."""

    def __init__(self, field_name: str) -> None:
        super().__init__(f"No parseable representation for timestamp: {field_name}", field_name)


class InvalidFieldTypeError(DecodeError):
    """Raised when a scalar field has the wrong type for its schema."""

    def __init__(self, field_name: str, expected: str, value: object) -> None:
        self.expected = expected
        self.value = value
        super().__init__(
            f"Invalid type for {field_name}: expected {expected}, got {type(value).__name__}",
            field_name,
        )
