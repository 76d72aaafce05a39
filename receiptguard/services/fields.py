"""
Scalar field readers shared by the receipt and transaction decoders.

Each reader takes the raw mapping, the platform field name and an optional
label (the field path used in errors, e.g. "in_app[2].product_id").
"""

import re
from collections.abc import Mapping

from receiptguard.exceptions import InvalidFieldTypeError, MissingFieldError

_DIGITS = re.compile(r"^[0-9]+$")
_INTEGER = re.compile(r"^-?[0-9]+$")
_FLAG_VALUES = {"true": True, "false": False, "1": True, "0": False}


def require_string(payload: Mapping[str, object], name: str, label: str | None = None) -> str:
    """Read a required, non-blank string field."""
    label = label or name
    value = payload.get(name)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise MissingFieldError(label)
    if not isinstance(value, str):
        raise InvalidFieldTypeError(label, "string", value)
    return value


def optional_string(
    payload: Mapping[str, object], name: str, label: str | None = None
) -> str | None:
    """Read an optional string field; numbers are accepted and kept as text."""
    value = payload.get(name)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise InvalidFieldTypeError(label or name, "string", value)
    if isinstance(value, int):
        return _integer_text(value, label or name, "string")
    return value


def require_identifier(payload: Mapping[str, object], name: str, label: str | None = None) -> str:
    """
    Read a 64-bit integer identifier as an opaque digit string.

    JSON numbers arrive as Python ints (arbitrary precision) and are
    converted to text. Floats are rejected: precision is already lost.
    """
    label = label or name
    value = payload.get(name)
    if value is None:
        raise MissingFieldError(label)
    if isinstance(value, bool):
        raise InvalidFieldTypeError(label, "integer string", value)
    if isinstance(value, int) and value >= 0:
        return _integer_text(value, label, "integer string")
    if isinstance(value, str) and _DIGITS.match(value.strip()):
        return value.strip()
    raise InvalidFieldTypeError(label, "integer string", value)


def require_integer(payload: Mapping[str, object], name: str, label: str | None = None) -> int:
    """Read a required integer field, given as a number or a digit string."""
    label = label or name
    value = payload.get(name)
    if value is None:
        raise MissingFieldError(label)
    return _to_integer(value, label)


def optional_integer(
    payload: Mapping[str, object], name: str, default: int, label: str | None = None
) -> int:
    """Read an optional integer field, falling back to default."""
    value = payload.get(name)
    if value is None:
        return default
    return _to_integer(value, label or name)


def optional_flag(
    payload: Mapping[str, object], name: str, label: str | None = None
) -> bool | None:
    """Read an optional boolean flag; the platform sends "true"/"false" strings."""
    value = payload.get(name)
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in _FLAG_VALUES:
        return _FLAG_VALUES[value.strip().lower()]
    raise InvalidFieldTypeError(label or name, "boolean", value)


def _to_integer(value: object, label: str) -> int:
    if isinstance(value, bool):
        raise InvalidFieldTypeError(label, "integer", value)
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _INTEGER.match(value.strip()):
        try:
            return int(value.strip())
        except ValueError as exc:
            # Beyond the interpreter's integer string conversion limit
            raise InvalidFieldTypeError(label, "integer", value) from exc
    raise InvalidFieldTypeError(label, "integer", value)


def _integer_text(value: int, label: str, expected: str) -> str:
    try:
        return str(value)
    except ValueError as exc:
        raise InvalidFieldTypeError(label, expected, value) from exc
