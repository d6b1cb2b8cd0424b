"""
Field policy shared by log records and span attributes.

Values are restricted to scalars and string values are bounded in length.
Large free text (message bodies) must be reduced to size metadata with
``content_metadata`` before it is logged.
"""

from collections.abc import Mapping
from typing import Any, Union

from ..constants import DEFAULT_MAX_FIELD_LENGTH, MAX_FIELD_KEY_LENGTH
from ..exceptions import FieldPolicyError

FieldValue = Union[str, int, float, bool, None]

_SCALAR_TYPES = (str, int, float, bool, type(None))


def validate_field(
    key: Any, value: Any, max_length: int = DEFAULT_MAX_FIELD_LENGTH
) -> FieldValue:
    """
    Check one key/value pair against the field policy.

    Returns:
        The value unchanged

    Raises:
        FieldPolicyError: If the key is not a short non-empty string, the value
                          is not a scalar, or a string value is too long
    """
    if not isinstance(key, str) or not key:
        raise FieldPolicyError("Field keys must be non-empty strings", field_name=str(key))
    if len(key) > MAX_FIELD_KEY_LENGTH:
        raise FieldPolicyError(
            f"Field key exceeds {MAX_FIELD_KEY_LENGTH} characters", field_name=key[:32]
        )
    if not isinstance(value, _SCALAR_TYPES):
        raise FieldPolicyError(
            f"Field values must be str, int, float, bool or None, got {type(value).__name__}",
            field_name=key,
        )
    if isinstance(value, str) and len(value) > max_length:
        raise FieldPolicyError(
            f"Field value is {len(value)} characters, limit is {max_length}; "
            "log size metadata instead of the content",
            field_name=key,
            context={"length": len(value), "limit": max_length},
        )
    return value


def validate_fields(
    fields: Mapping[str, Any] | None,
    max_length: int = DEFAULT_MAX_FIELD_LENGTH,
    reserved: frozenset = frozenset(),
) -> dict[str, FieldValue]:
    """Validate a whole mapping; returns a plain dict copy."""
    if not fields:
        return {}
    if not isinstance(fields, Mapping):
        raise FieldPolicyError(f"Fields must be a mapping, got {type(fields).__name__}")

    validated = {}
    for key, value in fields.items():
        if key in reserved:
            raise FieldPolicyError(f"Field key {key!r} is reserved", field_name=key)
        validated[key] = validate_field(key, value, max_length)
    return validated


def truncate_field(value: FieldValue, max_length: int = DEFAULT_MAX_FIELD_LENGTH) -> FieldValue:
    """Cut a string value down to ``max_length``; other scalars pass through."""
    if isinstance(value, str) and len(value) > max_length:
        return value[:max_length]
    return value


def content_metadata(text: str | None, prefix: str = "content") -> dict[str, int]:
    """
    Size metadata for a free-text body.

    Example:
        logger.info("message_logged", content_metadata(message.content))
        # {"content_length": 42, "content_words": 8}
    """
    text = text or ""
    return {
        f"{prefix}_length": len(text),
        f"{prefix}_words": len(text.split()),
    }
