# Overview: Request payload validation driven by SQLAlchemy column metadata.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, Integer, JSON, String, Text

from .errors import ValidationError


# 9,999,999.99 in major units
MAX_AMOUNT_CENTS = 999_999_999


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    What a client may send for one model.

    writable_fields is the security boundary: anything else is rejected,
    even when it names a real column. aliases maps camelCase request keys
    onto column keys before any other check runs.
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = field(default_factory=frozenset)
    aliases: dict[str, str] = field(default_factory=dict)


def _to_int(key: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        digits = value.strip()
        sign = ""
        if digits[:1] in ("-", "+"):
            sign, digits = digits[0], digits[1:]
        if digits.isdigit():
            return int(sign + digits)
    raise ValidationError(f"{key} must be an integer")


def _coerce(col, value: Any) -> Any:
    coltype = col.type

    if isinstance(coltype, Boolean):
        if not isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a boolean")
        return value

    if isinstance(coltype, Integer):
        return _to_int(col.key, value)

    if isinstance(coltype, JSON):
        if not isinstance(value, (list, dict)):
            raise ValidationError(f"{col.key} must be a list or object")
        return value

    if isinstance(coltype, (String, Text)):
        if isinstance(value, (dict, list)):
            raise ValidationError(f"{col.key} must be a string")
        text = str(value).strip()
        if not text and not col.nullable:
            raise ValidationError(f"{col.key} cannot be blank")
        if isinstance(coltype, String) and coltype.length and len(text) > coltype.length:
            raise ValidationError(f"{col.key} exceeds max length {coltype.length}")
        return text

    return value


def validate_payload(*, model, payload: dict, policy: ModelValidationPolicy, partial: bool) -> dict:
    """
    Normalize an incoming JSON object into column-keyed values.

    partial=False enforces required_on_create (create semantics);
    partial=True only checks the keys that were sent.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    payload = {policy.aliases.get(k, k): v for k, v in payload.items()}

    if not partial:
        missing = sorted(policy.required_on_create - set(payload))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}
    cleaned = {}
    for key, raw in payload.items():
        if key not in policy.writable_fields or key not in columns:
            raise ValidationError(f"Field not allowed: {key}")
        col = columns[key]
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{key} cannot be null")
            cleaned[key] = None
        else:
            cleaned[key] = _coerce(col, raw)
    return cleaned


def require_positive_int(value: Any, field_name: str) -> int:
    """Coerce a request value to a strictly positive integer."""
    try:
        number = _to_int(field_name, value)
    except ValidationError:
        raise ValidationError(f"{field_name} must be a positive integer") from None
    if number <= 0:
        raise ValidationError(f"{field_name} must be a positive integer")
    return number


def require_amount_cents(value: Any, field_name: str) -> int:
    """Money is always an int in minor units, never a float."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field_name} must be an integer amount in minor units")
    if value < 0:
        raise ValidationError(f"{field_name} must be >= 0")
    if value > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field_name} cannot exceed {MAX_AMOUNT_CENTS}")
    return value
