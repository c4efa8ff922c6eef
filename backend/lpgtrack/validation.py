from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any


# Maximum unit cost: 9,999,999.99 (999,999,999 cents)
MAX_COST_CENTS = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate QR code)."""


class NotFoundError(LookupError):
    """404-level lookup miss."""


def require_text(payload: dict, key: str, *, max_length: int | None = None) -> str:
    """
    Fetch a required, non-blank string field.

    Non-string scalars are stringified (a QR payload of 12345 is still a QR
    payload); None, missing and whitespace-only values are rejected.
    """
    value = payload.get(key)
    if value is None or isinstance(value, (dict, list, bool)):
        raise ValidationError(f"{key} is required")
    text = str(value).strip()
    if not text:
        raise ValidationError(f"{key} is required")
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    return text


def optional_text(value: Any, key: str, *, max_length: int | None = None) -> str | None:
    """Strip optional free text; blank becomes None."""
    if value is None:
        return None
    if isinstance(value, (dict, list, bool)):
        raise ValidationError(f"{key} must be a string")
    text = str(value).strip()
    if not text:
        return None
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    return text


def parse_decimal(value: Any, key: str) -> Decimal:
    # Booleans are ints in Python; reject them explicitly
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{key} is required")
    if isinstance(value, float):
        value = repr(value)
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{key} must be a number")
    if not parsed.is_finite():
        raise ValidationError(f"{key} must be a finite number")
    return parsed


def to_cents(value: Any, key: str = "unit_cost") -> int:
    """
    Convert a decimal money amount to integer cents.

    Rejects negative amounts and amounts above MAX_COST_CENTS.
    """
    amount = parse_decimal(value, key)
    if amount < 0:
        raise ValidationError(f"{key} must be >= 0")
    cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents > MAX_COST_CENTS:
        raise ValidationError(f"{key} cannot exceed {MAX_COST_CENTS / 100:,.2f}")
    return cents
