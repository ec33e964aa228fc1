from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from .errors import ValidationError
from .time_utils import parse_iso_date, parse_iso_datetime


# Maximum amount: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_AMOUNT_CENTS = 999_999_999

QUANTITY_QUANT = Decimal("0.001")

# Maximum quantity: 999,999,999.999
# Keeps sums of quantities inside the Numeric(14, 3) columns
MAX_QUANTITY = Decimal("999999999.999")


def parse_int(value: Any, field: str, *, min_value: int | None = None, max_value: int | None = None) -> int:
    """
    Strict integer parsing for cents and ids.

    Rejects bools, floats, decimal strings, and scientific notation.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    else:
        raise ValidationError(f"{field} must be an integer")

    if min_value is not None and result < min_value:
        raise ValidationError(f"{field} must be >= {min_value}", details={field: result})
    if max_value is not None and result > max_value:
        raise ValidationError(f"{field} must be <= {max_value}", details={field: result})
    return result


def parse_cents(value: Any, field: str, *, allow_zero: bool = True) -> int:
    return parse_int(value, field, min_value=0 if allow_zero else 1, max_value=MAX_AMOUNT_CENTS)


def parse_quantity(value: Any, field: str = "quantity") -> Decimal:
    """Positive quantity with at most three decimal places, bounded by MAX_QUANTITY."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    try:
        qty = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not qty.is_finite():
        raise ValidationError(f"{field} must be a number")
    if qty <= 0:
        raise ValidationError(f"{field} must be greater than 0", details={field: str(value)})
    # Bound before quantize(): past the context precision it raises InvalidOperation
    if qty > MAX_QUANTITY:
        raise ValidationError(f"{field} must be <= {MAX_QUANTITY}", details={field: str(value)})
    try:
        quantized = qty.quantize(QUANTITY_QUANT)
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number", details={field: str(value)})
    if qty != quantized:
        raise ValidationError(f"{field} supports at most 3 decimal places", details={field: str(value)})
    return quantized


def parse_date(value: Any, field: str) -> date | None:
    if value is None or isinstance(value, date) and not isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return parse_iso_date(value)
        except ValueError:
            raise ValidationError(f"{field} must be an ISO-8601 date (YYYY-MM-DD)")
    raise ValidationError(f"{field} must be a date")


def parse_datetime(value: Any, field: str) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return parse_iso_datetime(value)
        except ValueError:
            raise ValidationError(f"{field} must be an ISO-8601 datetime")
    raise ValidationError(f"{field} must be a datetime")


def parse_enum(enum_cls, value: Any, field: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"{field} must be one of: {allowed}", details={field: value})


def require_text(value: Any, field: str, *, max_length: int = 255) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required")
    text = str(value).strip()
    if len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return text


def optional_text(value: Any, field: str, *, max_length: int = 255) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return text
