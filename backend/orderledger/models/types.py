from __future__ import annotations

from decimal import Decimal

from ..extensions import db


# Quantities are fractional (kg, litres, ...); money is stored in integer cents.
QUANTITY_TYPE = db.Numeric(14, 3, asdecimal=True)


def enum_type(enum_cls, length: int = 32):
    """
    Closed enumeration stored as its string value.

    Values (not member names) are persisted so the column stays readable
    from SQL and matches the API representation.
    """
    return db.Enum(
        enum_cls,
        native_enum=False,
        length=length,
        validate_strings=True,
        values_callable=lambda members: [m.value for m in members],
    )


def decimal_or_none(value) -> Decimal | None:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))
