"""
Module: lms_kernel.db.types
Responsibility: Annotated column aliases and the money helpers shared by the
    models and the ledger.  Centralizes precision and rounding so every model
    and service uses identical definitions.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from sqlalchemy import Numeric, String, Text

# Monetary amount: 15 digits total, 2 decimal places
Money = Annotated[Decimal, Numeric(15, 2)]

# Enum values stored as short strings
ShortCode = Annotated[str, String(50)]

# Human readable reference numbers (CUS-2026-00001, TAX-2026-000001, ...)
ReferenceCode = Annotated[str, String(40)]

LongText = Annotated[str, Text]

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def money_from_str(value: str) -> Decimal:
    """
    Create a money value from a string.

    Raises:
        ValueError: If value is not a finite decimal number.
    """
    try:
        result = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"Not a decimal amount: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Not a finite amount: {value!r}")
    return result


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    This is the only rounding function used for money in the kernel.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places else "1"
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def has_money_precision(
    value: Decimal, decimal_places: int = MONEY_DECIMAL_PLACES
) -> bool:
    """True if value carries no more than ``decimal_places`` fractional digits."""
    exponent = value.normalize().as_tuple().exponent
    if not isinstance(exponent, int):
        return False
    return -exponent <= decimal_places
