"""
Tax ledger arithmetic (``lms_kernel.domain.ledger``).

Responsibility
--------------
Pure functions for assessment amounts, payment application and the status
derivation rule.  The same rule is evaluated after every amount change
and on every read; status is never cached independently of the amounts
and dates that justify it.

Status derivation
-----------------
1. assessed == 0                      -> NOT_ASSESSED
2. outstanding == 0                   -> PAID
3. paid > 0 and outstanding > 0       -> PARTIAL   (OVERDUE when today > due_date)
4. paid == 0 and outstanding > 0      -> ASSESSED  (OVERDUE when today > due_date)

Lateness overrides PARTIAL/ASSESSED.  It never overrides PAID or NOT_ASSESSED.

Architecture position
---------------------
**Kernel domain layer**.  ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from lms_kernel.db.types import (
    MONEY_DECIMAL_PLACES,
    ZERO,
    has_money_precision,
    money_from_str,
    round_money,
)
from lms_kernel.domain.values import TaxStatus
from lms_kernel.exceptions import InvalidAmountError, OverpaymentError


@dataclass(frozen=True)
class AssessmentFigures:
    """The derived monetary state of one assessment."""

    assessed_amount: Decimal
    paid_amount: Decimal
    outstanding_amount: Decimal
    status: TaxStatus

    @property
    def is_fully_paid(self) -> bool:
        return self.assessed_amount > ZERO and self.outstanding_amount == ZERO


def parse_money(
    field: str,
    value: Any,
    *,
    positive: bool = False,
    decimal_places: int = MONEY_DECIMAL_PLACES,
) -> Decimal:
    """
    Parse and validate a monetary input.

    Rejects floats, non-numeric strings, negative values, values with more
    fractional digits than the money precision, and (when ``positive``) zero.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidAmountError(field, value, "must be a decimal string or integer")
    if value is None:
        raise InvalidAmountError(field, value, "is required")
    try:
        amount = value if isinstance(value, Decimal) else money_from_str(str(value))
    except ValueError:
        raise InvalidAmountError(field, value, "not a number") from None
    if not amount.is_finite():
        raise InvalidAmountError(field, value, "not a number")
    if amount < ZERO:
        raise InvalidAmountError(field, value, "must not be negative")
    if positive and amount == ZERO:
        raise InvalidAmountError(field, value, "must be greater than zero")
    if not has_money_precision(amount, decimal_places):
        raise InvalidAmountError(
            field, value, f"at most {decimal_places} decimal places"
        )
    return round_money(amount, decimal_places)


def compute_assessed_amount(base_assessment: Decimal, exemption_amount: Decimal) -> Decimal:
    """assessed = base - exemption, requiring base >= exemption >= 0."""
    if base_assessment < ZERO:
        raise InvalidAmountError("base_assessment", base_assessment, "must not be negative")
    if exemption_amount < ZERO:
        raise InvalidAmountError("exemption_amount", exemption_amount, "must not be negative")
    if exemption_amount > base_assessment:
        raise InvalidAmountError(
            "exemption_amount",
            exemption_amount,
            f"must not exceed base assessment {base_assessment}",
        )
    return round_money(base_assessment - exemption_amount)


def is_overdue(due_date: date, today: date) -> bool:
    return today > due_date


def derive_status(
    assessed_amount: Decimal,
    paid_amount: Decimal,
    due_date: date,
    today: date,
) -> TaxStatus:
    """Deterministic status of an assessment.  Pure: same inputs, same output."""
    if assessed_amount == ZERO:
        return TaxStatus.NOT_ASSESSED
    outstanding = assessed_amount - paid_amount
    if outstanding <= ZERO:
        return TaxStatus.PAID
    if is_overdue(due_date, today):
        return TaxStatus.OVERDUE
    if paid_amount > ZERO:
        return TaxStatus.PARTIAL
    return TaxStatus.ASSESSED


def recompute_assessment(
    assessed_amount: Decimal,
    paid_amount: Decimal,
    due_date: date,
    today: date,
) -> AssessmentFigures:
    """Outstanding amount and status from the assessed and paid totals."""
    outstanding = round_money(assessed_amount - paid_amount)
    if outstanding < ZERO:
        raise InvalidAmountError(
            "paid_amount", paid_amount, f"exceeds assessed amount {assessed_amount}"
        )
    return AssessmentFigures(
        assessed_amount=assessed_amount,
        paid_amount=paid_amount,
        outstanding_amount=outstanding,
        status=derive_status(assessed_amount, paid_amount, due_date, today),
    )


def apply_payment_amounts(
    assessment_id: str,
    assessed_amount: Decimal,
    paid_amount: Decimal,
    amount: Decimal,
    due_date: date,
    today: date,
) -> AssessmentFigures:
    """
    Figures after applying ``amount``.

    Raises:
        OverpaymentError: amount exceeds the current outstanding amount.
            Never clamped.
    """
    outstanding = round_money(assessed_amount - paid_amount)
    if amount > outstanding:
        raise OverpaymentError(assessment_id, attempted=amount, outstanding=outstanding)
    return recompute_assessment(
        assessed_amount, round_money(paid_amount + amount), due_date, today
    )


def collection_rate(total_assessed: Decimal, total_paid: Decimal) -> Decimal:
    """Percentage of the assessed total collected, two decimal places."""
    if total_assessed == ZERO:
        return Decimal("0.00")
    return round_money(total_paid * Decimal(100) / total_assessed)
