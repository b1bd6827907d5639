"""
Lease Payment Pure Calculation Functions.

Domain math for the caution and the billing calendar:
- Caution breakdown (advance + deposit + broker fee)
- Calendar month arithmetic, clamped to the end of shorter months
- First regular payment date after the advance period
- Canonical payment period (first day of the month)
"""

import calendar
from datetime import date, datetime
from decimal import Decimal
from typing import Collection

from rental_kernel.exceptions import CautionValidationError
from rental_modules.lease.models import CautionBreakdown

ADVANCE_MONTHS_ALLOWED: tuple[int, ...] = (2, 3)
DEPOSIT_MONTHS_ALLOWED: tuple[int, ...] = (1, 2)
BROKER_MONTHS_ALLOWED: tuple[int, ...] = (0, 1)


def _check_months(field: str, value: object, allowed: Collection[int]) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value not in allowed:
        raise CautionValidationError(
            field, value, "one of " + ", ".join(str(a) for a in sorted(allowed))
        )
    return value


def _check_rent(value: object) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (Decimal, int)):
        raise CautionValidationError("monthly_rent", value, "a positive decimal amount")
    rent = Decimal(value)
    if not rent.is_finite() or rent <= 0:
        raise CautionValidationError("monthly_rent", value, "a positive decimal amount")
    return rent


def compute_caution(
    monthly_rent: Decimal,
    advance_months: int,
    deposit_months: int,
    broker_months: int,
    *,
    allowed_advance: Collection[int] = ADVANCE_MONTHS_ALLOWED,
    allowed_deposit: Collection[int] = DEPOSIT_MONTHS_ALLOWED,
    allowed_broker: Collection[int] = BROKER_MONTHS_ALLOWED,
) -> CautionBreakdown:
    """
    Break the caution down into advance rent, deposit and broker fee.

    total_months = advance + deposit + broker
    total_amount = monthly_rent * total_months

    Each part is rent times an integer, so the parts always add up to the
    total exactly.

    Raises:
        CautionValidationError: non-positive rent or a month count outside
            its allowed set.
    """
    rent = _check_rent(monthly_rent)
    advance = _check_months("advance_months", advance_months, allowed_advance)
    deposit = _check_months("deposit_months", deposit_months, allowed_deposit)
    broker = _check_months("broker_months", broker_months, allowed_broker)

    return breakdown_from_terms(rent, advance, deposit, broker)


def breakdown_from_terms(
    monthly_rent: Decimal,
    advance_months: int,
    deposit_months: int,
    broker_months: int,
) -> CautionBreakdown:
    """Caution breakdown for terms already accepted on a stored lease."""
    total_months = advance_months + deposit_months + broker_months
    return CautionBreakdown(
        advance_amount=monthly_rent * advance_months,
        deposit_amount=monthly_rent * deposit_months,
        broker_amount=monthly_rent * broker_months,
        total_amount=monthly_rent * total_months,
        total_months=total_months,
    )


def add_months(start: date, months: int) -> date:
    """
    Add calendar months, keeping the day of month.

    When the target month is shorter the day is clamped to its last day:
    Jan 31 + 1 month is Feb 28 (Feb 29 in a leap year), never Mar 3.
    """
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(start.day, last_day))


def compute_first_regular_payment_date(
    caution_paid_date: date,
    advance_months: int,
) -> date:
    """Date the first regular rent falls due: caution date + advance months."""
    if isinstance(advance_months, bool) or not isinstance(advance_months, int) or advance_months <= 0:
        raise CautionValidationError("advance_months", advance_months, "a positive integer")
    return add_months(caution_paid_date, advance_months)


def payment_period_for(day: date) -> date:
    """The canonical payment period covering ``day``: the 1st of its month."""
    if isinstance(day, datetime):
        day = day.date()
    return day.replace(day=1)


def days_until(target: date, today: date) -> int:
    """Calendar days from ``today`` to ``target`` (negative once past)."""
    return (target - today).days
