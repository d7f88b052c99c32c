"""
Split Calculator.

Pure functions turning an amount and a team size into per-member
obligations. No I/O; deterministic given inputs.
"""

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_CEILING, ROUND_HALF_UP
from typing import List

from payup.app.core.exceptions import InvalidInputError

MIN_INSTALLMENT_MONTHS = 1
MAX_INSTALLMENT_MONTHS = 24

# Scale of the settlement amount column (Numeric(20, 8))
SHARE_QUANTUM = Decimal("0.00000001")


@dataclass(frozen=True)
class InstallmentSplit:
    """Result of splitting a plan total into monthly child expenses."""
    monthly_amount: Decimal
    per_participant_amount: Decimal
    number_of_months: int
    member_count: int

    @property
    def total_collected(self) -> Decimal:
        """Total owed across every installment, payer's share included."""
        return self.per_participant_amount * self.member_count * self.number_of_months


def _ceil(value: Decimal) -> Decimal:
    return value.to_integral_value(rounding=ROUND_CEILING)


def validate_amount(amount: Decimal) -> Decimal:
    amount = Decimal(amount)
    if not amount.is_finite() or amount <= 0:
        raise InvalidInputError("Amount must be positive", details={"field": "amount"})
    return amount


def validate_member_count(member_count: int) -> int:
    if member_count < 1:
        raise InvalidInputError("Team has no members to split with", details={"field": "member_count"})
    return member_count


def even_share(amount: Decimal, member_count: int) -> Decimal:
    """
    Share of one member in an even split.
    
    The divisor is the whole team size: the payer absorbs their own share,
    so each of the other member_count - 1 members owes amount / member_count.
    No rounding is applied.
    """
    amount = validate_amount(amount)
    validate_member_count(member_count)
    return amount / member_count


def stored_share(share: Decimal) -> Decimal:
    """A share as the settlements table holds it, at eight decimal places."""
    return Decimal(share).quantize(SHARE_QUANTUM, rounding=ROUND_HALF_UP)


def installment_split(
    total_amount: Decimal,
    number_of_months: int,
    member_count: int,
    max_months: int = MAX_INSTALLMENT_MONTHS,
) -> InstallmentSplit:
    """
    Split a plan total into monthly installments.
    
    Both divisions round up so the amount collected is never less than the
    plan total; the surplus is accepted rounding, not an error.
    """
    total_amount = validate_amount(total_amount)
    if not MIN_INSTALLMENT_MONTHS <= number_of_months <= max_months:
        raise InvalidInputError(
            f"Number of months must be between {MIN_INSTALLMENT_MONTHS} and {max_months}",
            details={"field": "number_of_months"}
        )
    validate_member_count(member_count)
    
    monthly_amount = _ceil(total_amount / number_of_months)
    per_participant_amount = _ceil(monthly_amount / member_count)
    return InstallmentSplit(
        monthly_amount=monthly_amount,
        per_participant_amount=per_participant_amount,
        number_of_months=number_of_months,
        member_count=member_count,
    )


def clamp_to_month(year: int, month: int, day: int) -> date:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last_day))


def add_months(year: int, month: int, offset: int) -> tuple:
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def installment_due_dates(start: date, due_day_of_month: int, number_of_months: int) -> List[date]:
    """
    Due date of every installment.
    
    The first installment falls on the first due day on or after start;
    each later one is a calendar month apart. Days past a month's end are
    clamped to its last day (31 -> Feb 28/29).
    """
    if not 1 <= due_day_of_month <= 31:
        raise InvalidInputError("Due day of month must be between 1 and 31", details={"field": "due_day_of_month"})
    
    year, month = start.year, start.month
    if clamp_to_month(year, month, due_day_of_month) < start:
        year, month = add_months(year, month, 1)
    
    due_dates = []
    for offset in range(number_of_months):
        y, m = add_months(year, month, offset)
        due_dates.append(clamp_to_month(y, m, due_day_of_month))
    return due_dates
