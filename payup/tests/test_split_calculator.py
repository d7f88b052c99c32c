"""
Split arithmetic: even shares, installment rounding and due dates.
"""

import pytest
from datetime import date
from decimal import Decimal

from payup.app.core.exceptions import InvalidInputError
from payup.app.domain.ledger.split_calculator import (
    even_share, installment_due_dates, installment_split,
)


def test_even_share_divides_by_whole_team():
    """The payer's own share is absorbed, so the divisor is the full team size."""
    assert even_share(Decimal("300"), 3) == Decimal("100")
    assert even_share(Decimal("300"), 4) == Decimal("75")


def test_even_share_keeps_full_precision():
    share = even_share(Decimal("100"), 3)
    assert share == Decimal("100") / 3
    assert share != Decimal("33.33")


def test_single_member_team_owes_whole_amount_to_nobody():
    assert even_share(Decimal("50"), 1) == Decimal("50")


@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5"), Decimal("NaN")])
def test_even_share_rejects_non_positive_amounts(amount):
    with pytest.raises(InvalidInputError):
        even_share(amount, 3)


def test_even_share_rejects_empty_team():
    with pytest.raises(InvalidInputError):
        even_share(Decimal("100"), 0)


def test_installment_split_documented_scenario():
    split = installment_split(Decimal("1200"), 3, 4)
    assert split.monthly_amount == Decimal("400")
    assert split.per_participant_amount == Decimal("100")


def test_installment_split_rounds_up_twice():
    split = installment_split(Decimal("1000"), 3, 4)
    # 1000 / 3 = 333.33 -> 334; 334 / 4 = 83.5 -> 84
    assert split.monthly_amount == Decimal("334")
    assert split.per_participant_amount == Decimal("84")
    assert split.total_collected == Decimal("1008")


@pytest.mark.parametrize("total,months,members", [
    (Decimal("999.99"), 7, 3),
    (Decimal("1"), 24, 9),
    (Decimal("12345.67"), 11, 5),
    (Decimal("100"), 1, 1),
    (Decimal("0.50"), 2, 6),
])
def test_installments_never_collect_less_than_total(total, months, members):
    split = installment_split(total, months, members)
    assert split.monthly_amount * months >= total
    assert split.total_collected >= total


@pytest.mark.parametrize("months", [0, 25, -1])
def test_installment_months_out_of_range(months):
    with pytest.raises(InvalidInputError):
        installment_split(Decimal("1200"), months, 4)


def test_installment_month_limit_is_configurable():
    with pytest.raises(InvalidInputError):
        installment_split(Decimal("1200"), 13, 4, max_months=12)


def test_installment_rejects_non_positive_total():
    with pytest.raises(InvalidInputError):
        installment_split(Decimal("0"), 3, 4)


def test_due_dates_clamp_to_month_end():
    dates = installment_due_dates(date(2026, 1, 15), 31, 4)
    assert dates == [date(2026, 1, 31), date(2026, 2, 28), date(2026, 3, 31), date(2026, 4, 30)]


def test_due_dates_leap_february():
    dates = installment_due_dates(date(2028, 2, 1), 30, 2)
    assert dates == [date(2028, 2, 29), date(2028, 3, 30)]


def test_first_due_date_moves_to_next_month_when_day_has_passed():
    dates = installment_due_dates(date(2026, 1, 15), 10, 3)
    assert dates == [date(2026, 2, 10), date(2026, 3, 10), date(2026, 4, 10)]


def test_first_due_date_can_be_the_start_date():
    dates = installment_due_dates(date(2026, 11, 5), 5, 2)
    assert dates == [date(2026, 11, 5), date(2026, 12, 5)]


def test_due_dates_cross_year_boundary():
    dates = installment_due_dates(date(2026, 12, 20), 1, 2)
    assert dates == [date(2027, 1, 1), date(2027, 2, 1)]


def test_due_day_out_of_range():
    with pytest.raises(InvalidInputError):
        installment_due_dates(date(2026, 1, 1), 32, 3)
