from datetime import date, datetime

import pytest

from models import BudgetPeriod
from periods import (
    add_months,
    days_remaining,
    end_date_for_period,
    ranges_overlap,
    resolve_period,
    total_days,
)


def test_end_date_for_each_budget_period() -> None:
    start = date(2024, 1, 1)

    assert end_date_for_period(start, BudgetPeriod.weekly) == date(2024, 1, 7)
    assert end_date_for_period(start, BudgetPeriod.monthly) == date(2024, 1, 31)
    assert end_date_for_period(start, BudgetPeriod.yearly) == date(2024, 12, 31)


def test_monthly_end_date_handles_leap_february() -> None:
    assert end_date_for_period(date(2024, 2, 1), "monthly") == date(2024, 2, 29)


def test_add_months_snaps_to_last_day_of_short_month() -> None:
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)
    assert add_months(date(2024, 11, 15), 3) == date(2025, 2, 15)


def test_ranges_overlap_is_inclusive_on_both_ends() -> None:
    assert ranges_overlap(date(2024, 2, 1), date(2024, 2, 29), date(2024, 2, 29), date(2024, 3, 31))
    assert not ranges_overlap(
        date(2024, 2, 1), date(2024, 2, 28), date(2024, 2, 29), date(2024, 3, 31)
    )


def test_days_remaining_never_negative() -> None:
    end = date(2024, 1, 31)

    assert days_remaining(end, now=datetime(2024, 1, 16)) == 15
    assert days_remaining(end, now=datetime(2024, 1, 30, 12, 0)) == 1
    assert days_remaining(end, now=datetime(2024, 2, 5)) == 0


def test_total_days_has_a_floor_of_one() -> None:
    assert total_days(date(2024, 1, 1), date(2024, 1, 31)) == 30
    assert total_days(date(2024, 1, 1), date(2024, 1, 1)) == 1


def test_resolve_period_slugs() -> None:
    today = date(2024, 3, 14)

    everything = resolve_period(None, None, None, today=today)
    assert (everything.slug, everything.start, everything.end) == (
        "all",
        date(1970, 1, 1),
        today,
    )
    assert resolve_period("this_month", None, None, today=today).end == date(2024, 3, 31)
    last_month = resolve_period("last_month", None, None, today=today)
    assert (last_month.start, last_month.end) == (date(2024, 2, 1), date(2024, 2, 29))
    custom = resolve_period("custom", "2024-01-05", "2024-01-10", today=today)
    assert (custom.start, custom.end) == (date(2024, 1, 5), date(2024, 1, 10))


def test_custom_period_requires_ordered_dates() -> None:
    with pytest.raises(ValueError):
        resolve_period("custom", "2024-01-10", None)
    with pytest.raises(ValueError):
        resolve_period("custom", "2024-01-10", "2024-01-05")
