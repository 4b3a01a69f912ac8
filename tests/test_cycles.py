from datetime import date, timedelta

import pytest

from cycles import (
    credit_date,
    cycle_for,
    days_elapsed,
    days_remaining,
    next_credit_date,
    resolve_cycle,
    shift_month,
)


def test_first_of_month_belongs_to_previous_cycle() -> None:
    cycle = resolve_cycle(date(2025, 3, 1), 3)

    assert cycle.start == date(2025, 2, 3)
    assert cycle.end == date(2025, 3, 2)
    assert (cycle.month, cycle.year) == (2, 2025)
    assert days_remaining(date(2025, 3, 1), cycle) == 2


def test_credit_day_is_inclusive_start() -> None:
    cycle = resolve_cycle(date(2025, 3, 3), 3)

    assert cycle.start == date(2025, 3, 3)
    assert cycle.end == date(2025, 4, 2)
    assert days_elapsed(date(2025, 3, 3), cycle) == 1


def test_credit_day_31_clamps_to_short_months() -> None:
    assert credit_date(2025, 2, 31) == date(2025, 2, 28)
    assert credit_date(2024, 2, 31) == date(2024, 2, 29)
    assert credit_date(2025, 4, 31) == date(2025, 4, 30)

    january = cycle_for(1, 2025, 31)
    assert january.start == date(2025, 1, 31)
    assert january.end == date(2025, 2, 27)

    february = cycle_for(2, 2025, 31)
    assert february.start == date(2025, 2, 28)
    assert february.end == date(2025, 3, 30)


def test_december_cycle_rolls_into_january() -> None:
    cycle = resolve_cycle(date(2025, 1, 10), 25)

    assert (cycle.month, cycle.year) == (12, 2024)
    assert cycle.start == date(2024, 12, 25)
    assert cycle.end == date(2025, 1, 24)
    assert next_credit_date(date(2025, 1, 10), 25) == date(2025, 1, 25)


def test_shift_month_wraps_years() -> None:
    assert shift_month(2025, 1, -1) == (2024, 12)
    assert shift_month(2025, 12, 1) == (2026, 1)
    assert shift_month(2025, 6, -18) == (2023, 12)


@pytest.mark.parametrize("credit_day", [1, 3, 15, 28, 29, 30, 31])
def test_every_day_falls_in_its_resolved_cycle(credit_day: int) -> None:
    day = date(2024, 1, 1)
    while day <= date(2025, 12, 31):
        cycle = resolve_cycle(day, credit_day)
        assert cycle.contains(day)
        assert next_credit_date(day, credit_day) == cycle.end + timedelta(days=1)
        day += timedelta(days=1)


def test_consecutive_cycles_do_not_overlap_or_gap() -> None:
    for credit_day in (1, 15, 30, 31):
        for month in range(1, 13):
            current = cycle_for(month, 2025, credit_day)
            year, nxt = shift_month(2025, month, 1)
            following = cycle_for(nxt, year, credit_day)
            assert following.start == current.end + timedelta(days=1)


def test_days_remaining_never_increases_within_a_cycle() -> None:
    cycle = cycle_for(1, 2025, 31)
    previous = None
    day = cycle.start
    while day <= cycle.end:
        remaining = days_remaining(day, cycle)
        if previous is not None:
            assert remaining <= previous
        previous = remaining
        day += timedelta(days=1)
    assert days_remaining(cycle.end, cycle) == 1
    assert days_remaining(cycle.end + timedelta(days=1), cycle) == 0


def test_invalid_month_is_rejected() -> None:
    with pytest.raises(ValueError):
        cycle_for(13, 2025, 1)


@pytest.mark.parametrize("credit_day", [1, 3, 29, 31])
def test_days_remaining_counts_to_next_credit_date(credit_day: int) -> None:
    day = date(2024, 12, 1)
    while day <= date(2025, 3, 31):
        cycle = resolve_cycle(day, credit_day)
        expected = (next_credit_date(day, credit_day) - day).days
        assert days_remaining(day, cycle) == expected
        day += timedelta(days=1)

    closed = cycle_for(1, 2025, credit_day)
    assert days_remaining(closed.end + timedelta(days=10), closed) == 0
