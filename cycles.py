"""
Salary cycle arithmetic.

A cycle starts on the salary credit day of one month and ends the day before
the credit day of the following month. When a month is shorter than the
configured credit day, the credit date snaps to that month's last day
(credit day 31 in February becomes Feb 28/29); it never rolls into the next
month.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from config import get_settings


@dataclass(frozen=True)
class Cycle:
    month: int
    year: int
    start: date
    end: date

    def contains(self, value: date) -> bool:
        return self.start <= value <= self.end

    @property
    def next_credit_date(self) -> date:
        return self.end + timedelta(days=1)


def local_today() -> date:
    tz = ZoneInfo(get_settings().timezone)
    return datetime.now(tz).date()


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def shift_month(year: int, month: int, months: int) -> tuple[int, int]:
    total_months = month - 1 + months
    return year + total_months // 12, total_months % 12 + 1


def credit_date(year: int, month: int, salary_credit_day: int) -> date:
    return date(year, month, min(salary_credit_day, days_in_month(year, month)))


def cycle_for(month: int, year: int, salary_credit_day: int) -> Cycle:
    """Return the cycle whose start falls in ``month``/``year``."""
    if not 1 <= month <= 12:
        raise ValueError("Month must be between 1 and 12")
    start = credit_date(year, month, salary_credit_day)
    next_year, next_month = shift_month(year, month, 1)
    end = credit_date(next_year, next_month, salary_credit_day) - timedelta(days=1)
    return Cycle(month=month, year=year, start=start, end=end)


def resolve_cycle(reference: date, salary_credit_day: int) -> Cycle:
    if reference >= credit_date(reference.year, reference.month, salary_credit_day):
        return cycle_for(reference.month, reference.year, salary_credit_day)
    year, month = shift_month(reference.year, reference.month, -1)
    return cycle_for(month, year, salary_credit_day)


def next_credit_date(reference: date, salary_credit_day: int) -> date:
    """First credit date strictly after ``reference``."""
    this_month = credit_date(reference.year, reference.month, salary_credit_day)
    if reference < this_month:
        return this_month
    year, month = shift_month(reference.year, reference.month, 1)
    return credit_date(year, month, salary_credit_day)


def days_elapsed(reference: date, cycle: Cycle) -> int:
    return max(1, (reference - cycle.start).days + 1)


def days_remaining(reference: date, cycle: Cycle) -> int:
    """
    Days from ``reference`` to the credit date that closes ``cycle``.

    For a reference inside the cycle this equals
    ``(next_credit_date(reference, day) - reference).days``. Once the cycle
    has ended it is 0 rather than counting towards a later credit date.
    """
    return max(0, (cycle.next_credit_date - reference).days)