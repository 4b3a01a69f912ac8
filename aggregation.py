from dataclasses import asdict, dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import AbstractSet, Iterable, Optional, Protocol, Union

from cycles import Cycle, days_elapsed, days_remaining
from errors import NotConfigured
from models import CategoryKind
from schemas import BudgetSettings


class SpendRecord(Protocol):
    date: date
    category: str
    amount_cents: int


def percent_of(part: int, whole: int) -> int:
    """100 * part / whole, rounded half away from zero."""
    ratio = Decimal(100 * part) / Decimal(whole)
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class DeductionLine:
    name: str
    amount_cents: int
    deduction_day: int


@dataclass(frozen=True)
class CategorySpend:
    name: str
    kind: CategoryKind
    limit_cents: int
    spent_cents: int
    remaining_cents: int
    percent_used: int

    @property
    def over_budget(self) -> bool:
        return self.spent_cents > self.limit_cents


@dataclass(frozen=True)
class Report:
    month: int
    year: int
    cycle_start: date
    cycle_end: date
    salary_cents: int
    salary_credit_day: int
    total_fixed_deductions_cents: int
    fixed_deductions: tuple[DeductionLine, ...]
    categories: tuple[CategorySpend, ...]
    total_spent_cents: int
    current_savings_cents: int

    @property
    def is_overspent(self) -> bool:
        return self.current_savings_cents < 0

    def category(self, name: str) -> Optional[CategorySpend]:
        for row in self.categories:
            if row.name == name:
                return row
        return None

    def to_dict(self) -> dict[str, object]:
        data = asdict(self)
        data["cycle_start"] = self.cycle_start.isoformat()
        data["cycle_end"] = self.cycle_end.isoformat()
        data["fixed_deductions"] = [asdict(d) for d in self.fixed_deductions]
        data["categories"] = [
            {**asdict(c), "kind": c.kind.value, "over_budget": c.over_budget}
            for c in self.categories
        ]
        data["is_overspent"] = self.is_overspent
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Report":
        return cls(
            month=int(data["month"]),
            year=int(data["year"]),
            cycle_start=date.fromisoformat(data["cycle_start"]),
            cycle_end=date.fromisoformat(data["cycle_end"]),
            salary_cents=int(data["salary_cents"]),
            salary_credit_day=int(data["salary_credit_day"]),
            total_fixed_deductions_cents=int(data["total_fixed_deductions_cents"]),
            fixed_deductions=tuple(
                DeductionLine(
                    name=d["name"],
                    amount_cents=int(d["amount_cents"]),
                    deduction_day=int(d["deduction_day"]),
                )
                for d in data["fixed_deductions"]
            ),
            categories=tuple(
                CategorySpend(
                    name=c["name"],
                    kind=CategoryKind(c["kind"]),
                    limit_cents=int(c["limit_cents"]),
                    spent_cents=int(c["spent_cents"]),
                    remaining_cents=int(c["remaining_cents"]),
                    percent_used=int(c["percent_used"]),
                )
                for c in data["categories"]
            ),
            total_spent_cents=int(data["total_spent_cents"]),
            current_savings_cents=int(data["current_savings_cents"]),
        )


def build_report(
    settings: Optional[BudgetSettings],
    expenses: Iterable[SpendRecord],
    cycle: Cycle,
) -> Report:
    """
    Aggregate one cycle's spending against the configured budget.

    Expenses outside ``cycle`` are ignored. Category matching is by exact
    name. Fixed deductions come from settings alone and are charged every
    cycle. Only variable categories count towards the total spent.
    """
    if settings is None or not settings.categories:
        raise NotConfigured()

    spent_by_name: dict[str, int] = {}
    for expense in expenses:
        if not cycle.contains(expense.date):
            continue
        spent_by_name[expense.category] = (
            spent_by_name.get(expense.category, 0) + expense.amount_cents
        )

    categories: list[CategorySpend] = []
    for category in settings.categories:
        spent = spent_by_name.get(category.name, 0)
        categories.append(
            CategorySpend(
                name=category.name,
                kind=category.kind,
                limit_cents=category.monthly_limit_cents,
                spent_cents=spent,
                remaining_cents=category.monthly_limit_cents - spent,
                percent_used=percent_of(spent, category.monthly_limit_cents),
            )
        )

    deductions = tuple(
        DeductionLine(
            name=d.name, amount_cents=d.amount_cents, deduction_day=d.deduction_day
        )
        for d in settings.fixed_deductions
    )
    total_fixed = sum(d.amount_cents for d in deductions)
    variable_spent = sum(
        c.spent_cents for c in categories if c.kind == CategoryKind.variable
    )
    total_spent = total_fixed + variable_spent
    return Report(
        month=cycle.month,
        year=cycle.year,
        cycle_start=cycle.start,
        cycle_end=cycle.end,
        salary_cents=settings.salary_cents,
        salary_credit_day=settings.salary_credit_day,
        total_fixed_deductions_cents=total_fixed,
        fixed_deductions=deductions,
        categories=tuple(categories),
        total_spent_cents=total_spent,
        current_savings_cents=settings.salary_cents - total_spent,
    )


@dataclass(frozen=True)
class QuickStats:
    top_category: Optional[str]
    top_category_spent_cents: int
    days_elapsed: int
    days_remaining: int
    average_daily_cents: int


def quick_stats(report: Report, today: date) -> QuickStats:
    cycle = Cycle(
        month=report.month,
        year=report.year,
        start=report.cycle_start,
        end=report.cycle_end,
    )
    top: Optional[CategorySpend] = None
    for row in report.categories:
        if row.spent_cents > (top.spent_cents if top else 0):
            top = row
    elapsed = days_elapsed(today, cycle)
    average = Decimal(report.total_spent_cents) / Decimal(elapsed)
    return QuickStats(
        top_category=top.name if top else None,
        top_category_spent_cents=top.spent_cents if top else 0,
        days_elapsed=elapsed,
        days_remaining=days_remaining(today, cycle),
        average_daily_cents=int(
            average.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        ),
    )


@dataclass(frozen=True)
class BudgetAlert:
    name: str
    percent_used: int
    level: str  # "warning" | "danger"


@dataclass
class DismissedAlerts:
    """Category names whose alerts the user dismissed in this session."""

    names: set[str] = field(default_factory=set)

    def dismiss(self, name: str) -> None:
        self.names.add(name)

    def __contains__(self, name: object) -> bool:
        return name in self.names


def budget_alerts(
    report: Report,
    dismissed: Union[AbstractSet[str], DismissedAlerts] = frozenset(),
    *,
    warning_percent: int = 80,
    danger_percent: int = 100,
) -> list[BudgetAlert]:
    alerts: list[BudgetAlert] = []
    for row in report.categories:
        if row.percent_used < warning_percent or row.name in dismissed:
            continue
        level = "danger" if row.percent_used >= danger_percent else "warning"
        alerts.append(
            BudgetAlert(name=row.name, percent_used=row.percent_used, level=level)
        )
    return alerts
