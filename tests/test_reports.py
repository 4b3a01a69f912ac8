from datetime import date

import pytest
from pydantic import ValidationError
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from database import Base
from errors import FieldValidationError, NotConfigured
from models import ExpenseSort, ReportSnapshot
from schemas import BudgetCategoryIn, BudgetSettings, ExpenseIn, FixedDeductionIn
from services import ExpenseService, ReportService, SettingsService


def _settings(salary_cents: int = 3_000_000) -> BudgetSettings:
    return BudgetSettings(
        salary_cents=salary_cents,
        salary_credit_day=3,
        fixed_deductions=[
            FixedDeductionIn(name="Rent", amount_cents=1_000_000, deduction_day=5)
        ],
        categories=[
            BudgetCategoryIn(name="Food", monthly_limit_cents=300_000),
            BudgetCategoryIn(name="Transport", monthly_limit_cents=100_000),
        ],
    )


def _expense(day: date, category: str, amount_cents: int) -> ExpenseIn:
    return ExpenseIn(
        date=day, category=category, amount_cents=amount_cents, description="test"
    )


def test_current_report_requires_settings() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        with pytest.raises(NotConfigured):
            ReportService(session).current_report(date(2025, 3, 10))


def test_settings_round_trip_keeps_order() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        SettingsService(session).put(_settings())
        loaded = SettingsService(session).get()

        assert loaded == _settings()
        assert loaded.category_names() == ["Food", "Transport"]


def test_settings_require_a_category() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        with pytest.raises(FieldValidationError) as exc:
            SettingsService(session).put(
                BudgetSettings(salary_cents=100, salary_credit_day=1)
            )
        assert exc.value.field == "categories"
        assert SettingsService(session).get() is None


def test_duplicate_category_names_are_rejected() -> None:
    with pytest.raises(ValidationError, match="Duplicate category name"):
        BudgetSettings(
            salary_cents=100,
            salary_credit_day=1,
            categories=[
                BudgetCategoryIn(name="Food", monthly_limit_cents=100),
                BudgetCategoryIn(name="food", monthly_limit_cents=200),
            ],
        )


def test_expense_must_use_configured_category() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = ExpenseService(session)
        with pytest.raises(NotConfigured):
            service.create(_expense(date(2025, 3, 4), "Food", 100))

        SettingsService(session).put(_settings())
        with pytest.raises(FieldValidationError) as exc:
            service.create(_expense(date(2025, 3, 4), "Fuel", 100))
        assert exc.value.field == "category"


def test_current_report_uses_open_cycle() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        SettingsService(session).put(_settings())
        expenses = ExpenseService(session)
        expenses.create(_expense(date(2025, 3, 2), "Food", 10_000))
        expenses.create(_expense(date(2025, 3, 3), "Food", 20_000))
        expenses.create(_expense(date(2025, 4, 2), "Transport", 5_000))

        report = ReportService(session).current_report(date(2025, 3, 10))

        assert (report.month, report.year) == (3, 2025)
        assert report.cycle_start == date(2025, 3, 3)
        assert report.cycle_end == date(2025, 4, 2)
        assert report.category("Food").spent_cents == 20_000
        assert report.category("Transport").spent_cents == 5_000
        assert report.total_spent_cents == 1_025_000


def test_closed_cycle_report_is_frozen() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        SettingsService(session).put(_settings())
        ExpenseService(session).create(_expense(date(2025, 1, 10), "Food", 50_000))
        reports = ReportService(session)

        first = reports.monthly_report(1, 2025, today=date(2025, 3, 1))

        SettingsService(session).put(_settings(salary_cents=5_000_000))
        ExpenseService(session).create(_expense(date(2025, 1, 11), "Food", 1_000))
        again = reports.monthly_report(1, 2025, today=date(2025, 3, 1))

        assert again == first
        assert again.salary_cents == 3_000_000
        assert again.category("Food").spent_cents == 50_000


def test_open_cycle_report_is_not_stored() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        SettingsService(session).put(_settings())

        ReportService(session).monthly_report(3, 2025, today=date(2025, 3, 10))

        assert session.scalars(select(ReportSnapshot)).all() == []


def test_monthly_report_rejects_bad_month() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        with pytest.raises(FieldValidationError):
            ReportService(session).monthly_report(0, 2025)


def test_snapshot_job_fills_history_in_order() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        SettingsService(session).put(_settings())
        expenses = ExpenseService(session)
        expenses.create(_expense(date(2024, 11, 20), "Food", 10_000))
        expenses.create(_expense(date(2025, 1, 5), "Transport", 7_000))
        reports = ReportService(session)

        created = reports.snapshot_closed_cycles(today=date(2025, 2, 10))
        assert created == 3
        assert reports.snapshot_closed_cycles(today=date(2025, 2, 10)) == 0

        history = reports.history()
        assert [(p.year, p.month) for p in history] == [
            (2024, 11),
            (2024, 12),
            (2025, 1),
        ]
        assert history[0].total_spent_cents == 1_010_000
        assert history[1].total_spent_cents == 1_000_000
        assert history[2].total_savings_cents == 3_000_000 - 1_007_000


def test_snapshot_job_without_settings_does_nothing() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        assert ReportService(session).snapshot_closed_cycles(date(2025, 2, 10)) == 0
        assert ReportService(session).history() == []


def test_cycles_before_first_expense_are_not_stored() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        SettingsService(session).put(_settings())
        ExpenseService(session).create(_expense(date(2025, 3, 10), "Food", 10_000))
        reports = ReportService(session)

        old = reports.monthly_report(1, 1990, today=date(2025, 6, 1))
        assert old.total_spent_cents == 1_000_000
        assert reports.history() == []

        reports.monthly_report(3, 2025, today=date(2025, 6, 1))
        assert [(p.year, p.month) for p in reports.history()] == [(2025, 3)]


def test_closed_cycle_without_expenses_is_not_stored() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        SettingsService(session).put(_settings())

        ReportService(session).monthly_report(1, 2025, today=date(2025, 6, 1))

        assert session.scalars(select(ReportSnapshot)).all() == []


def test_concurrent_snapshot_insert_serves_stored_copy(monkeypatch) -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        SettingsService(session).put(_settings())
        ExpenseService(session).create(_expense(date(2025, 1, 10), "Food", 50_000))
        stored = ReportService(session).monthly_report(1, 2025, today=date(2025, 3, 1))
        SettingsService(session).put(_settings(salary_cents=5_000_000))

        lookups = []
        real_snapshot = ReportService._snapshot

        def missing_on_first_lookup(self, month, year):
            lookups.append((month, year))
            if len(lookups) == 1:
                return None
            return real_snapshot(self, month, year)

        monkeypatch.setattr(ReportService, "_snapshot", missing_on_first_lookup)

        report = ReportService(session).monthly_report(1, 2025, today=date(2025, 3, 1))

        assert report == stored
        assert len(session.scalars(select(ReportSnapshot)).all()) == 1


def test_expense_list_filters_and_sorts() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        SettingsService(session).put(_settings())
        expenses = ExpenseService(session)
        expenses.create(_expense(date(2025, 3, 5), "Food", 300))
        expenses.create(_expense(date(2025, 3, 1), "Food", 900))
        expenses.create(_expense(date(2025, 3, 9), "Transport", 100))
        expenses.create(_expense(date(2025, 4, 1), "Food", 50))

        by_date = expenses.list(3, 2025)
        assert [e.date.day for e in by_date] == [9, 5, 1]

        oldest_first = expenses.list(3, 2025, sort=ExpenseSort.date_asc)
        assert [e.date.day for e in oldest_first] == [1, 5, 9]

        food_by_amount = expenses.list(
            3, 2025, category="Food", sort=ExpenseSort.amount_desc
        )
        assert [e.amount_cents for e in food_by_amount] == [900, 300]

        cheapest = expenses.list(3, 2025, sort="amount-asc")
        assert [e.amount_cents for e in cheapest] == [100, 300, 900]
