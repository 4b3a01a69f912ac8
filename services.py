from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date
from typing import Iterable, Optional, Protocol, Sequence

from pydantic import ValidationError
from rapidfuzz.distance import Levenshtein
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from aggregation import Report, build_report
from cycles import (
    cycle_for,
    local_today,
    resolve_cycle,
    shift_month,
)
from errors import EmptySelection, FieldValidationError, NotConfigured, UpstreamFailure
from import_batch import BatchSummary, ImportBatch
from models import (
    BudgetCategory,
    Expense,
    ExpenseSort,
    FixedDeduction,
    ReportSnapshot,
    Tag,
    UserSettings,
)
from schemas import (
    UNCATEGORIZED,
    BudgetCategoryIn,
    BudgetSettings,
    ExpenseIn,
    FixedDeductionIn,
)
from statements import parse_statement

logger = logging.getLogger(__name__)


def get_current_user_id() -> int:
    return 1


def _month_start(year: int, month: int) -> date:
    return date(year, month, 1)


def _month_end(year: int, month: int) -> date:
    if month == 12:
        return date(year + 1, 1, 1) - date.resolution
    return date(year, month + 1, 1) - date.resolution


_EXPENSE_ORDER = {
    ExpenseSort.date_desc: (Expense.date.desc(),),
    ExpenseSort.date_asc: (Expense.date.asc(),),
    ExpenseSort.amount_desc: (Expense.amount_cents.desc(), Expense.date.desc()),
    ExpenseSort.amount_asc: (Expense.amount_cents.asc(), Expense.date.desc()),
}


@dataclass(frozen=True)
class CommitResult:
    count: int
    message: str


@dataclass(frozen=True)
class TrendPoint:
    month: int
    year: int
    total_spent_cents: int
    total_savings_cents: int


class SettingsService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def get(self) -> Optional[BudgetSettings]:
        row = self.session.scalar(
            select(UserSettings).where(UserSettings.user_id == self.user_id)
        )
        if row is None:
            return None
        deductions = self.session.scalars(
            select(FixedDeduction)
            .where(FixedDeduction.user_id == self.user_id)
            .order_by(FixedDeduction.order, FixedDeduction.id)
        ).all()
        categories = self.session.scalars(
            select(BudgetCategory)
            .where(BudgetCategory.user_id == self.user_id)
            .order_by(BudgetCategory.order, BudgetCategory.id)
        ).all()
        return BudgetSettings(
            salary_cents=row.salary_cents,
            salary_credit_day=row.salary_credit_day,
            fixed_deductions=[
                FixedDeductionIn(
                    name=d.name,
                    amount_cents=d.amount_cents,
                    deduction_day=d.deduction_day,
                )
                for d in deductions
            ],
            categories=[
                BudgetCategoryIn(
                    name=c.name,
                    monthly_limit_cents=c.monthly_limit_cents,
                    kind=c.kind,
                )
                for c in categories
            ],
        )

    def put(self, data: BudgetSettings) -> BudgetSettings:
        if not data.categories:
            raise FieldValidationError(
                "categories", "At least one expense category is required."
            )

        row = self.session.scalar(
            select(UserSettings).where(UserSettings.user_id == self.user_id)
        )
        if row is None:
            row = UserSettings(user_id=self.user_id)
            self.session.add(row)
        row.salary_cents = data.salary_cents
        row.salary_credit_day = data.salary_credit_day

        self.session.execute(
            delete(FixedDeduction).where(FixedDeduction.user_id == self.user_id)
        )
        self.session.execute(
            delete(BudgetCategory).where(BudgetCategory.user_id == self.user_id)
        )
        for order, deduction in enumerate(data.fixed_deductions):
            self.session.add(
                FixedDeduction(
                    user_id=self.user_id,
                    name=deduction.name,
                    amount_cents=deduction.amount_cents,
                    deduction_day=deduction.deduction_day,
                    order=order,
                )
            )
        for order, category in enumerate(data.categories):
            self.session.add(
                BudgetCategory(
                    user_id=self.user_id,
                    name=category.name,
                    monthly_limit_cents=category.monthly_limit_cents,
                    kind=category.kind,
                    order=order,
                )
            )
        self.session.commit()
        logger.info(
            f"settings_saved: user_id={self.user_id} "
            f"categories={len(data.categories)} "
            f"deductions={len(data.fixed_deductions)}"
        )
        return data

    def require(self) -> BudgetSettings:
        settings = self.get()
        if settings is None or not settings.categories:
            raise NotConfigured()
        return settings


class TagService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def get_or_create(self, name: str) -> Tag:
        clean_name = name.strip().lower()
        if not clean_name:
            raise ValueError("Tag name cannot be empty")

        stmt = select(Tag).where(
            Tag.user_id == self.user_id, func.lower(Tag.name) == clean_name
        )
        existing = self.session.scalar(stmt)
        if existing:
            return existing

        tag = Tag(user_id=self.user_id, name=clean_name)
        self.session.add(tag)
        self.session.flush()
        return tag

    def resolve(self, names: Iterable[str]) -> list[Tag]:
        return [self.get_or_create(name) for name in names]


class ExpenseSink(Protocol):
    def bulk_create(self, items: Sequence[ExpenseIn]) -> CommitResult: ...


class ExpenseService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def _check_category(self, name: str) -> None:
        settings = SettingsService(self.session, self.user_id).require()
        if name not in settings.category_names():
            raise FieldValidationError("category", f"Unknown category '{name}'")

    def _base_query(self):
        return (
            select(Expense)
            .options(selectinload(Expense.tags))
            .where(Expense.user_id == self.user_id)
        )

    def get(self, expense_id: int) -> Expense:
        expense = self.session.scalar(
            self._base_query().where(Expense.id == expense_id)
        )
        if not expense:
            raise ValueError("Expense not found")
        return expense

    def create(self, data: ExpenseIn) -> Expense:
        self._check_category(data.category)
        expense = Expense(
            user_id=self.user_id,
            date=data.date,
            category=data.category,
            amount_cents=data.amount_cents,
            description=data.description,
        )
        expense.tags = TagService(self.session, self.user_id).resolve(data.tags)
        self.session.add(expense)
        self.session.commit()
        self.session.refresh(expense)
        return expense

    def update(self, expense_id: int, data: ExpenseIn) -> Expense:
        expense = self.get(expense_id)
        self._check_category(data.category)
        expense.date = data.date
        expense.category = data.category
        expense.amount_cents = data.amount_cents
        expense.description = data.description
        expense.tags = TagService(self.session, self.user_id).resolve(data.tags)
        self.session.commit()
        self.session.refresh(expense)
        return expense

    def delete(self, expense_id: int) -> None:
        expense = self.get(expense_id)
        self.session.delete(expense)
        self.session.commit()

    def between(self, start: date, end: date) -> list[Expense]:
        stmt = (
            self._base_query()
            .where(Expense.date.between(start, end))
            .order_by(Expense.date.desc(), Expense.id.desc())
        )
        return self.session.scalars(stmt).all()

    def list(
        self,
        month: int,
        year: int,
        category: Optional[str] = None,
        sort: ExpenseSort = ExpenseSort.date_desc,
    ) -> list[Expense]:
        stmt = self._base_query().where(
            Expense.date.between(_month_start(year, month), _month_end(year, month))
        )
        if category:
            stmt = stmt.where(Expense.category == category)
        stmt = stmt.order_by(*_EXPENSE_ORDER[ExpenseSort(sort)], Expense.id.desc())
        return self.session.scalars(stmt).all()

    def earliest_date(self) -> Optional[date]:
        return self.session.scalar(
            select(func.min(Expense.date)).where(Expense.user_id == self.user_id)
        )

    def bulk_create(self, items: Sequence[ExpenseIn]) -> CommitResult:
        """Insert every item or none of them."""
        tags = TagService(self.session, self.user_id)
        try:
            for item in items:
                expense = Expense(
                    user_id=self.user_id,
                    date=item.date,
                    category=item.category,
                    amount_cents=item.amount_cents,
                    description=item.description,
                )
                expense.tags = tags.resolve(item.tags)
                self.session.add(expense)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        count = len(items)
        noun = "expense" if count == 1 else "expenses"
        return CommitResult(count=count, message=f"{count} {noun} imported")


class ReportService:
    """
    Current and historical cycle reports.

    A closed cycle's report is stored as a snapshot the first time it is
    requested (or by the nightly job) and is served from that snapshot from
    then on, so later settings or expense edits do not rewrite history.
    """

    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.settings_service = SettingsService(session, self.user_id)
        self.expense_service = ExpenseService(session, self.user_id)

    def _snapshot(self, month: int, year: int) -> Optional[ReportSnapshot]:
        return self.session.scalar(
            select(ReportSnapshot).where(
                ReportSnapshot.user_id == self.user_id,
                ReportSnapshot.year == year,
                ReportSnapshot.month == month,
            )
        )

    def _build(self, settings: BudgetSettings, month: int, year: int) -> Report:
        cycle = cycle_for(month, year, settings.salary_credit_day)
        expenses = self.expense_service.between(cycle.start, cycle.end)
        return build_report(settings, expenses, cycle)

    def _store(self, report: Report) -> ReportSnapshot:
        snapshot = ReportSnapshot(
            user_id=self.user_id,
            year=report.year,
            month=report.month,
            cycle_start=report.cycle_start,
            cycle_end=report.cycle_end,
            total_spent_cents=report.total_spent_cents,
            total_savings_cents=report.current_savings_cents,
            payload=report.to_dict(),
        )
        self.session.add(snapshot)
        self.session.flush()
        logger.info(
            f"report_snapshot_created: user_id={self.user_id} "
            f"year={report.year} month={report.month}"
        )
        return snapshot

    def current_report(self, today: Optional[date] = None) -> Report:
        settings = self.settings_service.require()
        cycle = resolve_cycle(today or local_today(), settings.salary_credit_day)
        return self._build(settings, cycle.month, cycle.year)

    def _first_cycle_start(self, credit_day: int) -> Optional[date]:
        earliest = self.expense_service.earliest_date()
        if earliest is None:
            return None
        return resolve_cycle(earliest, credit_day).start

    def monthly_report(
        self, month: int, year: int, today: Optional[date] = None
    ) -> Report:
        """
        Report for the cycle starting in ``month``/``year``.

        Closed cycles from the first expense onwards are frozen on first
        request. Older cycles and the open one are computed live.
        """
        if not 1 <= month <= 12:
            raise FieldValidationError("month", "Month must be between 1 and 12")
        snapshot = self._snapshot(month, year)
        if snapshot is not None:
            return Report.from_dict(snapshot.payload)

        settings = self.settings_service.require()
        report = self._build(settings, month, year)
        first_start = self._first_cycle_start(settings.salary_credit_day)
        closed = report.cycle_end < (today or local_today())
        if closed and first_start is not None and report.cycle_start >= first_start:
            try:
                self._store(report)
                self.session.commit()
            except IntegrityError:
                # stored by a concurrent request; serve that copy
                self.session.rollback()
                logger.info(
                    f"report_snapshot_exists: user_id={self.user_id} "
                    f"year={year} month={month}"
                )
                return Report.from_dict(self._snapshot(month, year).payload)
        return report

    def history(self) -> list[TrendPoint]:
        rows = self.session.scalars(
            select(ReportSnapshot)
            .where(ReportSnapshot.user_id == self.user_id)
            .order_by(ReportSnapshot.year, ReportSnapshot.month)
        ).all()
        return [
            TrendPoint(
                month=row.month,
                year=row.year,
                total_spent_cents=row.total_spent_cents,
                total_savings_cents=row.total_savings_cents,
            )
            for row in rows
        ]

    def snapshot_closed_cycles(self, today: Optional[date] = None) -> int:
        """Store snapshots for every closed cycle since the first expense."""
        settings = self.settings_service.get()
        earliest = self.expense_service.earliest_date()
        if settings is None or not settings.categories or earliest is None:
            return 0
        today = today or local_today()
        credit_day = settings.salary_credit_day
        cycle = resolve_cycle(earliest, credit_day)
        created = 0
        while cycle.end < today:
            if self._snapshot(cycle.month, cycle.year) is None:
                self._store(self._build(settings, cycle.month, cycle.year))
                created += 1
            year, month = shift_month(cycle.year, cycle.month, 1)
            cycle = cycle_for(month, year, credit_day)
        self.session.commit()
        return created


@dataclass
class StatementPreview:
    batch: ImportBatch
    category_options: list[str]
    summary: BatchSummary
    errors: list[str]


def match_category(name: str, configured: Sequence[str]) -> str:
    """
    Map a detected category onto the user's spelling of it.

    Case-insensitive equality wins; otherwise a single configured name within
    one edit is used. Anything else is returned unchanged.
    """
    if name == UNCATEGORIZED or not configured:
        return name
    lowered = name.lower()
    for candidate in configured:
        if candidate.lower() == lowered:
            return candidate
    best_distance: Optional[int] = None
    best: list[str] = []
    for candidate in configured:
        dist = int(Levenshtein.distance(lowered, candidate.lower()))
        if best_distance is None or dist < best_distance:
            best_distance = dist
            best = [candidate]
        elif dist == best_distance:
            best.append(candidate)
    if best_distance is not None and best_distance <= 1 and len(best) == 1:
        return best[0]
    return name


class ImportService:
    def __init__(
        self,
        session: Session,
        user_id: Optional[int] = None,
        sink: Optional[ExpenseSink] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.sink = sink or ExpenseService(session, self.user_id)

    def _configured_categories(self) -> list[str]:
        settings = SettingsService(self.session, self.user_id).get()
        return settings.category_names() if settings else []

    def parse(self, content: bytes, filename: str) -> StatementPreview:
        try:
            parsed = parse_statement(content, filename)
        except FieldValidationError:
            raise
        except Exception as exc:
            logger.exception(f"statement_parse_failed: file={filename}")
            raise UpstreamFailure(f"Failed to parse statement: {exc}") from exc

        configured = self._configured_categories()
        rows = []
        for txn in parsed.transactions:
            matched = match_category(txn.category, configured)
            rows.append(replace(txn, category=matched))
        batch = ImportBatch.load(rows)
        detected = [match_category(n, configured) for n in parsed.available_categories]
        return StatementPreview(
            batch=batch,
            category_options=batch.category_options(configured + detected),
            summary=parsed.summary,
            errors=parsed.errors,
        )

    def commit(self, batch: ImportBatch) -> CommitResult:
        selected = batch.selected_transactions()
        if not selected:
            raise EmptySelection()

        items: list[ExpenseIn] = []
        for index, txn in zip(batch.selected_indices(), selected):
            try:
                items.append(
                    ExpenseIn(
                        date=txn.date,
                        category=txn.category,
                        amount_cents=txn.amount_cents,
                        description=txn.description,
                        tags=list(txn.tags),
                    )
                )
            except ValidationError as exc:
                first = exc.errors()[0]
                field = ".".join(str(part) for part in first.get("loc", ()))
                raise FieldValidationError(
                    field or None, f"Row {index + 1}: {first.get('msg')}"
                ) from exc

        try:
            result = self.sink.bulk_create(items)
        except UpstreamFailure:
            logger.exception(f"import_commit_failed: user_id={self.user_id}")
            raise
        except (SQLAlchemyError, OSError) as exc:
            logger.exception(f"import_commit_failed: user_id={self.user_id}")
            raise UpstreamFailure(str(exc) or "Failed to save transactions") from exc
        logger.info(f"import_committed: user_id={self.user_id} count={result.count}")
        return result

