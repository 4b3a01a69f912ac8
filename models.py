from datetime import date, datetime
from enum import Enum

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class CategoryKind(str, Enum):
    fixed = "fixed"
    variable = "variable"


class EntryType(str, Enum):
    debit = "debit"
    credit = "credit"


class TypeFilter(str, Enum):
    all = "all"
    debit = "debit"
    credit = "credit"


class ExpenseSort(str, Enum):
    date_desc = "date-desc"
    date_asc = "date-asc"
    amount_desc = "amount-desc"
    amount_asc = "amount-asc"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class UserSettings(Base, TimestampMixin):
    __tablename__ = "user_settings"
    __table_args__ = (
        UniqueConstraint("user_id", name="uq_user_settings_user"),
        CheckConstraint("salary_cents > 0", name="ck_user_settings_salary_positive"),
        CheckConstraint(
            "salary_credit_day BETWEEN 1 AND 31",
            name="ck_user_settings_credit_day_range",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    salary_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    salary_credit_day: Mapped[int] = mapped_column(Integer, nullable=False)


class FixedDeduction(Base, TimestampMixin):
    __tablename__ = "fixed_deductions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    deduction_day: Mapped[int] = mapped_column(Integer, nullable=False)
    order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class BudgetCategory(Base, TimestampMixin):
    __tablename__ = "budget_categories"
    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_budget_category_user_name"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    monthly_limit_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    kind: Mapped[CategoryKind] = mapped_column(
        SAEnum(CategoryKind), nullable=False, default=CategoryKind.variable
    )
    order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class Tag(Base, TimestampMixin):
    __tablename__ = "tags"
    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_tag_user_name"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(30), nullable=False)

    expenses: Mapped[list["Expense"]] = relationship(
        "Expense", secondary="expense_tags", back_populates="tags"
    )


expense_tags = Table(
    "expense_tags",
    Base.metadata,
    Column("expense_id", Integer, ForeignKey("expenses.id"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id"), primary_key=True),
)


class Expense(Base, TimestampMixin):
    __tablename__ = "expenses"
    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_expenses_amount_positive"),
        Index("ix_expenses_user_date", "user_id", "date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(200), nullable=False)

    tags: Mapped[list[Tag]] = relationship(
        "Tag",
        secondary="expense_tags",
        back_populates="expenses",
        order_by="Tag.name",
    )

    @property
    def tag_names(self) -> list[str]:
        return [tag.name for tag in self.tags]


class ReportSnapshot(Base):
    __tablename__ = "report_snapshots"
    __table_args__ = (
        UniqueConstraint("user_id", "year", "month", name="uq_report_snapshot_cycle"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    cycle_start: Mapped[date] = mapped_column(Date, nullable=False)
    cycle_end: Mapped[date] = mapped_column(Date, nullable=False)
    total_spent_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    total_savings_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
