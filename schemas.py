import datetime as dt
from typing import Iterable

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from models import CategoryKind, EntryType

MAX_TAGS = 10
MAX_TAG_LENGTH = 30
MAX_DESCRIPTION_LENGTH = 200
UNCATEGORIZED = "Uncategorized"


def normalize_tags(tags: Iterable[str]) -> list[str]:
    """
    Strip, lower-case and de-duplicate tags, keeping first-seen order.

    Raises ValueError when more than MAX_TAGS remain or a tag is longer than
    MAX_TAG_LENGTH.
    """
    cleaned: list[str] = []
    for raw in tags:
        tag = (raw or "").strip().lower()
        if not tag or tag in cleaned:
            continue
        if len(tag) > MAX_TAG_LENGTH:
            raise ValueError(
                f"Tag '{tag}' is longer than {MAX_TAG_LENGTH} characters"
            )
        cleaned.append(tag)
    if len(cleaned) > MAX_TAGS:
        raise ValueError(f"At most {MAX_TAGS} tags are allowed")
    return cleaned


class FixedDeductionIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    amount_cents: int = Field(..., gt=0)
    deduction_day: int = Field(..., ge=1, le=31)


class BudgetCategoryIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    monthly_limit_cents: int = Field(..., gt=0)
    kind: CategoryKind = CategoryKind.variable


class BudgetSettings(BaseModel):
    salary_cents: int = Field(..., gt=0)
    salary_credit_day: int = Field(..., ge=1, le=31)
    fixed_deductions: list[FixedDeductionIn] = Field(default_factory=list)
    categories: list[BudgetCategoryIn] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_category_names(self) -> "BudgetSettings":
        seen: set[str] = set()
        for category in self.categories:
            key = category.name.lower()
            if key in seen:
                raise ValueError(f'Duplicate category name: "{category.name}"')
            seen.add(key)
        return self

    def category_names(self) -> list[str]:
        return [c.name for c in self.categories]


class ExpenseIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    date: dt.date
    category: str = Field(..., min_length=1, max_length=100)
    amount_cents: int = Field(..., gt=0)
    description: str = Field(..., min_length=1, max_length=MAX_DESCRIPTION_LENGTH)
    tags: list[str] = Field(default_factory=list)

    @field_validator("tags")
    @classmethod
    def _normalize_tags(cls, value: list[str]) -> list[str]:
        return normalize_tags(value)


class ImportTransactionIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    date: dt.date
    description: str = Field(..., min_length=1)
    amount_cents: int = Field(..., gt=0)
    type: EntryType
    category: str = Field(default=UNCATEGORIZED, min_length=1, max_length=100)
    tags: list[str] = Field(default_factory=list)

    @field_validator("tags")
    @classmethod
    def _normalize_tags(cls, value: list[str]) -> list[str]:
        return normalize_tags(value)


class ImportSaveIn(BaseModel):
    transactions: list[ImportTransactionIn]
