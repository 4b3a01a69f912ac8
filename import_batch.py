import logging
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Iterable, Optional, Union

from errors import FieldValidationError
from models import EntryType, TypeFilter
from schemas import UNCATEGORIZED, ImportTransactionIn, normalize_tags

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImportTransaction:
    date: date
    description: str
    amount_cents: int
    type: EntryType
    category: str = UNCATEGORIZED
    tags: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_input(cls, data: ImportTransactionIn) -> "ImportTransaction":
        return cls(
            date=data.date,
            description=data.description,
            amount_cents=data.amount_cents,
            type=data.type,
            category=data.category,
            tags=tuple(data.tags),
        )


@dataclass(frozen=True)
class BatchSummary:
    total: int
    debits: int
    credits: int


class ImportBatch:
    """
    Reviewable set of parsed statement rows.

    Rows keep the parser's order and are addressed by that index. Selection is
    a set of row indices; the type filter only decides which rows the bulk
    select/deselect calls touch, so rows hidden by the filter keep whatever
    selection state they had.
    """

    def __init__(
        self, transactions: Iterable[ImportTransaction] = (), *, strict: bool = False
    ) -> None:
        self._transactions: list[ImportTransaction] = list(transactions)
        self._selected: set[int] = set(range(len(self._transactions)))
        self._filter = TypeFilter.all
        self.strict = strict

    @classmethod
    def load(
        cls,
        transactions: Iterable[Union[ImportTransaction, ImportTransactionIn]],
        *,
        strict: bool = False,
    ) -> "ImportBatch":
        rows = [
            ImportTransaction.from_input(t) if isinstance(t, ImportTransactionIn) else t
            for t in transactions
        ]
        return cls(rows, strict=strict)

    def __len__(self) -> int:
        return len(self._transactions)

    def __getitem__(self, index: int) -> ImportTransaction:
        return self._transactions[index]

    @property
    def transactions(self) -> tuple[ImportTransaction, ...]:
        return tuple(self._transactions)

    @property
    def type_filter(self) -> TypeFilter:
        return self._filter

    @property
    def selected_count(self) -> int:
        return len(self._selected)

    def is_selected(self, index: int) -> bool:
        return index in self._selected

    def selected_indices(self) -> list[int]:
        return sorted(self._selected)

    def selected_transactions(self) -> list[ImportTransaction]:
        return [self._transactions[i] for i in self.selected_indices()]

    def visible_indices(self) -> list[int]:
        if self._filter == TypeFilter.all:
            return list(range(len(self._transactions)))
        return [
            i
            for i, txn in enumerate(self._transactions)
            if txn.type.value == self._filter.value
        ]

    def _valid_index(self, index: int) -> bool:
        if 0 <= index < len(self._transactions):
            return True
        if self.strict:
            raise IndexError(f"Row {index} is out of range")
        logger.warning(
            f"import_batch_index_ignored: index={index} size={len(self._transactions)}"
        )
        return False

    def toggle(self, index: int) -> None:
        if not self._valid_index(index):
            return
        if index in self._selected:
            self._selected.remove(index)
        else:
            self._selected.add(index)

    def set_filter(self, type_filter: Union[TypeFilter, str]) -> None:
        self._filter = TypeFilter(type_filter)

    def select_all_visible(self) -> None:
        self._selected.update(self.visible_indices())

    def deselect_all_visible(self) -> None:
        self._selected.difference_update(self.visible_indices())

    def update_category(self, index: int, category: str) -> None:
        if not self._valid_index(index):
            return
        clean = (category or "").strip()
        if not clean:
            raise FieldValidationError("category", "Category cannot be empty")
        self._transactions[index] = replace(self._transactions[index], category=clean)

    def update_tags(self, index: int, tags: Iterable[str]) -> None:
        if not self._valid_index(index):
            return
        try:
            normalized = normalize_tags(tags)
        except ValueError as exc:
            raise FieldValidationError("tags", str(exc)) from exc
        self._transactions[index] = replace(
            self._transactions[index], tags=tuple(normalized)
        )

    def selected_total(self) -> int:
        return sum(self._transactions[i].amount_cents for i in self._selected)

    def category_options(self, configured: Optional[Iterable[str]] = None) -> list[str]:
        """Configured names plus any names already on rows, without duplicates."""
        options = [UNCATEGORIZED]
        for name in list(configured or []) + [t.category for t in self._transactions]:
            if name not in options:
                options.append(name)
        return options

    def summary(self) -> BatchSummary:
        debits = sum(1 for t in self._transactions if t.type == EntryType.debit)
        return BatchSummary(
            total=len(self._transactions),
            debits=debits,
            credits=len(self._transactions) - debits,
        )
