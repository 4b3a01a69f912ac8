from datetime import date

import pytest

from errors import FieldValidationError
from import_batch import ImportBatch, ImportTransaction
from models import EntryType, TypeFilter
from schemas import UNCATEGORIZED, ImportTransactionIn


def _batch(**kwargs) -> ImportBatch:
    return ImportBatch(
        [
            ImportTransaction(date(2025, 3, 2), "Swiggy order", 45_000, EntryType.debit),
            ImportTransaction(date(2025, 3, 3), "Salary credit", 3_000_000, EntryType.credit),
            ImportTransaction(date(2025, 3, 4), "Uber trip", 23_050, EntryType.debit),
            ImportTransaction(date(2025, 3, 5), "Refund", 9_900, EntryType.credit),
        ],
        **kwargs,
    )


def test_new_batch_selects_every_row() -> None:
    batch = _batch()

    assert batch.selected_indices() == [0, 1, 2, 3]
    assert batch.type_filter == TypeFilter.all
    assert batch.summary().total == 4
    assert batch.summary().debits == 2
    assert batch.summary().credits == 2


def test_select_all_visible_respects_debit_filter() -> None:
    batch = _batch()
    for index in range(len(batch)):
        batch.toggle(index)
    assert batch.selected_count == 0

    batch.set_filter("debit")
    batch.select_all_visible()

    assert batch.selected_indices() == [0, 2]
    assert batch.selected_total() == 45_000 + 23_050


def test_filter_change_keeps_hidden_selection() -> None:
    batch = _batch()
    batch.set_filter(TypeFilter.credit)
    batch.deselect_all_visible()

    assert batch.selected_indices() == [0, 2]

    batch.set_filter(TypeFilter.debit)
    assert batch.visible_indices() == [0, 2]
    assert batch.is_selected(0)
    assert not batch.is_selected(1)

    batch.set_filter(TypeFilter.all)
    batch.select_all_visible()
    assert batch.selected_indices() == [0, 1, 2, 3]


def test_toggle_twice_restores_selection() -> None:
    batch = _batch()
    batch.toggle(2)
    assert not batch.is_selected(2)
    batch.toggle(2)
    assert batch.is_selected(2)


def test_out_of_range_index_is_ignored() -> None:
    batch = _batch()
    batch.toggle(10)
    batch.update_category(-1, "Food")

    assert batch.selected_indices() == [0, 1, 2, 3]
    assert all(t.category == UNCATEGORIZED for t in batch.transactions)


def test_strict_batch_raises_on_bad_index() -> None:
    batch = _batch(strict=True)

    with pytest.raises(IndexError):
        batch.toggle(4)


def test_update_category_and_tags() -> None:
    batch = _batch()

    batch.update_category(0, " Food ")
    batch.update_tags(0, ["Dining", "dining", " Weekend "])

    assert batch[0].category == "Food"
    assert batch[0].tags == ("dining", "weekend")
    assert batch[1].category == UNCATEGORIZED


def test_update_category_rejects_blank() -> None:
    batch = _batch()

    with pytest.raises(FieldValidationError) as exc:
        batch.update_category(1, "   ")
    assert exc.value.field == "category"


def test_update_tags_enforces_limits() -> None:
    batch = _batch()

    with pytest.raises(FieldValidationError) as exc:
        batch.update_tags(0, [f"tag{i}" for i in range(11)])
    assert exc.value.field == "tags"

    with pytest.raises(FieldValidationError):
        batch.update_tags(0, ["x" * 31])
    assert batch[0].tags == ()


def test_category_options_merge_without_duplicates() -> None:
    batch = _batch()
    batch.update_category(0, "Food")
    batch.update_category(2, "Transport")

    options = batch.category_options(["Food", "Rent"])

    assert options == [UNCATEGORIZED, "Food", "Rent", "Transport"]


def test_load_accepts_request_payloads() -> None:
    payload = ImportTransactionIn(
        date=date(2025, 3, 2),
        description="Zomato",
        amount_cents=12_000,
        type="debit",
        tags=["Food"],
    )

    batch = ImportBatch.load([payload])

    assert batch[0].category == UNCATEGORIZED
    assert batch[0].tags == ("food",)
    assert batch.selected_indices() == [0]
