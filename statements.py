"""
Bank statement parsing for the import workflow.

Both CSV and PDF statements are reduced to a header row plus data rows and
then go through the same row interpreter. Each row becomes an
ImportTransaction. Rows that cannot be read are reported as
``Row N: reason`` and skipped; the rest of the statement still imports.
"""

import csv
import io
import logging
import re
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Optional, Sequence

import pdfplumber

from config import get_settings
from csv_utils import parse_amount, parse_date
from errors import FieldValidationError
from import_batch import BatchSummary, ImportTransaction
from models import EntryType
from schemas import UNCATEGORIZED

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {"csv", "pdf"}

DATE_HEADERS = ("date", "txn date", "transaction date", "value date", "posting date")
DESCRIPTION_HEADERS = ("description", "narration", "details", "particulars", "remarks")
DEBIT_HEADERS = ("debit", "withdrawal", "withdrawal amt", "withdrawals", "dr")
CREDIT_HEADERS = ("credit", "deposit", "deposit amt", "deposits", "cr")
AMOUNT_HEADERS = ("amount", "transaction amount")
TYPE_HEADERS = ("type", "dr/cr", "cr/dr", "debit/credit")

CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "Food": (
        "swiggy", "zomato", "restaurant", "cafe", "pizza", "dominos",
        "mcdonald", "starbucks", "bakery",
    ),
    "Groceries": (
        "bigbasket", "blinkit", "zepto", "dmart", "grocery", "supermarket",
        "grofers", "more retail",
    ),
    "Transport": (
        "uber", "ola", "rapido", "metro", "irctc", "petrol", "fuel",
        "hpcl", "bpcl", "indian oil", "fastag",
    ),
    "Shopping": ("amazon", "flipkart", "myntra", "ajio", "nykaa", "meesho"),
    "Bills": (
        "electricity", "airtel", "jio", "vodafone", "broadband", "bescom",
        "recharge", "gas bill", "water bill",
    ),
    "Entertainment": ("netflix", "spotify", "hotstar", "prime video", "bookmyshow"),
    "Health": ("pharmacy", "apollo", "hospital", "clinic", "medplus", "1mg"),
}

_TEXT_LINE = re.compile(
    r"^(?P<date>\d{1,2}[-/. ](?:\d{1,2}|[A-Za-z]{3})[-/. ]\d{2,4})\s+"
    r"(?P<description>.+?)\s+"
    r"(?P<amount>-?[\d,]+\.\d{2})\s*(?P<marker>Dr|Cr|DR|CR)?"
    r"(?:\s+[\d,]+\.\d{2}\s*(?:Dr|Cr|DR|CR)?)?$"
)


@dataclass
class ParsedStatement:
    transactions: list[ImportTransaction]
    available_categories: list[str]
    summary: BatchSummary
    errors: list[str] = field(default_factory=list)


def statement_extension(filename: str) -> str:
    return PurePath(filename or "").suffix.lower().lstrip(".")


def check_statement_upload(filename: str, size: int) -> str:
    """Reject anything but a CSV/PDF within the size limit; returns the extension."""
    extension = statement_extension(filename)
    if extension not in ALLOWED_EXTENSIONS:
        raise FieldValidationError("statement", "Only CSV and PDF files are supported")
    limit = get_settings().max_statement_bytes
    if size > limit:
        raise FieldValidationError(
            "statement", f"File size must be under {limit // (1024 * 1024)}MB"
        )
    if size == 0:
        raise FieldValidationError("statement", "File is empty")
    return extension


def categorize(description: str) -> str:
    lowered = description.lower()
    for category, keywords in CATEGORY_KEYWORDS.items():
        if any(keyword in lowered for keyword in keywords):
            return category
    return UNCATEGORIZED


def _find_column(header: Sequence[str], names: Sequence[str]) -> Optional[int]:
    for idx, cell in enumerate(header):
        if cell in names:
            return idx
    return None


class _RowReader:
    def __init__(self, header: Sequence[Optional[str]]) -> None:
        cleaned = [" ".join((cell or "").split()).strip().lower() for cell in header]
        self.date_col = _find_column(cleaned, DATE_HEADERS)
        self.description_col = _find_column(cleaned, DESCRIPTION_HEADERS)
        self.debit_col = _find_column(cleaned, DEBIT_HEADERS)
        self.credit_col = _find_column(cleaned, CREDIT_HEADERS)
        self.amount_col = _find_column(cleaned, AMOUNT_HEADERS)
        self.type_col = _find_column(cleaned, TYPE_HEADERS)

    @property
    def usable(self) -> bool:
        has_amount = self.amount_col is not None or (
            self.debit_col is not None or self.credit_col is not None
        )
        return (
            self.date_col is not None
            and self.description_col is not None
            and has_amount
        )

    @staticmethod
    def _cell(row: Sequence[Optional[str]], col: Optional[int]) -> str:
        if col is None or col >= len(row):
            return ""
        return " ".join((row[col] or "").split())

    def read(self, row: Sequence[Optional[str]]) -> ImportTransaction:
        txn_date = parse_date(self._cell(row, self.date_col))
        description = self._cell(row, self.description_col)
        if not description:
            raise ValueError("Missing description")

        debit_raw = self._cell(row, self.debit_col)
        credit_raw = self._cell(row, self.credit_col)
        if debit_raw and parse_amount(debit_raw) > 0:
            entry_type, cents = EntryType.debit, parse_amount(debit_raw)
        elif credit_raw and parse_amount(credit_raw) > 0:
            entry_type, cents = EntryType.credit, parse_amount(credit_raw)
        else:
            amount_raw = self._cell(row, self.amount_col)
            if not amount_raw:
                raise ValueError("Missing amount")
            signed = parse_amount(amount_raw, allow_negative=True)
            marker = self._cell(row, self.type_col).lower()
            if marker in {"cr", "credit"} and signed > 0:
                entry_type = EntryType.credit
            else:
                entry_type = EntryType.debit
            cents = abs(signed)
        if cents <= 0:
            raise ValueError("Amount must be greater than 0")

        return ImportTransaction(
            date=txn_date,
            description=description,
            amount_cents=cents,
            type=entry_type,
            category=categorize(description),
        )


def _read_rows(
    header: Sequence[Optional[str]],
    rows: Sequence[Sequence[Optional[str]]],
    transactions: list[ImportTransaction],
    errors: list[str],
    *,
    first_row_number: int = 1,
) -> None:
    reader = _RowReader(header)
    for offset, row in enumerate(rows):
        if not any((cell or "").strip() for cell in row):
            continue
        try:
            transactions.append(reader.read(row))
        except ValueError as exc:
            errors.append(f"Row {first_row_number + offset}: {exc}")


def parse_csv_statement(content: str) -> tuple[list[ImportTransaction], list[str]]:
    lines = list(csv.reader(io.StringIO(content)))
    transactions: list[ImportTransaction] = []
    errors: list[str] = []
    for idx, line in enumerate(lines):
        if _RowReader(line).usable:
            _read_rows(
                line, lines[idx + 1 :], transactions, errors, first_row_number=1
            )
            return transactions, errors
    raise ValueError("Could not find a header row with date, description and amount")


def _parse_pdf_text(text: str) -> list[ImportTransaction]:
    transactions: list[ImportTransaction] = []
    for line in text.splitlines():
        match = _TEXT_LINE.match(line.strip())
        if not match:
            continue
        try:
            txn_date = parse_date(match.group("date"))
            signed = parse_amount(match.group("amount"), allow_negative=True)
        except ValueError:
            continue
        marker = (match.group("marker") or "").lower()
        entry_type = EntryType.credit if marker == "cr" else EntryType.debit
        description = match.group("description").strip()
        if signed == 0:
            continue
        transactions.append(
            ImportTransaction(
                date=txn_date,
                description=description,
                amount_cents=abs(signed),
                type=entry_type,
                category=categorize(description),
            )
        )
    return transactions


def parse_pdf_statement(content: bytes) -> tuple[list[ImportTransaction], list[str]]:
    transactions: list[ImportTransaction] = []
    errors: list[str] = []
    text_pages: list[str] = []
    with pdfplumber.open(io.BytesIO(content)) as pdf:
        for page in pdf.pages:
            for table in page.extract_tables() or []:
                for idx, header in enumerate(table):
                    if _RowReader(header).usable:
                        _read_rows(
                            header,
                            table[idx + 1 :],
                            transactions,
                            errors,
                            first_row_number=idx + 2,
                        )
                        break
            text_pages.append(page.extract_text() or "")
    if not transactions:
        transactions = _parse_pdf_text("\n".join(text_pages))
    return transactions, errors


def parse_statement(content: bytes, filename: str) -> ParsedStatement:
    extension = check_statement_upload(filename, len(content))
    if extension == "csv":
        text = content.decode("utf-8-sig", errors="replace")
        transactions, errors = parse_csv_statement(text)
    else:
        transactions, errors = parse_pdf_statement(content)

    for message in errors:
        logger.warning(f"statement_row_skipped: file={filename} {message}")
    if not transactions:
        raise ValueError("No transactions found in statement")

    debits = sum(1 for t in transactions if t.type == EntryType.debit)
    detected = sorted(
        {t.category for t in transactions if t.category != UNCATEGORIZED}
    )
    logger.info(
        f"statement_parsed: file={filename} rows={len(transactions)} "
        f"skipped={len(errors)}"
    )
    return ParsedStatement(
        transactions=transactions,
        available_categories=detected,
        summary=BatchSummary(
            total=len(transactions), debits=debits, credits=len(transactions) - debits
        ),
        errors=errors,
    )
