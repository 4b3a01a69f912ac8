import csv
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from io import StringIO
from typing import Sequence

from aggregation import Report
from models import Expense

DATE_FORMATS = (
    "%Y-%m-%d",
    "%d.%m.%Y",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%d/%m/%y",
    "%d %b %Y",
    "%d-%b-%Y",
    "%d %b %y",
)

_DECIMAL_COMMA = re.compile(r"^-?\d+,\d{2}$")


def sanitize_csv_value(value: str) -> str:
    """
    Sanitize CSV values to prevent formula injection by prefixing dangerous patterns with tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    formula_triggers = ("=", "+", "-", "@", "\t", "\r")

    if value.startswith(formula_triggers):
        return "\t" + value

    dangerous_patterns = [
        r"^cmd\s*",
        r"^powershell\s*",
        r"^bash\s*",
        r"^sh\s*",
        r"^\.",
        r"^http[s]?://",
    ]

    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def parse_date(value: str) -> date:
    value = " ".join(value.strip().split())
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Unrecognized date '{value}'")


def parse_amount(value: str, *, allow_negative: bool = False) -> int:
    clean = (
        value.strip()
        .replace("€", "")
        .replace("₹", "")
        .replace("$", "")
        .replace("Rs.", "")
        .replace(" ", "")
    )
    if "." not in clean and _DECIMAL_COMMA.match(clean):
        clean = clean.replace(",", ".")
    else:
        # thousands and lakh grouping
        clean = clean.replace(",", "")
    try:
        amount = Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc
    cents = int((amount * 100).quantize(Decimal("1")))
    if cents < 0 and not allow_negative:
        raise ValueError("Amount must be positive")
    return cents


def format_cents(cents: int) -> str:
    return f"{cents / 100:.2f}"


def export_expenses(expenses: Sequence[Expense]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(["Date", "Category", "Description", "Tags", "Amount"])
    for expense in expenses:
        writer.writerow(
            [
                expense.date.isoformat(),
                sanitize_csv_value(expense.category),
                sanitize_csv_value(expense.description),
                sanitize_csv_value("; ".join(expense.tag_names)),
                format_cents(expense.amount_cents),
            ]
        )
    return output.getvalue()


def category_status(spent_cents: int, limit_cents: int) -> str:
    if spent_cents > limit_cents:
        return "Over"
    if spent_cents == 0:
        return "Unused"
    return "OK"


def export_report(report: Report) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(["Category", "Limit", "Spent", "Remaining", "Status"])
    for row in report.categories:
        writer.writerow(
            [
                sanitize_csv_value(row.name),
                format_cents(row.limit_cents),
                format_cents(row.spent_cents),
                format_cents(row.remaining_cents),
                category_status(row.spent_cents, row.limit_cents),
            ]
        )
    writer.writerow([])
    writer.writerow(["Summary"])
    writer.writerow(["Salary", format_cents(report.salary_cents)])
    writer.writerow(
        ["Fixed Deductions", format_cents(report.total_fixed_deductions_cents)]
    )
    writer.writerow(["Total Spent", format_cents(report.total_spent_cents)])
    writer.writerow(["Total Savings", format_cents(report.current_savings_cents)])
    return output.getvalue()
