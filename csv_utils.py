import csv
import re
from decimal import Decimal
from io import StringIO
from typing import Sequence

from schemas import ExpenseRecord, Transaction


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


def _money(amount: Decimal) -> str:
    return f"{amount:.2f}"


def export_transactions(transactions: Sequence[Transaction]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(["Date", "Type", "Amount", "Category", "Property", "Description"])
    for txn in transactions:
        writer.writerow(
            [
                txn.date.isoformat() if txn.date else "",
                txn.type.value,
                _money(txn.amount),
                sanitize_csv_value(txn.category or ""),
                sanitize_csv_value(txn.property_id or ""),
                sanitize_csv_value(txn.description or ""),
            ]
        )
    return output.getvalue()


def export_expenses(expenses: Sequence[ExpenseRecord]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(
        ["Date", "Amount", "Category", "Property", "Vendor", "Description", "Recurring"]
    )
    for expense in expenses:
        if expense.is_template:
            continue
        writer.writerow(
            [
                expense.date.isoformat() if expense.date else "",
                _money(expense.amount),
                sanitize_csv_value(expense.category),
                sanitize_csv_value(expense.property_name or expense.property_id or ""),
                sanitize_csv_value(expense.vendor or ""),
                sanitize_csv_value(expense.description or ""),
                expense.generated_for_month or "",
            ]
        )
    return output.getvalue()
