"""Income, expense and profit rollups over the in-memory collections.

Every function here is read-only. Collections may mix ``Transaction``,
``ExpenseRecord`` (always an expense) and ``RentPayment`` (income once it is
paid or partially paid). Expense templates never count.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Sequence, Union

from models import RecurringFrequency, TransactionType
from periods import Period, months_elapsed_in_year, parse_local_date
from recurrence import template_frequency
from schemas import ExpenseRecord, Property, RentPayment, Transaction


logger = logging.getLogger(__name__)

UNASSIGNED = "unassigned"
CENT = Decimal("0.01")

LedgerEntry = Union[Transaction, ExpenseRecord, RentPayment]


@dataclass
class MonthTotals:
    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")

    @property
    def net(self) -> Decimal:
        return self.income - self.expense


@dataclass
class PropertyTotals:
    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")
    profit: Decimal = Decimal("0")


@dataclass(frozen=True)
class PropertyFinancials:
    property_id: str
    name: str
    ytd_rent: Decimal
    ytd_expenses: Decimal
    ytd_profit: Decimal
    monthly_rent: Decimal
    avg_monthly_expenses: Decimal
    monthly_net: Decimal


@dataclass
class PortfolioSummary:
    rows: list[PropertyFinancials]
    ytd_rent: Decimal = Decimal("0")
    ytd_expenses: Decimal = Decimal("0")
    ytd_profit: Decimal = Decimal("0")


@dataclass
class RecurringCommitments:
    monthly_total: Decimal = Decimal("0")
    template_count: int = 0
    by_category: dict[str, Decimal] = field(default_factory=dict)


def _entry_type(entry: LedgerEntry) -> Optional[TransactionType]:
    if isinstance(entry, ExpenseRecord):
        return None if entry.is_template else TransactionType.expense
    if isinstance(entry, RentPayment):
        return TransactionType.income if entry.is_collected else None
    return entry.type


def _entry_date(entry: LedgerEntry) -> Optional[date]:
    if isinstance(entry, RentPayment):
        if entry.date_paid is not None:
            return entry.date_paid
        return parse_local_date(f"{entry.month}-01") if entry.month else None
    return entry.date


def _matches_property(entry: LedgerEntry, property_id: Optional[str]) -> bool:
    return not property_id or entry.property_id == property_id


def total_by_type(
    records: Iterable[LedgerEntry],
    type: TransactionType,
    property_id: Optional[str] = None,
) -> Decimal:
    return sum(
        (
            entry.amount
            for entry in records
            if _entry_type(entry) == type and _matches_property(entry, property_id)
        ),
        Decimal("0"),
    )


def total_income(
    records: Iterable[LedgerEntry], property_id: Optional[str] = None
) -> Decimal:
    return total_by_type(records, TransactionType.income, property_id)


def total_expenses(
    records: Iterable[LedgerEntry], property_id: Optional[str] = None
) -> Decimal:
    return total_by_type(records, TransactionType.expense, property_id)


def profit(records: Sequence[LedgerEntry], property_id: Optional[str] = None) -> Decimal:
    return total_income(records, property_id) - total_expenses(records, property_id)


def monthly_breakdown(records: Iterable[LedgerEntry]) -> dict[str, MonthTotals]:
    breakdown: dict[str, MonthTotals] = {}
    for entry in records:
        entry_type = _entry_type(entry)
        entry_date = _entry_date(entry)
        if entry_type is None or entry_date is None:
            continue
        totals = breakdown.setdefault(entry_date.isoformat()[:7], MonthTotals())
        if entry_type == TransactionType.income:
            totals.income += entry.amount
        else:
            totals.expense += entry.amount
    return breakdown


def recent_months(
    breakdown: dict[str, MonthTotals], limit: int = 12
) -> list[tuple[str, MonthTotals]]:
    return sorted(breakdown.items(), key=lambda item: item[0], reverse=True)[:limit]


def property_breakdown(records: Iterable[LedgerEntry]) -> dict[str, PropertyTotals]:
    breakdown: dict[str, PropertyTotals] = {}
    for entry in records:
        entry_type = _entry_type(entry)
        if entry_type is None:
            continue
        totals = breakdown.setdefault(entry.property_id or UNASSIGNED, PropertyTotals())
        if entry_type == TransactionType.income:
            totals.income += entry.amount
        else:
            totals.expense += entry.amount
        totals.profit = totals.income - totals.expense
    return breakdown


def filter_transactions(
    records: Iterable[Transaction],
    type: Optional[TransactionType] = None,
    property_id: Optional[str] = None,
) -> list[Transaction]:
    return [
        txn
        for txn in records
        if (type is None or txn.type == type)
        and (property_id is None or txn.property_id == property_id)
    ]


def within_period(records: Iterable[LedgerEntry], period: Period) -> list[LedgerEntry]:
    result = []
    for entry in records:
        entry_date = _entry_date(entry)
        if entry_date is not None and period.contains(entry_date):
            result.append(entry)
    return result


def _in_year(value: Optional[date], year: int) -> bool:
    return value is not None and value.year == year


def property_ytd_financials(
    prop: Property,
    rent_payments: Iterable[RentPayment],
    expenses: Iterable[ExpenseRecord],
    today: date,
) -> PropertyFinancials:
    ytd_rent = sum(
        (
            payment.amount
            for payment in rent_payments
            if payment.property_id == prop.id
            and payment.is_collected
            and _in_year(_entry_date(payment), today.year)
        ),
        Decimal("0"),
    )
    ytd_expenses = sum(
        (
            expense.amount
            for expense in expenses
            if expense.property_id == prop.id
            and not expense.is_template
            and _in_year(expense.date, today.year)
        ),
        Decimal("0"),
    )
    avg_monthly = (ytd_expenses / months_elapsed_in_year(today)).quantize(
        CENT, rounding=ROUND_HALF_UP
    )
    return PropertyFinancials(
        property_id=prop.id,
        name=prop.name,
        ytd_rent=ytd_rent,
        ytd_expenses=ytd_expenses,
        ytd_profit=ytd_rent - ytd_expenses,
        monthly_rent=prop.monthly_rent,
        avg_monthly_expenses=avg_monthly,
        monthly_net=prop.monthly_rent - avg_monthly,
    )


_SORT_KEYS = {
    "name": lambda row: row.name.lower(),
    "rent": lambda row: row.ytd_rent,
    "expenses": lambda row: row.ytd_expenses,
    "profit": lambda row: row.ytd_profit,
}


def portfolio_ytd(
    properties: Iterable[Property],
    rent_payments: Sequence[RentPayment],
    expenses: Sequence[ExpenseRecord],
    today: date,
    *,
    sort_by: str = "profit",
    descending: bool = True,
) -> PortfolioSummary:
    if sort_by not in _SORT_KEYS:
        raise ValueError(f"Cannot sort by '{sort_by}'")
    rows = [
        property_ytd_financials(prop, rent_payments, expenses, today)
        for prop in properties
    ]
    rows.sort(key=_SORT_KEYS[sort_by], reverse=descending)
    summary = PortfolioSummary(rows=rows)
    for row in rows:
        summary.ytd_rent += row.ytd_rent
        summary.ytd_expenses += row.ytd_expenses
        summary.ytd_profit += row.ytd_profit
    return summary


_MONTHLY_DIVISOR = {
    RecurringFrequency.monthly: 1,
    RecurringFrequency.quarterly: 3,
    RecurringFrequency.annually: 12,
}


def recurring_commitments(expenses: Iterable[ExpenseRecord]) -> RecurringCommitments:
    """Monthly-equivalent cost of every expense template."""
    result = RecurringCommitments()
    for expense in expenses:
        if not expense.is_template:
            continue
        try:
            frequency = template_frequency(expense)
        except ValueError as exc:
            logger.warning(
                "recurring_commitment_skipped: template=%s reason=%s", expense.id, exc
            )
            continue
        monthly = (expense.amount / _MONTHLY_DIVISOR[frequency]).quantize(
            CENT, rounding=ROUND_HALF_UP
        )
        result.monthly_total += monthly
        result.template_count += 1
        result.by_category[expense.category] = (
            result.by_category.get(expense.category, Decimal("0")) + monthly
        )
    return result
