import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Optional, Sequence

from models import NotificationLevel, RecurringFrequency
from periods import (
    days_in_month,
    local_now,
    local_today,
    month_key,
    subtract_months,
    to_local,
)
from schemas import ExpenseRecord

if TYPE_CHECKING:  # pragma: no cover
    from services import ExpenseService


logger = logging.getLogger(__name__)

# Current month plus this many months back.
BACKFILL_MONTHS = 2
GENERATED_BY = "System (auto-generated)"


@dataclass(frozen=True)
class TemplateSchedule:
    frequency: RecurringFrequency
    due_day: int
    start_year: int
    start_month: int

    @property
    def start_key(self) -> str:
        return month_key(self.start_year, self.start_month)

    def matches(self, month: int) -> bool:
        if self.frequency == RecurringFrequency.monthly:
            return True
        if self.frequency == RecurringFrequency.quarterly:
            return (month - self.start_month) % 3 == 0
        return month == self.start_month


def template_frequency(template: ExpenseRecord) -> RecurringFrequency:
    raw = template.recurring_frequency or RecurringFrequency.monthly.value
    try:
        return RecurringFrequency(raw)
    except ValueError as exc:
        raise ValueError(f"Unknown recurring frequency '{raw}'") from exc


def _parse_due_day(value: Any) -> int:
    if value is None or (isinstance(value, str) and not value.strip()):
        return 1
    try:
        day = int(str(value).strip())
    except ValueError as exc:
        raise ValueError(f"Invalid due day '{value}'") from exc
    if day == 0:
        return 1
    if not 1 <= day <= 31:
        raise ValueError(f"Due day out of range: {day}")
    return day


def template_schedule(template: ExpenseRecord, *, fallback: date) -> TemplateSchedule:
    frequency = template_frequency(template)
    due_day = _parse_due_day(template.due_day)
    if template.created_at is not None:
        created = to_local(template.created_at)
        start_year, start_month = created.year, created.month
    else:
        start_year, start_month = fallback.year, fallback.month
    return TemplateSchedule(frequency, due_day, start_year, start_month)


def _build_instance(
    template: ExpenseRecord, year: int, month: int, day: int, now: datetime
) -> ExpenseRecord:
    key = month_key(year, month)
    return ExpenseRecord(
        id=f"{int(now.timestamp() * 1000)}-{template.id}-{key}",
        created_at=now,
        created_by=GENERATED_BY,
        property_id=template.property_id,
        property_name=template.property_name,
        category=template.category,
        description=template.description,
        amount=template.amount,
        date=date(year, month, day),
        vendor=template.vendor,
        notes=template.notes,
        recurring=False,
        is_template=False,
        generated_from_template=template.id,
        generated_for_month=key,
    )


def generate_due_instances(
    all_expenses: Sequence[ExpenseRecord],
    as_of: Optional[date] = None,
    *,
    now: Optional[datetime] = None,
) -> list[ExpenseRecord]:
    """Return the template instances missing from ``all_expenses``.

    Looks at the month of ``as_of`` and the two months before it. A month is
    filled when the template's frequency selects it, it is not earlier than the
    month the template was created, and no instance for the same template and
    month exists yet. The due day is capped to the length of the month.
    The input is not modified.
    """
    templates = [expense for expense in all_expenses if expense.is_template]
    if not templates:
        return []
    as_of = as_of or local_today()
    now = now or local_now()

    existing = {
        (expense.generated_from_template, expense.generated_for_month)
        for expense in all_expenses
        if expense.generated_from_template
    }
    created: list[ExpenseRecord] = []
    for template in templates:
        try:
            schedule = template_schedule(template, fallback=as_of)
        except ValueError as exc:
            logger.warning(
                "recurring_template_skipped: template=%s reason=%s", template.id, exc
            )
            continue

        for offset in range(BACKFILL_MONTHS + 1):
            year, month = subtract_months(as_of.year, as_of.month, offset)
            key = month_key(year, month)
            if not schedule.matches(month):
                continue
            if key < schedule.start_key:
                continue
            if (template.id, key) in existing:
                continue
            day = min(schedule.due_day, days_in_month(year, month))
            created.append(_build_instance(template, year, month, day, now))
            existing.add((template.id, key))
    return created


class RecurringExpenseEngine:
    def __init__(self, expenses: "ExpenseService") -> None:
        self.expenses = expenses

    def pending(self, as_of: Optional[date] = None) -> list[ExpenseRecord]:
        return generate_due_instances(self.expenses.list(), as_of)

    def catch_up(self, as_of: Optional[date] = None) -> list[ExpenseRecord]:
        """Generate missing instances and store them in a single write.

        Generation runs against the collection as it is at write time, so
        overlapping runs cannot add the same month twice.
        """
        as_of = as_of or local_today()
        generated: list[ExpenseRecord] = []

        def append_due(current: list[ExpenseRecord]) -> Optional[list[ExpenseRecord]]:
            generated.extend(generate_due_instances(current, as_of))
            if not generated:
                return None
            return current + generated

        self.expenses.mutate(append_due)
        if generated:
            logger.info(
                "recurring_catch_up: as_of=%s generated=%d", as_of, len(generated)
            )
            noun = "expense" if len(generated) == 1 else "expenses"
            self.expenses.notify(
                f"{len(generated)} recurring {noun} generated",
                NotificationLevel.success,
            )
        return generated
