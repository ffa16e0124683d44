from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Union
from zoneinfo import ZoneInfo

from config import get_settings


DateLike = Union[date, str, None]


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    def contains(self, value: date) -> bool:
        return self.start <= value <= self.end


@dataclass(frozen=True)
class LeaseStatus:
    label: str
    urgency: str
    days: int


def _zone() -> ZoneInfo:
    return ZoneInfo(get_settings().timezone)


def local_now() -> datetime:
    return datetime.now(_zone())


def local_today() -> date:
    return local_now().date()


def to_local(value: datetime) -> datetime:
    """Aware datetimes are moved into the configured zone; naive ones are taken as local."""
    if value.tzinfo is None:
        return value
    return value.astimezone(_zone())


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def month_key(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def subtract_months(year: int, month: int, count: int) -> tuple[int, int]:
    total_months = year * 12 + (month - 1) - count
    return total_months // 12, total_months % 12 + 1


def parse_local_date(value: DateLike) -> Optional[date]:
    """Read a ``YYYY-MM-DD`` value as a plain calendar date.

    No UTC conversion is applied, so ``2026-03-01`` is March 1st in every zone.
    Blank or malformed values yield ``None``.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        year, month, day = (int(part) for part in text[:10].split("-"))
        return date(year, month, day)
    except ValueError:
        return None


def days_until(value: DateLike, today: Optional[date] = None) -> Optional[int]:
    target = parse_local_date(value)
    if target is None:
        return None
    today = today or local_today()
    return (target - today).days


def lease_status(lease_end: DateLike, today: Optional[date] = None) -> Optional[LeaseStatus]:
    days = days_until(lease_end, today)
    if days is None:
        return None
    if days < 0:
        return LeaseStatus("Expired", "high", days)
    if days <= 30:
        return LeaseStatus(f"{days}d left", "medium", days)
    if days <= 90:
        return LeaseStatus(f"{days}d left", "low", days)
    return LeaseStatus(f"{days}d left", "none", days)


def months_elapsed_in_year(today: date) -> int:
    return max(1, today.month)


def resolve_period(
    period: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
) -> Period:
    today = today or local_today()
    if not period or period == "all":
        return Period("all", date(1970, 1, 1), today)
    if period == "ytd":
        return Period("ytd", date(today.year, 1, 1), today)
    if period == "last_month":
        first_this = today.replace(day=1)
        last_month_end = first_this - date.resolution
        last_month_start = last_month_end.replace(day=1)
        return Period("last_month", last_month_start, last_month_end)
    if period == "custom":
        if not start or not end:
            raise ValueError("Custom period requires start and end dates")
        start_date = date.fromisoformat(start)
        end_date = date.fromisoformat(end)
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        return Period("custom", start_date, end_date)
    if period != "this_month":
        raise ValueError(f"Unknown period '{period}'")

    first = today.replace(day=1)
    end_this = first.replace(day=days_in_month(first.year, first.month))
    return Period("this_month", first, end_this)
