from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from formatting import (
    format_currency,
    format_currency_detailed,
    format_date,
    format_month,
    parse_amount,
)
from periods import (
    days_in_month,
    days_until,
    lease_status,
    parse_local_date,
    resolve_period,
    subtract_months,
    to_local,
)


def test_days_in_month():
    assert days_in_month(2024, 2) == 29
    assert days_in_month(2026, 2) == 28
    assert days_in_month(2026, 12) == 31


def test_subtract_months_crosses_year():
    assert subtract_months(2026, 2, 3) == (2025, 11)
    assert subtract_months(2026, 1, 0) == (2026, 1)
    assert subtract_months(2026, 1, 13) == (2024, 12)


def test_parse_local_date():
    assert parse_local_date("2026-03-01") == date(2026, 3, 1)
    assert parse_local_date("2026-03-01T23:30:00Z") == date(2026, 3, 1)
    assert parse_local_date(datetime(2026, 3, 1, 22, 0)) == date(2026, 3, 1)
    assert parse_local_date("") is None
    assert parse_local_date("garbage") is None
    assert parse_local_date(None) is None


def test_to_local_keeps_naive_and_converts_aware():
    naive = datetime(2026, 1, 1, 0, 30)
    assert to_local(naive) is naive

    aware = to_local(datetime(2026, 1, 1, 3, 0, tzinfo=timezone.utc))
    assert aware.utcoffset() is not None
    assert aware.timestamp() == datetime(2026, 1, 1, 3, 0, tzinfo=timezone.utc).timestamp()


def test_days_until_and_lease_status():
    today = date(2026, 3, 1)

    assert days_until("2026-03-10", today) == 9
    assert days_until("", today) is None
    assert lease_status("2026-02-20", today).label == "Expired"
    assert lease_status("2026-02-20", today).urgency == "high"
    assert lease_status("2026-03-31", today).urgency == "medium"
    assert lease_status("2026-05-01", today).urgency == "low"
    assert lease_status("2027-01-01", today).urgency == "none"
    assert lease_status(None, today) is None


def test_resolve_period():
    today = date(2026, 3, 15)

    assert resolve_period("ytd", None, None, today=today).start == date(2026, 1, 1)
    last = resolve_period("last_month", None, None, today=today)
    assert (last.start, last.end) == (date(2026, 2, 1), date(2026, 2, 28))
    this = resolve_period("this_month", None, None, today=today)
    assert this.end == date(2026, 3, 31)
    assert resolve_period(None, None, None, today=today).slug == "all"

    with pytest.raises(ValueError):
        resolve_period("custom", "2026-03-01", None, today=today)
    with pytest.raises(ValueError):
        resolve_period("fortnight", None, None, today=today)


def test_currency_formatting():
    assert format_currency(1234.5) == "$1,235"
    assert format_currency(None) == "$0"
    assert format_currency_detailed("1234.5") == "$1,234.50"
    assert format_currency_detailed(-40) == "-$40.00"


def test_date_formatting():
    assert format_date("2026-01-05") == "Jan 5, 2026"
    assert format_date("not a date") == "not a date"
    assert format_date(None) == ""
    assert format_month("2026-02") == "Feb 2026"


def test_parse_amount_accepts_common_formats():
    assert parse_amount("$1,234.50") == Decimal("1234.50")
    assert parse_amount("1.234,50") == Decimal("1234.50")
    assert parse_amount(" 12 ") == Decimal("12.00")
    assert parse_amount("-5", allow_negative=True) == Decimal("-5.00")


def test_parse_amount_rejects_bad_input():
    for text in ("twelve", "", "inf", "-5"):
        with pytest.raises(ValueError):
            parse_amount(text)
