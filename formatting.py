from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Union

from periods import DateLike, parse_local_date


Amount = Union[Decimal, int, float, str, None]


def _to_decimal(amount: Amount) -> Decimal:
    if amount is None or amount == "":
        return Decimal("0")
    try:
        return Decimal(str(amount))
    except InvalidOperation:
        return Decimal("0")


def _format(amount: Amount, places: int) -> str:
    value = _to_decimal(amount).quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.{places}f}"


def format_currency(amount: Amount) -> str:
    """Whole-dollar display, e.g. ``$1,235``."""
    return _format(amount, 0)


def format_currency_detailed(amount: Amount) -> str:
    return _format(amount, 2)


def format_date(value: DateLike) -> str:
    if value is None or value == "":
        return ""
    parsed = parse_local_date(value)
    if parsed is None:
        return str(value)
    return f"{parsed.strftime('%b')} {parsed.day}, {parsed.year}"


def format_month(key: Optional[str]) -> str:
    parsed = parse_local_date(f"{key}-01") if key else None
    if parsed is None:
        return key or ""
    return parsed.strftime("%b %Y")


def parse_amount(value: str, *, allow_negative: bool = False) -> Decimal:
    """Read typed money such as ``$1,234.50`` or ``1.234,50`` to cents."""
    clean = value.strip().replace("$", "").replace(" ", "")
    clean = clean.replace(",", ".")
    if clean.count(".") > 1:
        parts = clean.split(".")
        clean = "".join(parts[:-1]) + "." + parts[-1]
    try:
        amount = Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc
    if not amount.is_finite():
        raise ValueError("Invalid amount")
    amount = amount.quantize(Decimal("0.01"))
    if amount < 0 and not allow_negative:
        raise ValueError("Amount must be positive")
    return amount
