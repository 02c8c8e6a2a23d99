from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterator, Union

DayLike = Union[str, date, datetime]


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def today_utc() -> date:
    return now_utc().date()


def parse_day(value: DayLike) -> date:
    """Normalise YYYY-MM-DD strings, datetimes and dates to a calendar date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value.strip()[:10])
    raise ValueError(f"Unsupported date value: {value!r}")


def iter_stay_dates(check_in: DayLike, check_out: DayLike) -> Iterator[date]:
    """Yield every night of a stay: check-in inclusive, check-out exclusive."""
    current = parse_day(check_in)
    end = parse_day(check_out)
    while current < end:
        yield current
        current = current + timedelta(days=1)


def round_money(value: Any) -> float:
    """Round to 2 decimal places with HALF_UP, independent of float repr noise."""
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def to_float(value: Any, default: float = 0.0) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def id_str(value: Any) -> str:
    """Reference ids may be stored as ObjectId, str or an embedded {_id: ...}."""
    if isinstance(value, dict):
        value = value.get("_id")
    return "" if value is None else str(value)
