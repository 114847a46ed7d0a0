"""Timestamp helpers shared by services. All values are timezone-aware UTC."""

from datetime import date, datetime, timezone
from typing import Optional, Union


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Union[str, datetime, date, None]) -> Optional[datetime]:
    """
    Parse a Supabase timestamp or date column into an aware UTC datetime.

    Plain dates ("2025-06-30") become midnight UTC; naive timestamps are
    assumed to be UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def months_between(earlier: datetime, later: datetime) -> int:
    """Calendar-month difference (day of month ignored), never negative."""
    months = (later.year - earlier.year) * 12 + (later.month - earlier.month)
    return max(months, 0)


def subtract_months(moment: datetime, months: int) -> datetime:
    """Same day-of-month `months` earlier, clamped to the month's last day."""
    total = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(total, 12)
    month += 1
    day = min(moment.day, _days_in_month(year, month))
    return moment.replace(year=year, month=month, day=day)


def _days_in_month(year: int, month: int) -> int:
    if month == 12:
        return 31
    return (date(year, month + 1, 1) - date(year, month, 1)).days
