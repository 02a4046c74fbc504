"""Calendar arithmetic for subscription periods and tz normalization of stored timestamps."""
import calendar
from datetime import datetime, timezone


def add_months(dt: datetime, months: int) -> datetime:
    """Same day `months` later; clamped to the last day of a shorter month (Jan 31 + 1 -> Feb 28/29)."""
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def add_years(dt: datetime, years: int) -> datetime:
    return add_months(dt, 12 * years)


def as_utc(dt: datetime | None) -> datetime | None:
    """Stored timestamps may come back naive (SQLite); they are always UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
