"""
Reporting periods: resolve a weekly/monthly window (or explicit bounds) into an
inclusive calendar-day range that never extends past ``today``, and count the
Monday–Friday days in it.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum

from app.core.errors import InvalidRange


class Period(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date

    def days(self) -> list[date]:
        """Every calendar day in the range, ascending. Empty if start > end."""
        out: list[date] = []
        cur = self.start
        while cur <= self.end:
            out.append(cur)
            cur += timedelta(days=1)
        return out


def parse_period(raw: str | None) -> Period:
    """Unknown or missing period names fall back to weekly."""
    try:
        return Period(raw)
    except ValueError:
        return Period.WEEKLY


def parse_date_param(val: str | None) -> date | None:
    """``YYYY-MM-DD`` or a full ISO datetime (its date part is used)."""
    if val is None or not val.strip():
        return None
    val = val.strip()
    try:
        return date.fromisoformat(val)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(val.replace("Z", "+00:00")).date()
    except ValueError:
        raise InvalidRange(f"Invalid date: {val!r}") from None


def _monday_of(d: date) -> date:
    # weekday(): Monday=0 … Sunday=6, so Sunday closes the previous week
    return d - timedelta(days=d.weekday())


def _last_day(year: int, month: int) -> date:
    if month == 12:
        return date(year + 1, 1, 1) - timedelta(days=1)
    return date(year, month + 1, 1) - timedelta(days=1)


def resolve_range(
    period: Period,
    today: date,
    custom_start: date | None = None,
    custom_end: date | None = None,
) -> DateRange:
    if custom_start is not None or custom_end is not None:
        start = custom_start or today
        end = min(custom_end or today, today)
    elif period == Period.WEEKLY:
        start = _monday_of(today)
        end = min(start + timedelta(days=6), today)
    else:
        start = date(today.year, today.month, 1)
        end = min(_last_day(today.year, today.month), today)

    if start > end:
        raise InvalidRange(f"Range start {start} is after end {end}")
    return DateRange(start=start, end=end)


def count_business_days(date_range: DateRange) -> int:
    """Monday–Friday days in the range, inclusive. Public holidays are not excluded."""
    return sum(1 for d in date_range.days() if d.weekday() < 5)


def previous_range(date_range: DateRange) -> DateRange:
    """The window of equal length ending the day before ``date_range`` starts."""
    prev_end = date_range.start - timedelta(days=1)
    prev_start = prev_end - (date_range.end - date_range.start)
    return DateRange(start=prev_start, end=prev_end)
