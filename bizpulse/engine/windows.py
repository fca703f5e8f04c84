"""
Window resolution for report queries.

Turns optional caller-supplied ISO date strings into concrete time windows,
derives the comparison window used for growth metrics and picks timeline
bucket granularity.

All datetimes are naive local time, matching how transactional records are
stored.
"""

import calendar
import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional, Union

from bizpulse.exceptions import InvalidDateRange, InvalidReportParameter
from bizpulse.models.enums import Interval

DateInput = Union[str, date, datetime, None]


@dataclass(frozen=True)
class Window:
    """
    A time window used to scope aggregation.

    The start instant is always included. `closed` windows also include their
    end instant; comparison windows are open on the end so they never share
    an instant with the window they precede.
    """

    start: datetime
    end: datetime
    closed: bool = True

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def days(self) -> int:
        """Span length in whole days, rounded up."""
        return math.ceil(self.duration.total_seconds() / 86400)

    def contains(self, instant: datetime) -> bool:
        if instant < self.start:
            return False
        return instant <= self.end if self.closed else instant < self.end

    def to_dict(self) -> dict:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


def start_of_day(value: datetime) -> datetime:
    return datetime.combine(value.date(), time.min)


def end_of_day(value: datetime) -> datetime:
    return datetime.combine(value.date(), time.max)


def start_of_month(value: datetime) -> datetime:
    return datetime(value.year, value.month, 1)


def add_months(value: datetime, months: int) -> datetime:
    """Shift by calendar months, clamping the day to the target month's length."""
    index = value.year * 12 + (value.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def _parse(value: DateInput, end: bool) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime.combine(value, time.max if end else time.min)
    elif isinstance(value, str):
        text = value.strip()
        try:
            if len(text) == 10:
                day = date.fromisoformat(text)
                return datetime.combine(day, time.max if end else time.min)
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError as e:
            raise InvalidDateRange(f"Unparsable date: {value!r}", value=value) from e
    else:
        raise InvalidDateRange(f"Unsupported date value: {value!r}", value=str(value))

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def resolve_window(
    start_date: DateInput = None,
    end_date: DateInput = None,
    now: Optional[datetime] = None,
) -> Window:
    """
    Resolve caller-supplied bounds into a closed window.

    Args:
        start_date: ISO date/datetime string; defaults to the first instant of
            the current calendar month
        end_date: ISO date/datetime string; defaults to the last instant of
            the current day. Date-only strings cover their whole day.
        now: Reference time (defaults to the local clock)

    Returns:
        Resolved Window

    Raises:
        InvalidDateRange: If a bound cannot be parsed or start is after end
    """
    now = now or datetime.now()
    start = _parse(start_date, end=False) or start_of_month(now)
    end = _parse(end_date, end=True) or end_of_day(now)
    if start > end:
        raise InvalidDateRange(
            "start_date must not be after end_date", start=start.isoformat(), end=end.isoformat()
        )
    return Window(start, end)


def previous_window(window: Window) -> Window:
    """Same-length window ending exactly where `window` begins."""
    return Window(window.start - window.duration, window.start, closed=False)


def today_window(now: Optional[datetime] = None) -> Window:
    now = now or datetime.now()
    return Window(start_of_day(now), end_of_day(now))


def trailing_window(now: datetime, days: int = 0, months: int = 0, align_month: bool = False) -> Window:
    """
    Lookback window ending now.

    Args:
        now: Reference time; the window ends at this instant
        days: Days to look back
        months: Calendar months to look back
        align_month: Start at the first day of the resulting month
    """
    start = add_months(now, -months) - timedelta(days=days)
    if align_month:
        start = start_of_month(start)
    return Window(start, now)


def resolve_interval(window: Window, interval: Optional[str] = None) -> str:
    """
    Pick timeline bucket granularity.

    Explicit intervals are returned as-is; `auto` (or None) derives one from
    the span: >365 days -> year, >90 -> month, >30 -> week, else day.

    Raises:
        InvalidReportParameter: If the interval is not recognized
    """
    value = (interval or Interval.AUTO.value).lower()
    try:
        value = Interval(value).value
    except ValueError as e:
        raise InvalidReportParameter(f"Unsupported interval: {interval}", interval=interval) from e

    if value != Interval.AUTO.value:
        return value

    days = window.days
    if days > 365:
        return Interval.YEAR.value
    if days > 90:
        return Interval.MONTH.value
    if days > 30:
        return Interval.WEEK.value
    return Interval.DAY.value
