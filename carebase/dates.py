"""
Calendar date math for the shift schedule: the dates a week or month grid
shows, and which shifts fall on each of those dates.

Weeks start on Sunday. Everything here is a pure function of its inputs;
the only clock access is `is_today`, and its clock is injectable.
"""

import calendar
import logging
from collections.abc import Callable, Iterable
from datetime import date, datetime, timedelta, tzinfo
from enum import Enum

from carebase.models import CalendarDate, DateBucketMap, Shift

logger = logging.getLogger(__name__)

MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)

ONE_DAY = timedelta(days=1)


class ViewMode(str, Enum):
    WEEK = "week"
    MONTH = "month"


def to_calendar_date(instant: date | datetime, tz: tzinfo | None = None) -> CalendarDate:
    """
    Truncate an instant to its date component.

    Aware datetimes are moved into `tz` first when one is given; naive
    datetimes are already local calendar time and are truncated as-is.
    """
    if isinstance(instant, datetime):
        if tz is not None and instant.tzinfo is not None:
            instant = instant.astimezone(tz)
        return instant.date()
    return instant


def is_same_day(a: date | datetime, b: date | datetime) -> bool:
    a, b = to_calendar_date(a), to_calendar_date(b)
    return (a.year, a.month, a.day) == (b.year, b.month, b.day)


def is_today(
    d: date | datetime,
    now_fn: Callable[[], datetime] | None = None,
    tz: tzinfo | None = None,
) -> bool:
    """
    Whether `d` falls on the current date. With `tz`, both `d` (when aware)
    and the clock reading are read in that timezone's calendar.
    """
    now = now_fn() if now_fn is not None else datetime.now(tz)
    return to_calendar_date(d, tz) == to_calendar_date(now, tz)


def weekday_index(day: date | datetime) -> int:
    """0=Sunday .. 6=Saturday, matching the grid's column order."""
    return (to_calendar_date(day).weekday() + 1) % 7


def start_of_week(anchor: date | datetime) -> CalendarDate:
    day = to_calendar_date(anchor)
    return day - timedelta(days=weekday_index(day))


def end_of_week(anchor: date | datetime) -> CalendarDate:
    return start_of_week(anchor) + timedelta(days=6)


def week_dates(anchor: date | datetime) -> list[CalendarDate]:
    """The 7 dates of the Sunday-started week containing `anchor`."""
    start = start_of_week(anchor)
    return [start + timedelta(days=i) for i in range(7)]


def month_dates(anchor: date | datetime) -> list[CalendarDate]:
    """
    Every date of the anchor's month, padded with the tail of the previous
    month and the head of the next one so the grid is made of whole weeks.
    """
    day = to_calendar_date(anchor)
    first = day.replace(day=1)
    last = day.replace(day=calendar.monthrange(day.year, day.month)[1])

    start = start_of_week(first)
    end = end_of_week(last)
    count = (end - start).days + 1
    return [start + timedelta(days=i) for i in range(count)]


def in_month(day: date | datetime, anchor: date | datetime) -> bool:
    """False for the padding dates `month_dates` adds around the month."""
    day, anchor = to_calendar_date(day), to_calendar_date(anchor)
    return (day.year, day.month) == (anchor.year, anchor.month)


def add_months(anchor: date | datetime, months: int) -> CalendarDate:
    """
    Move by whole calendar months keeping the day of month, clamped to the
    last day of a shorter target month (Jan 31 + 1 -> Feb 28/29).
    """
    day = to_calendar_date(anchor)
    index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def shift_anchor(
    anchor: date | datetime, view_mode: ViewMode, steps: int
) -> CalendarDate:
    """Move the anchor `steps` weeks or months (negative moves back)."""
    if view_mode == ViewMode.WEEK:
        return to_calendar_date(anchor) + timedelta(days=7 * steps)
    return add_months(anchor, steps)


def recurring_dates(
    start: date | datetime, weeks: int, weekdays: Iterable[int]
) -> list[CalendarDate]:
    """
    The dates of a weekly pattern: every day in the `weeks * 7` days from
    `start` whose `weekday_index` is one of `weekdays`, in order.
    """
    first = to_calendar_date(start)
    wanted = set(weekdays)
    days = (first + timedelta(days=i) for i in range(7 * max(weeks, 0)))
    return [day for day in days if weekday_index(day) in wanted]


def shift_dates(shift: Shift, tz: tzinfo | None = None) -> list[CalendarDate]:
    """
    Dates from the shift's start date through its end date inclusive.

    A shift ending exactly at midnight still reaches into that next date.
    A shift that ends before it starts covers no dates.
    """
    start = to_calendar_date(shift.scheduled_start, tz)
    end = to_calendar_date(shift.scheduled_end, tz)

    days = []
    current = start
    while current <= end:
        days.append(current)
        current += ONE_DAY
    return days


def bucket_shifts(shifts: Iterable[Shift], tz: tzinfo | None = None) -> DateBucketMap:
    """
    Map each calendar date to the shifts overlapping it.

    Multi-day shifts appear under every date they span. Order inside a
    bucket is not meaningful; use `shifts_on` for display order.
    """
    buckets: DateBucketMap = {}
    for shift in shifts:
        days = shift_dates(shift, tz)
        if not days:
            logger.debug(
                "shift %s ends before it starts, not bucketed", shift.id
            )
        for day in days:
            buckets.setdefault(day, []).append(shift)
    return buckets


def shifts_on(buckets: DateBucketMap, day: date | datetime) -> list[Shift]:
    """A date's bucket sorted by scheduled start."""
    return sorted(
        buckets.get(to_calendar_date(day), []),
        key=lambda s: s.scheduled_start,
    )


def bucket_keys(buckets: DateBucketMap) -> dict[str, list[str]]:
    """ISO date -> shift ids, for JSON responses and comparisons."""
    return {
        day.isoformat(): [s.id for s in shifts]
        for day, shifts in sorted(buckets.items())
    }
