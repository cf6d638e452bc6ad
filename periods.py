from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Optional
from zoneinfo import ZoneInfo


class PeriodType(str, Enum):
    today = "today"
    week = "week"
    month = "month"
    year = "year"
    all = "all"


ROLLING_PERIOD_TYPES = frozenset({PeriodType.week, PeriodType.month, PeriodType.year})

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class StatsWindow:
    """Concrete bounds of a period. ``None`` on either side means open."""

    start: Optional[datetime]
    end: Optional[datetime]


def local_now(timezone: str) -> datetime:
    # Entries store naive wall-clock times, so "now" is naive too.
    return datetime.now(ZoneInfo(timezone)).replace(tzinfo=None)


def start_of_day(d: date) -> datetime:
    return datetime.combine(d, time.min)


def end_of_day(d: date) -> datetime:
    return datetime.combine(d, time.max)


def start_of_month(moment: datetime) -> datetime:
    return datetime(moment.year, moment.month, 1)


def add_months(d: date, count: int) -> date:
    """First day of the month ``count`` months after ``d`` (negative goes back)."""
    index = d.year * 12 + (d.month - 1) + count
    return date(index // 12, index % 12 + 1, 1)


def month_window(offset_month: int, now: datetime) -> tuple[datetime, datetime]:
    if offset_month < 0:
        raise ValueError("offset_month must be zero or positive")
    first = add_months(now.date(), -offset_month)
    last = add_months(first, 1) - date.resolution
    return start_of_day(first), end_of_day(last)


def months_between(now: datetime, earlier: datetime) -> int:
    return (now.year - earlier.year) * 12 + (now.month - earlier.month)


def month_label(moment: datetime) -> str:
    return moment.strftime("%B %Y")


def days_in_window(start: datetime, end: datetime) -> int:
    """Whole days between the bounds, counting both ends."""
    return (end - start) // ONE_DAY + 1


def resolve_stats_period(
    period_type: PeriodType,
    offset: int = 0,
    *,
    now: datetime,
    week_start: int = 6,
) -> StatsWindow:
    period_type = PeriodType(period_type)
    if offset < 0:
        raise ValueError("Period offset must be zero or positive")
    today = now.date()

    if period_type == PeriodType.all:
        return StatsWindow(None, None)
    if period_type == PeriodType.today:
        day = today - timedelta(days=offset)
        return StatsWindow(start_of_day(day), end_of_day(day))
    if period_type == PeriodType.week:
        first = today - timedelta(days=(today.weekday() - week_start) % 7)
        first -= timedelta(weeks=offset)
        return StatsWindow(start_of_day(first), end_of_day(first + timedelta(days=6)))
    if period_type == PeriodType.month:
        start, end = month_window(offset, now)
        return StatsWindow(start, end)

    year = today.year - offset
    return StatsWindow(
        start_of_day(date(year, 1, 1)), end_of_day(date(year, 12, 31))
    )
