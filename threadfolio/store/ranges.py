"""Date-range cache bookkeeping for the appointment store.

Everything here is a pure function of a state snapshot and a clock reading,
so garbage collection can be tested without timers.
"""

import calendar
from dataclasses import dataclass
from datetime import date, timedelta

STALE_AFTER_SECONDS = 5 * 60

VIEW_MONTH = "month"
VIEW_WEEK = "week"
VIEW_DAY = "day"
VIEW_LIST = "list"

# Days either side of a day view that are worth fetching ahead
DAY_PREFETCH_SPAN = 3
LIST_VIEW_MONTHS = 3


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar range [start_date, end_date]."""

    start_date: date
    end_date: date

    def __post_init__(self) -> None:
        if self.start_date > self.end_date:
            raise ValueError(f"start_date {self.start_date} is after end_date {self.end_date}")

    @property
    def key(self) -> str:
        return f"{self.start_date.isoformat()}_{self.end_date.isoformat()}"

    def contains(self, d: date) -> bool:
        return self.start_date <= d <= self.end_date

    def covers(self, other: "DateRange") -> bool:
        return self.start_date <= other.start_date and self.end_date >= other.end_date


@dataclass(frozen=True)
class LoadedRange:
    date_range: DateRange
    loaded_at: float
    stale_at: float

    def is_fresh(self, now: float) -> bool:
        return self.stale_at > now


def loaded_range(date_range: DateRange, now: float, stale_after: float = STALE_AFTER_SECONDS) -> LoadedRange:
    return LoadedRange(date_range=date_range, loaded_at=now, stale_at=now + stale_after)


def is_range_loaded(loaded: tuple[LoadedRange, ...], date_range: DateRange, now: float) -> bool:
    """True when one fresh entry covers the whole range."""
    return any(r.is_fresh(now) and r.date_range.covers(date_range) for r in loaded)


def replace_range(
    loaded: tuple[LoadedRange, ...], date_range: DateRange, now: float, stale_after: float
) -> tuple[LoadedRange, ...]:
    kept = tuple(r for r in loaded if r.date_range != date_range)
    return kept + (loaded_range(date_range, now, stale_after),)


def invalidate_ranges(loaded: tuple[LoadedRange, ...], bounds: DateRange) -> tuple[LoadedRange, ...]:
    """Drop entries fully inside ``bounds``; partially overlapping entries survive."""
    return tuple(r for r in loaded if not bounds.covers(r.date_range))


def fresh_ranges(
    loaded: tuple[LoadedRange, ...],
    now: float,
    *,
    keep_range: DateRange | None = None,
    stale_after: float = STALE_AFTER_SECONDS,
) -> tuple[LoadedRange, ...]:
    fresh = tuple(r for r in loaded if r.is_fresh(now))
    if keep_range is not None and not any(r.date_range == keep_range for r in fresh):
        fresh = fresh + (loaded_range(keep_range, now, stale_after),)
    return fresh


def is_covered(d: date, loaded: tuple[LoadedRange, ...]) -> bool:
    return any(r.date_range.contains(d) for r in loaded)


def add_months(d: date, months: int) -> date:
    """Shift by whole months, clamping the day to the target month's length."""
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    return date(year, month, min(d.day, calendar.monthrange(year, month)[1]))


def view_range(view: str, anchor: date) -> DateRange:
    """The range a calendar view shows around ``anchor``.

    Weeks start on Sunday. The list view shows the next three months.
    """
    if view == VIEW_MONTH:
        last_day = calendar.monthrange(anchor.year, anchor.month)[1]
        return DateRange(anchor.replace(day=1), anchor.replace(day=last_day))
    if view == VIEW_WEEK:
        start = anchor - timedelta(days=(anchor.weekday() + 1) % 7)
        return DateRange(start, start + timedelta(days=6))
    if view == VIEW_DAY:
        return DateRange(anchor, anchor)
    if view == VIEW_LIST:
        return DateRange(anchor, add_months(anchor, LIST_VIEW_MONTHS))
    raise ValueError(f"Unknown calendar view {view!r}")


def adjacent_ranges(view: str, anchor: date) -> list[DateRange]:
    """Ranges a user is likely to navigate to next from this view."""
    if view == VIEW_MONTH:
        return [view_range(VIEW_MONTH, add_months(anchor, -1)), view_range(VIEW_MONTH, add_months(anchor, 1))]
    if view == VIEW_WEEK:
        return [
            view_range(VIEW_WEEK, anchor - timedelta(days=7)),
            view_range(VIEW_WEEK, anchor + timedelta(days=7)),
        ]
    if view == VIEW_DAY:
        ranges = []
        for offset in range(1, DAY_PREFETCH_SPAN + 1):
            ranges.append(view_range(VIEW_DAY, anchor - timedelta(days=offset)))
            ranges.append(view_range(VIEW_DAY, anchor + timedelta(days=offset)))
        return ranges
    if view == VIEW_LIST:
        return []
    raise ValueError(f"Unknown calendar view {view!r}")
