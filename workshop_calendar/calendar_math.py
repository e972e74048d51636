"""Calendar arithmetic and view-window computation.

All day stepping used by the views goes through this module so month/year
rollover and month-end clamping live in one place.
"""

from __future__ import annotations

import calendar
from datetime import date, timedelta

from workshop_calendar.models import VIEW_MODES, ViewWindow


MONTH_GRID_DAYS = 42
WEEK_DAYS = 7


def add_days(value: date, days: int) -> date:
    return value + timedelta(days=days)


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def add_months(value: date, months: int) -> date:
    """Shift by whole months, clamping the day to the target month's length."""
    month_index = value.year * 12 + (value.month - 1) + months
    year, month_zero = divmod(month_index, 12)
    month = month_zero + 1
    day = min(value.day, days_in_month(year, month))
    return date(year, month, day)


def next_month(value: date) -> date:
    return add_months(value, 1)


def prev_month(value: date) -> date:
    return add_months(value, -1)


def month_start(value: date) -> date:
    return value.replace(day=1)


def week_start(value: date, first_weekday: int = 6) -> date:
    offset = (value.weekday() - first_weekday) % 7
    return add_days(value, -offset)


def _consecutive(start: date, count: int) -> tuple[date, ...]:
    return tuple(add_days(start, offset) for offset in range(count))


def compute_window(anchor: date, mode: str, first_weekday: int = 6) -> ViewWindow:
    if mode == "month":
        grid_start = week_start(month_start(anchor), first_weekday)
        days = _consecutive(grid_start, MONTH_GRID_DAYS)
    elif mode == "week":
        days = _consecutive(week_start(anchor, first_weekday), WEEK_DAYS)
    elif mode == "day":
        days = (anchor,)
    else:
        raise ValueError(f"unknown view mode: {mode!r} (expected one of {', '.join(VIEW_MODES)})")
    return ViewWindow(mode=mode, anchor=anchor, days=days)


def shift_period(anchor: date, mode: str, step: int) -> date:
    if mode == "month":
        return add_months(anchor, step)
    if mode == "week":
        return add_days(anchor, WEEK_DAYS * step)
    if mode == "day":
        return add_days(anchor, step)
    raise ValueError(f"unknown view mode: {mode!r}")
