from __future__ import annotations

import calendar
from datetime import date
from typing import Iterable

from workshop_calendar.event_index import EventIndex, events_on
from workshop_calendar.models import CalendarEvent, DayCell, RenderModel, ViewWindow


def _require_days(window: ViewWindow) -> None:
    if not window.days:
        raise ValueError("view window has no days")


def _weekday_label(day: date) -> str:
    return calendar.day_abbr[day.weekday()]


def agenda_sort_key(event: CalendarEvent) -> tuple:
    """Timed events first in timestamp order, date-only events after them."""
    if event.due_at is not None:
        return (0, event.due_at.timestamp(), event.kind, event.title, event.id)
    return (1, 0.0, event.kind, event.title, event.id)


def sort_agenda(events: Iterable[CalendarEvent]) -> tuple[CalendarEvent, ...]:
    return tuple(sorted(events, key=agenda_sort_key))


def project_month(window: ViewWindow, index: EventIndex, today: date | None = None) -> RenderModel:
    _require_days(window)
    cells = tuple(
        DayCell(
            day=day,
            events=events_on(index, day),
            is_current_month=(day.year, day.month) == (window.anchor.year, window.anchor.month),
            is_today=day == today,
            weekday=day.weekday(),
            weekday_label=_weekday_label(day),
        )
        for day in window.days
    )
    return RenderModel(mode="month", window=window, cells=cells)


def project_week(window: ViewWindow, index: EventIndex, today: date | None = None) -> RenderModel:
    _require_days(window)
    cells = tuple(
        DayCell(
            day=day,
            events=events_on(index, day),
            is_today=day == today,
            weekday=day.weekday(),
            weekday_label=_weekday_label(day),
        )
        for day in window.days
    )
    return RenderModel(mode="week", window=window, cells=cells)


def project_day(window: ViewWindow, index: EventIndex, today: date | None = None) -> RenderModel:
    _require_days(window)
    day = window.days[0]
    events = sort_agenda(events_on(index, day))
    cell = DayCell(
        day=day,
        events=events,
        is_today=day == today,
        weekday=day.weekday(),
        weekday_label=_weekday_label(day),
    )
    return RenderModel(mode="day", window=window, cells=(cell,), events=events)


PROJECTORS = {
    "month": project_month,
    "week": project_week,
    "day": project_day,
}


def project(window: ViewWindow, index: EventIndex, today: date | None = None) -> RenderModel:
    projector = PROJECTORS.get(window.mode)
    if projector is None:
        raise ValueError(f"unknown view mode: {window.mode!r}")
    return projector(window, index, today)
