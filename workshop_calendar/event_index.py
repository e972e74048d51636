from __future__ import annotations

from datetime import date
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from workshop_calendar.models import CalendarEvent


EventIndex = Mapping[str, tuple[CalendarEvent, ...]]

FILTER_KINDS = {
    "orders": "order",
    "orders-only": "order",
    "tasks": "task",
    "tasks-only": "task",
}


def normalize_filter(mode: str | None) -> str:
    kind = FILTER_KINDS.get(str(mode or "").strip().lower())
    if kind is None:
        return "all"
    return f"{kind}s"


def filter_events(events: Iterable[CalendarEvent], mode: str | None) -> tuple[CalendarEvent, ...]:
    kind = FILTER_KINDS.get(str(mode or "").strip().lower())
    if kind is None:
        return tuple(events)
    return tuple(event for event in events if event.kind == kind)


def build_index(events: Iterable[CalendarEvent]) -> EventIndex:
    buckets: dict[str, list[CalendarEvent]] = {}
    for event in events:
        buckets.setdefault(event.day_key, []).append(event)
    return MappingProxyType({day: tuple(items) for day, items in buckets.items()})


def events_on(index: EventIndex, day: date | str) -> tuple[CalendarEvent, ...]:
    key = day if isinstance(day, str) else day.isoformat()
    return index.get(key, ())


def calendar_stats(events: Iterable[CalendarEvent]) -> dict[str, Any]:
    stats = {
        "pending_tasks": 0,
        "completed_tasks": 0,
        "pending_orders": 0,
        "completed_orders": 0,
        "total_tasks": 0,
        "total_orders": 0,
    }
    for event in events:
        stats[f"total_{event.kind}s"] += 1
        if event.status in {"pending", "completed"}:
            stats[f"{event.status}_{event.kind}s"] += 1
    return stats
