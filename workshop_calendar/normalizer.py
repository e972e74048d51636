from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timezone, tzinfo
from typing import Any, Iterable

from workshop_calendar.models import CalendarEvent, parse_due_value


logger = logging.getLogger(__name__)


class InvalidRecordError(ValueError):
    """A source record cannot be turned into a calendar event."""


@dataclass(frozen=True)
class NormalizeResult:
    events: tuple[CalendarEvent, ...]
    dropped: int = 0


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _nested_name(record: dict[str, Any], key: str) -> str | None:
    nested = record.get(key)
    if not isinstance(nested, dict):
        return None
    name = _text(nested.get("name"))
    return name or None


def _common_fields(record: Any, zone: tzinfo) -> dict[str, Any]:
    if not isinstance(record, dict):
        raise InvalidRecordError(f"record must be an object, got {type(record).__name__}")
    record_id = _text(record.get("id"))
    if not record_id:
        raise InvalidRecordError("record id missing")
    try:
        due_date, due_at = parse_due_value(record.get("due_date"), zone)
    except ValueError as exc:
        raise InvalidRecordError(f"record {record_id}: invalid due_date {record.get('due_date')!r}") from exc
    return {
        "id": record_id,
        "title": _text(record.get("title")),
        "due_date": due_date,
        "due_at": due_at,
        "status": _text(record.get("status")) or "pending",
    }


def order_event(record: Any, zone: tzinfo = timezone.utc) -> CalendarEvent:
    fields = _common_fields(record, zone)
    return CalendarEvent(kind="order", actor=_nested_name(record, "client"), **fields)


def task_event(record: Any, zone: tzinfo = timezone.utc) -> CalendarEvent:
    fields = _common_fields(record, zone)
    priority = _text(record.get("priority")) or None
    return CalendarEvent(
        kind="task",
        priority=priority,
        actor=_nested_name(record, "worker"),
        **fields,
    )


def normalize(
    orders: Iterable[Any],
    tasks: Iterable[Any],
    zone: tzinfo = timezone.utc,
) -> NormalizeResult:
    events: list[CalendarEvent] = []
    dropped = 0
    for builder, records in ((order_event, orders or ()), (task_event, tasks or ())):
        for record in records:
            try:
                events.append(builder(record, zone))
            except InvalidRecordError as exc:
                dropped += 1
                logger.debug("Dropping malformed record: %s", exc)
    return NormalizeResult(events=tuple(events), dropped=dropped)
