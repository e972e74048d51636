from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone, tzinfo
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


VIEW_MODES = ("month", "week", "day")
FILTER_MODES = ("all", "orders", "tasks")


def resolve_zone(name: str | None) -> tzinfo:
    text = str(name or "").strip()
    if not text or text.upper() in {"UTC", "Z", "ETC/UTC"}:
        return timezone.utc
    return ZoneInfo(text)


def parse_due_value(value: Any, zone: tzinfo) -> tuple[date, datetime | None]:
    """Parse a source ``due_date`` into ``(day, timestamp)``.

    Date-only strings yield ``timestamp=None``. Naive timestamps are read in
    ``zone``; aware ones are converted into it. Raises ``ValueError`` when the
    value cannot be parsed.
    """
    if value is None:
        raise ValueError("due date missing")
    if isinstance(value, datetime):
        parsed: datetime | date = value
    elif isinstance(value, date):
        return value, None
    else:
        text = str(value).strip()
        if not text:
            raise ValueError("due date empty")
        # A date-only value has no time part, whatever its length.
        if "T" not in text.upper() and " " not in text:
            return date.fromisoformat(text), None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        text = text.replace(" ", "T", 1)
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=zone)
    else:
        try:
            parsed = parsed.astimezone(zone)
        except OverflowError as exc:
            raise ValueError(f"due date out of range: {value!r}") from exc
    return parsed.date(), parsed


def serialize_datetime(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


@dataclass
class WorkshopApiConfig:
    base_url: str = "http://localhost:8000/api"
    api_token: str = ""
    timeout_seconds: int = 30
    orders_path: str = "/orders"
    tasks_path: str = "/tasks"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "WorkshopApiConfig":
        data = data or {}
        return cls(
            base_url=str(data.get("base_url", "http://localhost:8000/api")).strip()
            or "http://localhost:8000/api",
            api_token=str(data.get("api_token", "") or "").strip(),
            timeout_seconds=max(1, int(data.get("timeout_seconds", 30))),
            orders_path=str(data.get("orders_path", "/orders")).strip() or "/orders",
            tasks_path=str(data.get("tasks_path", "/tasks")).strip() or "/tasks",
        )


@dataclass
class RefreshConfig:
    interval_seconds: int = 60
    refresh_on_navigation: bool = False
    history_size: int = 50

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "RefreshConfig":
        data = data or {}
        return cls(
            interval_seconds=max(15, int(data.get("interval_seconds", 60))),
            refresh_on_navigation=bool(data.get("refresh_on_navigation", False)),
            history_size=max(1, int(data.get("history_size", 50))),
        )


@dataclass
class CalendarViewConfig:
    # 0=Monday .. 6=Sunday, same numbering as date.weekday()
    first_weekday: int = 6
    timezone: str = "UTC"
    default_mode: str = "month"
    default_filter: str = "all"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "CalendarViewConfig":
        data = data or {}
        try:
            first_weekday = int(data.get("first_weekday", 6)) % 7
        except (TypeError, ValueError):
            first_weekday = 6
        mode = str(data.get("default_mode", "month")).strip().lower()
        if mode not in VIEW_MODES:
            mode = "month"
        filter_mode = str(data.get("default_filter", "all")).strip().lower()
        if filter_mode not in FILTER_MODES:
            filter_mode = "all"
        zone_name = str(data.get("timezone", "UTC")).strip() or "UTC"
        try:
            resolve_zone(zone_name)
        except (ZoneInfoNotFoundError, ValueError):
            zone_name = "UTC"
        return cls(
            first_weekday=first_weekday,
            timezone=zone_name,
            default_mode=mode,
            default_filter=filter_mode,
        )


@dataclass
class AppConfig:
    api: WorkshopApiConfig = field(default_factory=WorkshopApiConfig)
    refresh: RefreshConfig = field(default_factory=RefreshConfig)
    calendar: CalendarViewConfig = field(default_factory=CalendarViewConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "AppConfig":
        data = data or {}
        return cls(
            api=WorkshopApiConfig.from_dict(data.get("api")),
            refresh=RefreshConfig.from_dict(data.get("refresh")),
            calendar=CalendarViewConfig.from_dict(data.get("calendar")),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CalendarEvent:
    id: str
    kind: str
    title: str
    due_date: date
    status: str
    due_at: datetime | None = None
    priority: str | None = None
    actor: str | None = None

    @property
    def key(self) -> str:
        return f"{self.kind}:{self.id}"

    @property
    def day_key(self) -> str:
        return self.due_date.isoformat()

    @property
    def display_title(self) -> str:
        if self.kind == "order" and self.title.startswith("WooCommerce Order"):
            marker = self.title.find("#")
            digits = ""
            if marker >= 0:
                for char in self.title[marker + 1 :]:
                    if not char.isdigit():
                        break
                    digits += char
            if digits:
                return f"#{digits}"
        return self.title

    @property
    def detail_path(self) -> str:
        if self.kind == "order":
            return f"/orders?order={self.id}"
        return f"/production-tracking?task={self.id}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "key": self.key,
            "title": self.title,
            "display_title": self.display_title,
            "due_date": self.day_key,
            "due_at": serialize_datetime(self.due_at),
            "status": self.status,
            "priority": self.priority,
            "actor": self.actor,
            "detail_path": self.detail_path,
        }


@dataclass(frozen=True)
class ViewWindow:
    mode: str
    anchor: date
    days: tuple[date, ...]

    @property
    def start(self) -> date:
        return self.days[0]

    @property
    def end(self) -> date:
        return self.days[-1]

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "anchor": self.anchor.isoformat(),
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "days": [day.isoformat() for day in self.days],
        }


@dataclass(frozen=True)
class DayCell:
    day: date
    events: tuple[CalendarEvent, ...]
    is_current_month: bool = True
    is_today: bool = False
    weekday: int = 0
    weekday_label: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.day.isoformat(),
            "day_of_month": self.day.day,
            "is_current_month": self.is_current_month,
            "is_today": self.is_today,
            "weekday": self.weekday,
            "weekday_label": self.weekday_label,
            "events": [event.to_dict() for event in self.events],
        }


@dataclass(frozen=True)
class RenderModel:
    mode: str
    window: ViewWindow
    cells: tuple[DayCell, ...] = ()
    events: tuple[CalendarEvent, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "window": self.window.to_dict(),
            "cells": [cell.to_dict() for cell in self.cells],
            "events": [event.to_dict() for event in self.events],
        }


@dataclass
class RefreshResult:
    status: str
    message: str
    duration_ms: int
    trigger: str
    token: int
    orders: int = 0
    tasks: int = 0
    dropped: int = 0
    run_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "message": self.message,
            "duration_ms": self.duration_ms,
            "trigger": self.trigger,
            "token": self.token,
            "orders": self.orders,
            "tasks": self.tasks,
            "dropped": self.dropped,
            "run_at": serialize_datetime(self.run_at),
        }


def default_app_config() -> AppConfig:
    return AppConfig()
