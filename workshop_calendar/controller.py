from __future__ import annotations

import logging
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Any, Callable, Protocol

from workshop_calendar.calendar_math import add_months, compute_window, shift_period
from workshop_calendar.event_index import (
    EventIndex,
    build_index,
    calendar_stats,
    filter_events,
    normalize_filter,
)
from workshop_calendar.models import (
    VIEW_MODES,
    CalendarEvent,
    CalendarViewConfig,
    RefreshResult,
    RenderModel,
    ViewWindow,
    resolve_zone,
    serialize_datetime,
)
from workshop_calendar.normalizer import normalize
from workshop_calendar.projector import project


logger = logging.getLogger(__name__)


class EventSource(Protocol):
    def fetch_orders(self) -> list[Any]: ...

    def fetch_tasks(self) -> list[Any]: ...


@dataclass(frozen=True)
class CalendarSnapshot:
    events: tuple[CalendarEvent, ...] = ()
    index: EventIndex = field(default_factory=lambda: build_index(()))
    dropped: int = 0
    fetched_at: datetime | None = None


def _elapsed_ms(started_at: datetime) -> int:
    return int((datetime.now(timezone.utc) - started_at).total_seconds() * 1000)


class CalendarController:
    """Owns anchor, mode, filter and the last fetched collections.

    Refreshes may overlap; each takes an increasing token and only a response
    newer than the last applied one is committed.
    """

    def __init__(
        self,
        source_factory: Callable[[], EventSource],
        view_config: CalendarViewConfig | None = None,
        *,
        history_size: int = 50,
        today_provider: Callable[[], date] | None = None,
    ) -> None:
        self.source_factory = source_factory
        self.view_config = view_config or CalendarViewConfig()
        self._today_provider = today_provider
        self._lock = threading.RLock()
        self._state = "idle"
        self._latest_token = 0
        self._applied_token = 0
        self._in_flight: set[int] = set()
        self._mode = self.view_config.default_mode
        self._filter = normalize_filter(self.view_config.default_filter)
        self._anchor = self.today()
        self._window = compute_window(self._anchor, self._mode, self.view_config.first_weekday)
        self._snapshot = CalendarSnapshot()
        self._raw_orders: tuple[Any, ...] = ()
        self._raw_tasks: tuple[Any, ...] = ()
        self._history: deque[RefreshResult] = deque(maxlen=max(1, history_size))

    @property
    def state(self) -> str:
        return self._state

    @property
    def mode(self) -> str:
        return self._mode

    @property
    def filter(self) -> str:
        return self._filter

    @property
    def anchor(self) -> date:
        return self._anchor

    @property
    def window(self) -> ViewWindow:
        return self._window

    @property
    def snapshot(self) -> CalendarSnapshot:
        return self._snapshot

    @property
    def raw_collections(self) -> tuple[tuple[Any, ...], tuple[Any, ...]]:
        return self._raw_orders, self._raw_tasks

    def today(self) -> date:
        if self._today_provider is not None:
            return self._today_provider()
        return datetime.now(resolve_zone(self.view_config.timezone)).date()

    def render_model(self, today: date | None = None) -> RenderModel:
        with self._lock:
            window = self._window
            snapshot = self._snapshot
        return project(window, snapshot.index, today or self.today())

    def stats(self) -> dict[str, Any]:
        return calendar_stats(self._snapshot.events)

    def recent_results(self, limit: int = 20) -> list[dict[str, Any]]:
        with self._lock:
            items = list(self._history)
        items.reverse()
        return [item.to_dict() for item in items[: max(1, int(limit))]]

    def state_dict(self) -> dict[str, Any]:
        with self._lock:
            snapshot = self._snapshot
            last = self._history[-1] if self._history else None
            return {
                "state": self._state,
                "mode": self._mode,
                "filter": self._filter,
                "anchor": self._anchor.isoformat(),
                "window": self._window.to_dict(),
                "event_count": len(snapshot.events),
                "dropped": snapshot.dropped,
                "fetched_at": serialize_datetime(snapshot.fetched_at),
                "last_refresh": last.to_dict() if last else None,
            }

    def configure(self, view_config: CalendarViewConfig) -> None:
        with self._lock:
            self.view_config = view_config
            self._recompute_window()

    def _recompute_window(self) -> ViewWindow:
        self._window = compute_window(self._anchor, self._mode, self.view_config.first_weekday)
        return self._window

    def set_mode(self, mode: str) -> ViewWindow:
        normalized = str(mode or "").strip().lower()
        if normalized not in VIEW_MODES:
            raise ValueError(f"unknown view mode: {mode!r}")
        with self._lock:
            self._mode = normalized
            return self._recompute_window()

    def set_filter(self, mode: str) -> str:
        normalized = normalize_filter(mode)
        with self._lock:
            self._filter = normalized
            self._snapshot = replace(
                self._snapshot,
                index=build_index(filter_events(self._snapshot.events, normalized)),
            )
            return normalized

    def set_anchor(self, anchor: date) -> ViewWindow:
        with self._lock:
            self._anchor = anchor
            return self._recompute_window()

    def go_to_today(self) -> ViewWindow:
        return self.set_anchor(self.today())

    def go_to_next_period(self) -> ViewWindow:
        with self._lock:
            self._anchor = shift_period(self._anchor, self._mode, 1)
            return self._recompute_window()

    def go_to_prev_period(self) -> ViewWindow:
        with self._lock:
            self._anchor = shift_period(self._anchor, self._mode, -1)
            return self._recompute_window()

    def next_month(self) -> ViewWindow:
        with self._lock:
            self._anchor = add_months(self._anchor, 1)
            return self._recompute_window()

    def prev_month(self) -> ViewWindow:
        with self._lock:
            self._anchor = add_months(self._anchor, -1)
            return self._recompute_window()

    def _begin_refresh(self) -> int:
        with self._lock:
            self._latest_token += 1
            self._in_flight.add(self._latest_token)
            self._state = "loading"
            return self._latest_token

    def _settle(self, token: int) -> None:
        # Caller holds the lock.
        self._in_flight.discard(token)
        if any(pending > self._applied_token for pending in self._in_flight):
            self._state = "loading"
        elif self._snapshot.fetched_at is not None:
            self._state = "ready"
        else:
            self._state = "idle"

    def _fetch_both(self) -> tuple[list[Any], list[Any]]:
        source = self.source_factory()
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="workshop-calendar-fetch") as pool:
            orders_future = pool.submit(source.fetch_orders)
            tasks_future = pool.submit(source.fetch_tasks)
            orders = orders_future.result()
            tasks = tasks_future.result()
        return list(orders or []), list(tasks or [])

    def _record(self, result: RefreshResult) -> RefreshResult:
        with self._lock:
            self._history.append(result)
        return result

    def refresh(self, trigger: str = "manual") -> RefreshResult:
        started_at = datetime.now(timezone.utc)
        token = self._begin_refresh()
        try:
            orders, tasks = self._fetch_both()
            normalized = normalize(orders, tasks, resolve_zone(self.view_config.timezone))
            with self._lock:
                applied = token > self._applied_token
                if applied:
                    self._snapshot = CalendarSnapshot(
                        events=normalized.events,
                        index=build_index(filter_events(normalized.events, self._filter)),
                        dropped=normalized.dropped,
                        fetched_at=datetime.now(timezone.utc),
                    )
                    self._raw_orders = tuple(orders)
                    self._raw_tasks = tuple(tasks)
                    self._applied_token = token
                newer_token = self._applied_token
                self._settle(token)
        except Exception as exc:
            error_message = f"{type(exc).__name__}: {exc}"
            logger.warning("Calendar refresh %s (%s) failed: %s", token, trigger, error_message)
            with self._lock:
                self._settle(token)
            return self._record(
                RefreshResult(
                    status="error",
                    message=error_message,
                    duration_ms=_elapsed_ms(started_at),
                    trigger=trigger,
                    token=token,
                )
            )

        if not applied:
            logger.debug(
                "Discarding refresh %s (%s): newer refresh %s already applied",
                token,
                trigger,
                newer_token,
            )
            return self._record(
                RefreshResult(
                    status="superseded",
                    message=f"newer refresh {newer_token} already applied",
                    duration_ms=_elapsed_ms(started_at),
                    trigger=trigger,
                    token=token,
                    orders=len(orders),
                    tasks=len(tasks),
                    dropped=normalized.dropped,
                )
            )

        message = f"Loaded {len(orders)} orders, {len(tasks)} tasks, dropped {normalized.dropped} malformed."
        logger.info("Calendar refresh %s (%s): %s", token, trigger, message)
        return self._record(
            RefreshResult(
                status="success",
                message=message,
                duration_ms=_elapsed_ms(started_at),
                trigger=trigger,
                token=token,
                orders=len(orders),
                tasks=len(tasks),
                dropped=normalized.dropped,
            )
        )
