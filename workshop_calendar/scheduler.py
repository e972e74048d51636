from __future__ import annotations

import logging
import threading
from typing import Optional

from workshop_calendar.config_manager import ConfigManager
from workshop_calendar.controller import CalendarController


logger = logging.getLogger(__name__)


class RefreshScheduler:
    def __init__(self, controller: CalendarController, config_manager: ConfigManager) -> None:
        self.controller = controller
        self.config_manager = config_manager
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._manual_trigger_event = threading.Event()
        self._trigger_lock = threading.Lock()
        self._pending_trigger = "manual"

    def is_running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def start(self) -> None:
        if self.is_running():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="workshop-calendar-refresh", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        self._manual_trigger_event.set()
        if self._thread:
            self._thread.join(timeout=5)
        self._thread = None

    def trigger_manual(self, trigger: str = "manual") -> None:
        with self._trigger_lock:
            self._pending_trigger = trigger
            self._manual_trigger_event.set()

    def _take_trigger(self) -> str:
        with self._trigger_lock:
            trigger = self._pending_trigger
            self._pending_trigger = "manual"
            self._manual_trigger_event.clear()
        return trigger

    def _run(self, trigger: str) -> None:
        try:
            self.controller.refresh(trigger=trigger)
        except Exception:
            logger.exception("Calendar refresh (%s) raised", trigger)

    def _loop(self) -> None:
        # Load once at startup so the first render has data.
        self._run("startup")

        while not self._stop_event.is_set():
            try:
                interval_seconds = max(15, int(self.config_manager.load().refresh.interval_seconds))
            except Exception:
                logger.exception("Could not load refresh interval, using 60s")
                interval_seconds = 60
            manual = self._manual_trigger_event.wait(timeout=interval_seconds)
            if self._stop_event.is_set():
                break
            if manual:
                self._run(self._take_trigger())
            else:
                self._run("scheduled")
