from __future__ import annotations

import os
from datetime import date
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from workshop_calendar.config_manager import ConfigManager
from workshop_calendar.controller import CalendarController
from workshop_calendar.scheduler import RefreshScheduler
from workshop_calendar.sources import WorkshopApiClient


class ConfigUpdateRequest(BaseModel):
    payload: dict[str, Any] = Field(default_factory=dict)


class ModeUpdateRequest(BaseModel):
    mode: str


class FilterUpdateRequest(BaseModel):
    filter: str = "all"


class AnchorUpdateRequest(BaseModel):
    date: str


class AppContext:
    def __init__(self, config_path: str) -> None:
        self.config_manager = ConfigManager(config_path)
        config = self.config_manager.load()
        self.controller = CalendarController(
            self._build_source,
            config.calendar,
            history_size=config.refresh.history_size,
        )
        self.scheduler = RefreshScheduler(self.controller, self.config_manager)

    def _build_source(self) -> WorkshopApiClient:
        return WorkshopApiClient(self.config_manager.load().api)

    def after_navigation(self) -> None:
        if self.config_manager.load().refresh.refresh_on_navigation:
            self.scheduler.trigger_manual(trigger="navigation")


def create_app() -> FastAPI:
    config_path = os.getenv("WORKSHOP_CALENDAR_CONFIG_PATH", "config.yaml")
    context = AppContext(config_path=config_path)

    app = FastAPI(title="Workshop Calendar", version="0.1.0")
    app.state.context = context

    def _calendar_payload() -> dict[str, Any]:
        controller = app.state.context.controller
        return {
            **controller.state_dict(),
            "render": controller.render_model().to_dict(),
        }

    def _navigated() -> dict[str, Any]:
        app.state.context.after_navigation()
        return _calendar_payload()

    @app.on_event("startup")
    def _startup() -> None:
        app.state.context.scheduler.start()

    @app.on_event("shutdown")
    def _shutdown() -> None:
        app.state.context.scheduler.stop()

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/config")
    def get_config() -> dict[str, Any]:
        return app.state.context.config_manager.masked()

    @app.get("/api/config/raw")
    def get_config_raw() -> dict[str, Any]:
        manager = app.state.context.config_manager
        return {"config": manager.masked(), "meta": manager.masked_meta()}

    @app.put("/api/config")
    def put_config(request: ConfigUpdateRequest) -> dict[str, Any]:
        if not isinstance(request.payload, dict):
            raise HTTPException(status_code=400, detail="payload must be an object")
        updated = app.state.context.config_manager.update(request.payload)
        app.state.context.controller.configure(updated.calendar)
        return {
            "message": "config updated",
            "config": app.state.context.config_manager.masked(),
        }

    @app.get("/api/calendar")
    def get_calendar() -> dict[str, Any]:
        return _calendar_payload()

    @app.post("/api/calendar/next")
    def next_period() -> dict[str, Any]:
        app.state.context.controller.go_to_next_period()
        return _navigated()

    @app.post("/api/calendar/prev")
    def prev_period() -> dict[str, Any]:
        app.state.context.controller.go_to_prev_period()
        return _navigated()

    @app.post("/api/calendar/today")
    def today() -> dict[str, Any]:
        app.state.context.controller.go_to_today()
        return _navigated()

    @app.put("/api/calendar/mode")
    def put_mode(request: ModeUpdateRequest) -> dict[str, Any]:
        try:
            app.state.context.controller.set_mode(request.mode)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return _navigated()

    @app.put("/api/calendar/filter")
    def put_filter(request: FilterUpdateRequest) -> dict[str, Any]:
        app.state.context.controller.set_filter(request.filter)
        return _calendar_payload()

    @app.put("/api/calendar/anchor")
    def put_anchor(request: AnchorUpdateRequest) -> dict[str, Any]:
        try:
            anchor = date.fromisoformat(request.date.strip()[:10])
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Invalid date, expected YYYY-MM-DD") from exc
        app.state.context.controller.set_anchor(anchor)
        return _navigated()

    @app.post("/api/calendar/refresh")
    def trigger_refresh() -> dict[str, str]:
        app.state.context.scheduler.trigger_manual()
        return {"message": "refresh triggered"}

    @app.get("/api/calendar/refresh/status")
    def refresh_status(limit: int = 20) -> dict[str, Any]:
        controller = app.state.context.controller
        return {"state": controller.state, "runs": controller.recent_results(limit=limit)}

    @app.get("/api/calendar/stats")
    def stats() -> dict[str, Any]:
        return {"stats": app.state.context.controller.stats()}

    return app
