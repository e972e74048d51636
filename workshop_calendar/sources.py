from __future__ import annotations

import logging
from typing import Any

import requests

from workshop_calendar.models import WorkshopApiConfig


logger = logging.getLogger(__name__)


class SourceFetchError(RuntimeError):
    """Fetching a collection from the workshop API failed."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source


def _extract_records(source: str, payload: Any) -> list[Any]:
    # Laravel endpoints return either a bare list or a {"data": [...]} envelope.
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        data = payload.get("data")
        if isinstance(data, list):
            return data
        if isinstance(data, dict) and isinstance(data.get("data"), list):
            return data["data"]
    raise SourceFetchError(source, "response does not contain a record list")


class WorkshopApiClient:
    def __init__(self, config: WorkshopApiConfig, session: requests.Session | None = None) -> None:
        self.config = config
        self.session = session or requests.Session()

    def _endpoint(self, path: str) -> str:
        base = self.config.base_url.rstrip("/")
        return f"{base}/{path.lstrip('/')}"

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if self.config.api_token:
            headers["Authorization"] = f"Bearer {self.config.api_token}"
        return headers

    def _fetch_collection(self, source: str, path: str) -> list[Any]:
        url = self._endpoint(path)
        try:
            response = self.session.get(url, headers=self._headers(), timeout=self.config.timeout_seconds)
        except requests.RequestException as exc:
            raise SourceFetchError(source, f"{type(exc).__name__}: {exc}") from exc
        if not response.ok:
            if response.status_code == 404:
                logger.warning("Workshop API endpoint not found: %s", url)
            raise SourceFetchError(source, f"HTTP {response.status_code}: {response.text[:300]}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise SourceFetchError(source, "response is not valid JSON") from exc
        return _extract_records(source, payload)

    def fetch_orders(self) -> list[Any]:
        return self._fetch_collection("orders", self.config.orders_path)

    def fetch_tasks(self) -> list[Any]:
        return self._fetch_collection("tasks", self.config.tasks_path)
