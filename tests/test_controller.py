import threading
import unittest
from datetime import date
from typing import Any
from unittest import mock

from workshop_calendar.controller import CalendarController
from workshop_calendar.models import CalendarViewConfig
from workshop_calendar.sources import SourceFetchError


ORDERS = [
    {"id": 1, "title": "Wedding suit", "due_date": "2025-03-10", "status": "pending", "client": {"name": "Ali"}},
    {"id": 2, "title": "Broken", "due_date": "not-a-date", "status": "pending"},
]
TASKS = [
    {"id": 7, "title": "Cut fabric", "due_date": "2025-03-10T09:00:00", "status": "completed", "worker": {"name": "Sara"}},
]


class FakeSource:
    def __init__(self, orders: list[Any], tasks: list[Any]) -> None:
        self.orders = orders
        self.tasks = tasks

    def fetch_orders(self) -> list[Any]:
        return list(self.orders)

    def fetch_tasks(self) -> list[Any]:
        return list(self.tasks)


class FailingSource(FakeSource):
    def __init__(self) -> None:
        super().__init__([], [])

    def fetch_tasks(self) -> list[Any]:
        raise SourceFetchError("tasks", "HTTP 500: server error")


class BlockingSource(FakeSource):
    def __init__(self, orders: list[Any], tasks: list[Any]) -> None:
        super().__init__(orders, tasks)
        self.entered = threading.Event()
        self.release = threading.Event()

    def fetch_orders(self) -> list[Any]:
        self.entered.set()
        self.release.wait(timeout=5)
        return list(self.orders)


def _controller(*sources: FakeSource, **config: Any) -> CalendarController:
    queue = list(sources)

    def factory() -> FakeSource:
        return queue.pop(0) if len(queue) > 1 else queue[0]

    return CalendarController(
        factory,
        CalendarViewConfig.from_dict(config),
        today_provider=lambda: date(2025, 3, 10),
    )


class RefreshTests(unittest.TestCase):
    def test_initial_state_and_successful_refresh(self) -> None:
        controller = _controller(FakeSource(ORDERS, TASKS))
        self.assertEqual(controller.state, "idle")
        self.assertEqual(controller.anchor, date(2025, 3, 10))
        self.assertEqual(len(controller.window.days), 42)

        result = controller.refresh(trigger="startup")

        self.assertEqual(result.status, "success")
        self.assertEqual(result.orders, 2)
        self.assertEqual(result.tasks, 1)
        self.assertEqual(result.dropped, 1)
        self.assertEqual(controller.state, "ready")
        model = controller.render_model()
        cell = next(cell for cell in model.cells if cell.day == date(2025, 3, 10))
        self.assertEqual(len(cell.events), 2)
        self.assertTrue(cell.is_today)

    def test_state_is_loading_while_fetching(self) -> None:
        observed: list[str] = []
        holder: dict[str, CalendarController] = {}

        class ObservingSource(FakeSource):
            def fetch_orders(self) -> list[Any]:
                observed.append(holder["controller"].state)
                return super().fetch_orders()

        controller = _controller(ObservingSource(ORDERS, TASKS))
        holder["controller"] = controller
        controller.refresh()
        self.assertEqual(observed, ["loading"])
        self.assertEqual(controller.state, "ready")

    def test_failed_refresh_keeps_stale_data(self) -> None:
        controller = _controller(FakeSource(ORDERS, TASKS), FailingSource())
        controller.refresh()
        before = controller.snapshot

        result = controller.refresh(trigger="scheduled")

        self.assertEqual(result.status, "error")
        self.assertIn("HTTP 500", result.message)
        self.assertEqual(controller.state, "ready")
        self.assertIs(controller.snapshot, before)
        self.assertEqual(len(controller.snapshot.events), 2)

    def test_failed_first_refresh_returns_to_idle(self) -> None:
        controller = _controller(FailingSource())
        result = controller.refresh()
        self.assertEqual(result.status, "error")
        self.assertEqual(controller.state, "idle")
        self.assertEqual(controller.snapshot.events, ())

    def test_refresh_keeps_navigation_state(self) -> None:
        controller = _controller(FakeSource(ORDERS, TASKS))
        controller.set_mode("week")
        controller.set_anchor(date(2025, 4, 2))
        controller.set_filter("orders")
        controller.refresh(trigger="scheduled")
        self.assertEqual(controller.mode, "week")
        self.assertEqual(controller.anchor, date(2025, 4, 2))
        self.assertEqual(controller.filter, "orders")

    def test_stale_response_is_not_applied_after_newer_one(self) -> None:
        slow = BlockingSource([{"id": 1, "title": "Old", "due_date": "2025-03-10"}], [])
        fast = FakeSource([{"id": 2, "title": "New", "due_date": "2025-03-10"}], [])
        controller = _controller(slow, fast)
        results: list[Any] = []

        worker = threading.Thread(target=lambda: results.append(controller.refresh(trigger="scheduled")))
        worker.start()
        self.assertTrue(slow.entered.wait(timeout=5))

        newer = controller.refresh(trigger="navigation")
        slow.release.set()
        worker.join(timeout=5)

        self.assertEqual(newer.status, "success")
        self.assertEqual(results[0].status, "superseded")
        self.assertLess(results[0].token, newer.token)
        self.assertEqual([event.key for event in controller.snapshot.events], ["order:2"])
        self.assertEqual(controller.state, "ready")

    def test_older_success_after_newer_failure_becomes_ready(self) -> None:
        slow = BlockingSource([{"id": 1, "title": "Old", "due_date": "2025-03-10"}], [])
        controller = _controller(slow, FailingSource())
        results: list[Any] = []

        worker = threading.Thread(target=lambda: results.append(controller.refresh(trigger="scheduled")))
        worker.start()
        self.assertTrue(slow.entered.wait(timeout=5))

        failed = controller.refresh(trigger="manual")
        self.assertEqual(failed.status, "error")
        self.assertEqual(controller.state, "loading")

        slow.release.set()
        worker.join(timeout=5)

        self.assertEqual(results[0].status, "success")
        self.assertEqual([event.key for event in controller.snapshot.events], ["order:1"])
        self.assertEqual(controller.state, "ready")

    def test_out_of_range_record_does_not_break_refresh(self) -> None:
        orders = ORDERS + [{"id": 3, "title": "Ancient", "due_date": "0001-01-01T00:00:00+05:00"}]
        controller = _controller(FakeSource(orders, TASKS))
        result = controller.refresh()
        self.assertEqual(result.status, "success")
        self.assertEqual(result.dropped, 2)
        self.assertEqual(controller.state, "ready")

    def test_unexpected_normalize_error_is_recorded(self) -> None:
        controller = _controller(FakeSource(ORDERS, TASKS))
        with mock.patch("workshop_calendar.controller.normalize", side_effect=RuntimeError("boom")):
            result = controller.refresh()
        self.assertEqual(result.status, "error")
        self.assertIn("boom", result.message)
        self.assertEqual(controller.state, "idle")

        self.assertEqual(controller.refresh().status, "success")
        self.assertEqual(controller.state, "ready")

    def test_recent_results_newest_first(self) -> None:
        controller = _controller(FakeSource(ORDERS, TASKS))
        controller.refresh(trigger="startup")
        controller.refresh(trigger="manual")
        runs = controller.recent_results(limit=5)
        self.assertEqual([run["trigger"] for run in runs], ["manual", "startup"])
        self.assertEqual(controller.state_dict()["last_refresh"]["trigger"], "manual")


class FilterAndNavigationTests(unittest.TestCase):
    def test_filter_applied_before_indexing(self) -> None:
        controller = _controller(FakeSource(ORDERS, TASKS))
        controller.refresh()
        controller.set_filter("tasks")
        self.assertEqual([event.kind for event in controller.snapshot.index["2025-03-10"]], ["task"])
        controller.refresh()
        self.assertEqual([event.kind for event in controller.snapshot.index["2025-03-10"]], ["task"])
        self.assertEqual(len(controller.snapshot.events), 2)
        controller.set_filter("unknown")
        self.assertEqual(controller.filter, "all")
        self.assertEqual(len(controller.snapshot.index["2025-03-10"]), 2)

    def test_stats_ignore_filter(self) -> None:
        controller = _controller(FakeSource(ORDERS, TASKS))
        controller.refresh()
        controller.set_filter("orders")
        stats = controller.stats()
        self.assertEqual(stats["pending_orders"], 1)
        self.assertEqual(stats["completed_tasks"], 1)

    def test_prev_month_clamps_day(self) -> None:
        controller = _controller(FakeSource([], []))
        controller.set_anchor(date(2025, 3, 31))
        window = controller.prev_month()
        self.assertEqual(controller.anchor, date(2025, 2, 28))
        self.assertEqual(window.anchor, date(2025, 2, 28))
        controller.set_anchor(date(2024, 3, 31))
        controller.prev_month()
        self.assertEqual(controller.anchor, date(2024, 2, 29))
        controller.next_month()
        self.assertEqual(controller.anchor, date(2024, 3, 29))

    def test_period_navigation_follows_mode(self) -> None:
        controller = _controller(FakeSource([], []))
        controller.set_anchor(date(2025, 1, 31))
        controller.go_to_next_period()
        self.assertEqual(controller.anchor, date(2025, 2, 28))
        controller.set_mode("week")
        controller.go_to_prev_period()
        self.assertEqual(controller.anchor, date(2025, 2, 21))
        self.assertEqual(len(controller.window.days), 7)
        controller.set_mode("day")
        controller.go_to_next_period()
        self.assertEqual(controller.window.days, (date(2025, 2, 22),))
        controller.go_to_today()
        self.assertEqual(controller.anchor, date(2025, 3, 10))

    def test_invalid_mode_is_rejected(self) -> None:
        controller = _controller(FakeSource([], []))
        with self.assertRaises(ValueError):
            controller.set_mode("fortnight")
        self.assertEqual(controller.mode, "month")

    def test_configure_recomputes_window(self) -> None:
        controller = _controller(FakeSource([], []), first_weekday=6)
        self.assertEqual(controller.window.days[0], date(2025, 2, 23))
        controller.configure(CalendarViewConfig(first_weekday=0))
        self.assertEqual(controller.window.days[0], date(2025, 2, 24))

    def test_default_mode_and_filter_from_config(self) -> None:
        controller = _controller(FakeSource([], []), default_mode="day", default_filter="orders")
        self.assertEqual(controller.mode, "day")
        self.assertEqual(controller.filter, "orders")
        self.assertEqual(controller.render_model().mode, "day")


if __name__ == "__main__":
    unittest.main()
