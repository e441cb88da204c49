import threading
import time
import unittest
from unittest import mock

from duesync.models import AppConfig
from duesync.scheduler import RefreshScheduler


class RefreshSchedulerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.config_manager = mock.Mock()
        self.config_manager.load.return_value = AppConfig()
        self.engine = mock.Mock()
        self.triggers: list[str] = []
        self.startup_done = threading.Event()
        self.manual_done = threading.Event()

        def run_once(trigger: str = "manual", **_kwargs):
            self.triggers.append(trigger)
            if trigger == "startup":
                self.startup_done.set()
            elif trigger == "manual":
                self.manual_done.set()

        self.engine.run_once.side_effect = run_once
        self.scheduler = RefreshScheduler(self.engine, self.config_manager)

    def tearDown(self) -> None:
        self.scheduler.stop()

    def test_refreshes_at_startup_and_on_manual_trigger(self) -> None:
        self.scheduler.start()
        self.assertTrue(self.startup_done.wait(timeout=5))
        self.scheduler.trigger_manual()
        self.assertTrue(self.manual_done.wait(timeout=5))
        self.assertEqual(self.triggers[:2], ["startup", "manual"])

    def test_start_is_idempotent(self) -> None:
        self.scheduler.start()
        first = self.scheduler._thread
        self.scheduler.start()
        self.assertIs(self.scheduler._thread, first)

    def test_status_reports_next_run(self) -> None:
        self.assertEqual(self.scheduler.status(), {"running": False, "next_run_in_seconds": None})
        self.scheduler.start()
        self.assertTrue(self.startup_done.wait(timeout=5))
        for _ in range(50):
            status = self.scheduler.status()
            if status["next_run_in_seconds"] is not None:
                break
            time.sleep(0.05)
        self.assertTrue(status["running"])
        self.assertLessEqual(status["next_run_in_seconds"], 1800)
        self.assertGreater(status["next_run_in_seconds"], 1700)

    def test_manual_trigger_keeps_schedule(self) -> None:
        self.scheduler.start()
        self.assertTrue(self.startup_done.wait(timeout=5))
        self.scheduler.trigger_manual()
        self.assertTrue(self.manual_done.wait(timeout=5))
        self.assertNotIn("scheduled", self.triggers)
        self.assertEqual(self.config_manager.load.call_count, 1)

    def test_stop_ends_loop_without_extra_refresh(self) -> None:
        self.scheduler.start()
        self.assertTrue(self.startup_done.wait(timeout=5))
        self.scheduler.stop()
        self.assertFalse(self.scheduler._thread.is_alive())
        self.assertEqual(self.triggers, ["startup"])


if __name__ == "__main__":
    unittest.main()
