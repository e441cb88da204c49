import tempfile
import unittest
from pathlib import Path

from duesync.state_store import StateStore


class StateStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.store = StateStore(str(Path(self.temp_dir.name) / "data" / "state.db"))

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_get_set_round_trip(self) -> None:
        self.store.set({"items": [{"uid": "a", "title": "Quiz"}], "last_updated": "2024-03-01T00:00:00+00:00"})
        values = self.store.get(["items", "last_updated", "missing"])
        self.assertEqual(values["items"], [{"uid": "a", "title": "Quiz"}])
        self.assertEqual(values["last_updated"], "2024-03-01T00:00:00+00:00")
        self.assertNotIn("missing", values)

    def test_set_overwrites(self) -> None:
        self.store.set({"local_state": {"completed": {}}})
        self.store.set({"local_state": {"completed": {"a": {"completed_date": "d"}}}})
        self.assertEqual(self.store.get(["local_state"])["local_state"]["completed"], {"a": {"completed_date": "d"}})

    def test_get_no_keys(self) -> None:
        self.assertEqual(self.store.get([]), {})

    def test_refresh_runs_newest_first(self) -> None:
        self.store.record_refresh_run(trigger="startup", status="skipped", message="no url", duration_ms=1)
        run_id = self.store.record_refresh_run(
            trigger="manual", status="success", message="ok", duration_ms=12, added=3, updated=1, removed=2
        )
        runs = self.store.recent_refresh_runs(limit=5)
        self.assertEqual(len(runs), 2)
        self.assertEqual(runs[0]["id"], run_id)
        self.assertEqual((runs[0]["added"], runs[0]["updated"], runs[0]["removed"]), (3, 1, 2))
        self.assertEqual(runs[1]["status"], "skipped")


if __name__ == "__main__":
    unittest.main()
