import errno
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import yaml

from duesync.config_manager import ConfigManager, mask_feed_url
from duesync.models import AppConfig


class ConfigManagerTests(unittest.TestCase):
    def test_creates_default_file(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "nested" / "config.yaml"
            manager = ConfigManager(str(config_path))
            self.assertTrue(config_path.exists())
            self.assertEqual(manager.load().refresh.interval_seconds, 1800)

    def test_save_fallback_when_replace_ebusy(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "config.yaml"
            manager = ConfigManager(str(config_path))
            config = AppConfig.from_dict(
                {
                    "feed": {"url": "https://portal.example/feed.ics?token=abc", "retries": 5},
                    "refresh": {"interval_seconds": 900},
                }
            )

            original_replace = Path.replace

            def replace_side_effect(self: Path, target: Path) -> Path:
                if str(self).endswith(".tmp"):
                    raise OSError(errno.EBUSY, "Device or resource busy")
                return original_replace(self, target)

            with mock.patch("pathlib.Path.replace", new=replace_side_effect):
                manager.save(config)

            self.assertTrue(config_path.exists())
            self.assertFalse(config_path.with_suffix(".yaml.tmp").exists())
            data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
            self.assertEqual(data["feed"]["url"], "https://portal.example/feed.ics?token=abc")
            self.assertEqual(data["refresh"]["interval_seconds"], 900)

    def test_update_deep_merges(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            manager = ConfigManager(str(Path(temp_dir) / "config.yaml"))
            manager.update({"feed": {"url": "https://portal.example/a.ics", "retries": 2}})
            updated = manager.update({"feed": {"retries": 4}})
            self.assertEqual(updated.feed.url, "https://portal.example/a.ics")
            self.assertEqual(updated.feed.retries, 4)
            self.assertEqual(manager.load().feed.retries, 4)

    def test_masked_hides_feed_token(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            manager = ConfigManager(str(Path(temp_dir) / "config.yaml"))
            manager.update({"feed": {"url": "https://portal.example/feed.ics?token=secret"}})
            self.assertEqual(manager.masked()["feed"]["url"], "https://portal.example/feed.ics?***")

    def test_mask_feed_url_without_query(self) -> None:
        self.assertEqual(mask_feed_url("https://portal.example/feed.ics"), "https://portal.example/feed.ics")
        self.assertEqual(mask_feed_url(""), "")


if __name__ == "__main__":
    unittest.main()
