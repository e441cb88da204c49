from __future__ import annotations

import logging
import threading
import time
from typing import Any, Optional

from duesync.config_manager import ConfigManager
from duesync.refresh_engine import RefreshEngine

logger = logging.getLogger(__name__)

MIN_INTERVAL_SECONDS = 60


class RefreshScheduler:
    """Background refresh loop.

    One refresh runs at startup, then one every ``refresh.interval_seconds``.
    A manual trigger refreshes immediately without moving the next scheduled
    run; the interval is re-read from config after each scheduled run.
    """

    def __init__(self, refresh_engine: RefreshEngine, config_manager: ConfigManager) -> None:
        self.refresh_engine = refresh_engine
        self.config_manager = config_manager
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._wake_event = threading.Event()
        self._next_run_at: Optional[float] = None

    def start(self) -> None:
        if self.is_running():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="duesync-refresh-scheduler", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        self._wake_event.set()
        if self._thread:
            self._thread.join(timeout=5)

    def trigger_manual(self) -> None:
        self._wake_event.set()

    def is_running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def status(self) -> dict[str, Any]:
        next_run_in = None
        if self.is_running() and self._next_run_at is not None:
            next_run_in = max(0, int(self._next_run_at - time.monotonic()))
        return {"running": self.is_running(), "next_run_in_seconds": next_run_in}

    def _interval(self) -> int:
        config = self.config_manager.load()
        return max(MIN_INTERVAL_SECONDS, int(config.refresh.interval_seconds))

    def _loop(self) -> None:
        self.refresh_engine.run_once(trigger="startup")
        self._next_run_at = time.monotonic() + self._interval()

        while not self._stop_event.is_set():
            manual = self._wake_event.wait(timeout=max(0.0, self._next_run_at - time.monotonic()))
            self._wake_event.clear()
            if self._stop_event.is_set():
                break
            trigger = "manual" if manual else "scheduled"
            logger.debug("Scheduler firing %s refresh", trigger)
            self.refresh_engine.run_once(trigger=trigger)
            if not manual:
                self._next_run_at = time.monotonic() + self._interval()
