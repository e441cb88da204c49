from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any

from duesync.config_manager import ConfigManager
from duesync.feed_client import FeedClient
from duesync.local_state import (
    LocalStateOverlay,
    clear_reminder,
    cleanup_stale_reminders,
    set_reminder,
    toggle_complete,
    toggle_in_progress,
    toggle_pin,
)
from duesync.models import CalendarItem, RefreshResult, now_ms
from duesync.reconciler import identity, reconcile
from duesync.state_store import RefreshStore

logger = logging.getLogger(__name__)

ITEMS_KEY = "items"
LOCAL_STATE_KEY = "local_state"
LAST_UPDATED_KEY = "last_updated"
LAST_SUMMARY_KEY = "last_refresh_summary"
LAST_ERROR_KEY = "last_refresh_error"

LOCAL_ACTIONS = {
    "complete": toggle_complete,
    "in_progress": toggle_in_progress,
    "pin": toggle_pin,
}


def _elapsed_ms(started_at: datetime) -> int:
    return int((datetime.now(timezone.utc) - started_at).total_seconds() * 1000)


def _items_from_payload(payload: Any) -> list[CalendarItem]:
    if not isinstance(payload, list):
        return []
    return [CalendarItem.from_dict(entry) for entry in payload if isinstance(entry, dict)]


class RefreshEngine:
    """Fetch, parse and reconcile the feed against the stored snapshot."""

    def __init__(self, config_manager: ConfigManager, state_store: RefreshStore) -> None:
        self.config_manager = config_manager
        self.state_store = state_store
        # Refreshes and local-state edits both rewrite the stored snapshot.
        self._lock = threading.RLock()

    def load_snapshot(self) -> tuple[list[CalendarItem], LocalStateOverlay]:
        stored = self.state_store.get([ITEMS_KEY, LOCAL_STATE_KEY])
        return _items_from_payload(stored.get(ITEMS_KEY)), LocalStateOverlay.from_dict(stored.get(LOCAL_STATE_KEY))

    def load_items(self) -> list[CalendarItem]:
        items, overlay = self.load_snapshot()
        return [overlay.apply(item) for item in items]

    def status(self) -> dict[str, Any]:
        return self.state_store.get([LAST_UPDATED_KEY, LAST_SUMMARY_KEY, LAST_ERROR_KEY])

    def run_once(
        self,
        trigger: str = "manual",
        url_override: str | None = None,
        raise_errors: bool = False,
    ) -> RefreshResult:
        started_at = datetime.now(timezone.utc)
        try:
            with self._lock:
                return self._refresh(trigger, url_override, started_at)
        except Exception as exc:
            duration_ms = _elapsed_ms(started_at)
            error_message = f"{type(exc).__name__}: {exc}"
            logger.exception("Calendar refresh failed (trigger=%s)", trigger)
            self.state_store.record_refresh_run(
                trigger=trigger,
                status="error",
                message=error_message,
                duration_ms=duration_ms,
            )
            self.state_store.set({LAST_ERROR_KEY: {"message": error_message, "timestamp": now_ms()}})
            if raise_errors:
                raise
            return RefreshResult(
                status="error",
                message=error_message,
                duration_ms=duration_ms,
                trigger=trigger,
            )

    def _refresh(self, trigger: str, url_override: str | None, started_at: datetime) -> RefreshResult:
        config = self.config_manager.load()
        url = url_override or config.feed.url
        if not url:
            duration_ms = _elapsed_ms(started_at)
            message = "Feed URL not configured. Refresh skipped."
            self.state_store.record_refresh_run(
                trigger=trigger,
                status="skipped",
                message=message,
                duration_ms=duration_ms,
            )
            return RefreshResult(status="skipped", message=message, duration_ms=duration_ms, trigger=trigger)

        previous, overlay = self.load_snapshot()
        fresh = FeedClient(config.feed).fetch_and_parse(url)

        prefix = config.refresh.custom_uid_prefix
        custom_items = [item for item in previous if item.uid and item.uid.startswith(prefix)]
        feed_previous = [item for item in previous if not (item.uid and item.uid.startswith(prefix))]

        outcome = reconcile(feed_previous, fresh, overlay)
        items = outcome.items + [overlay.apply(item) for item in custom_items]
        overlay.discard(outcome.removed_ids)
        dropped_reminders = cleanup_stale_reminders(items, overlay, now_ms())
        items = [overlay.apply(item) for item in items] if dropped_reminders else items

        summary = outcome.summary
        self.state_store.set(
            {
                ITEMS_KEY: [item.to_dict() for item in items],
                LOCAL_STATE_KEY: overlay.to_dict(),
                LAST_UPDATED_KEY: datetime.now(timezone.utc).isoformat(),
                LAST_SUMMARY_KEY: summary.to_dict(),
            }
        )
        duration_ms = _elapsed_ms(started_at)
        message = f"Calendar refreshed: +{summary.added}, updated {summary.updated}, removed {summary.removed}"
        run_id = self.state_store.record_refresh_run(
            trigger=trigger,
            status="success",
            message=message,
            duration_ms=duration_ms,
            added=summary.added,
            updated=summary.updated,
            removed=summary.removed,
        )
        logger.info("%s (run_id=%s, %d items)", message, run_id, len(items))
        return RefreshResult(
            status="success",
            message=message,
            duration_ms=duration_ms,
            trigger=trigger,
            summary=summary,
        )

    def apply_local_action(self, item_id: str, action: str, hours_before: int | None = None) -> CalendarItem:
        """Toggle or set local state on the stored item with ``item_id``.

        Raises KeyError for an unknown item and ValueError for an unknown
        action or an item a reminder cannot be attached to.
        """
        with self._lock:
            items, overlay = self.load_snapshot()
            target = next((item for item in items if identity(item) == item_id), None)
            if target is None:
                raise KeyError(item_id)
            if action in LOCAL_ACTIONS:
                updated = LOCAL_ACTIONS[action](target, overlay)
            elif action == "set_reminder":
                if hours_before is None:
                    hours_before = self.config_manager.load().reminders.default_hours_before
                updated = set_reminder(target, overlay, hours_before)
            elif action == "clear_reminder":
                updated = clear_reminder(target, overlay)
            else:
                raise ValueError(f"Unknown local action: {action}")
            self.state_store.set(
                {
                    ITEMS_KEY: [overlay.apply(item).to_dict() for item in items],
                    LOCAL_STATE_KEY: overlay.to_dict(),
                }
            )
            return updated
