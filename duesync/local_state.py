from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable

from duesync.models import CalendarItem
from duesync.reconciler import identity
from duesync.timestamps import parse_instant

HOUR_MS = 60 * 60 * 1000


def _iso(now: datetime | None) -> str:
    return (now or datetime.now(timezone.utc)).isoformat()


def _entries(data: Any) -> dict[str, dict[str, Any]]:
    if not isinstance(data, dict):
        return {}
    return {str(key): dict(value) for key, value in data.items() if isinstance(value, dict)}


@dataclass
class LocalStateOverlay:
    """User-owned annotations keyed by item identity.

    When handed to the reconciler the overlay is authoritative: an identity
    missing from ``completed`` comes out not completed, whatever the previous
    snapshot said.
    """

    completed: dict[str, dict[str, Any]] = field(default_factory=dict)
    in_progress: dict[str, dict[str, Any]] = field(default_factory=dict)
    pinned: dict[str, dict[str, Any]] = field(default_factory=dict)
    reminders: dict[str, dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "LocalStateOverlay":
        data = data or {}
        return cls(
            completed=_entries(data.get("completed")),
            in_progress=_entries(data.get("in_progress")),
            pinned=_entries(data.get("pinned")),
            reminders=_entries(data.get("reminders")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "completed": dict(self.completed),
            "in_progress": dict(self.in_progress),
            "pinned": dict(self.pinned),
            "reminders": dict(self.reminders),
        }

    def apply(self, item: CalendarItem, item_id: str | None = None) -> CalendarItem:
        item_id = identity(item) if item_id is None else item_id
        completed = self.completed.get(item_id)
        in_progress = None if completed is not None else self.in_progress.get(item_id)
        remind_at = (self.reminders.get(item_id) or {}).get("remind_at")
        return item.with_updates(
            is_completed=completed is not None,
            completed_date=completed.get("completed_date") if completed is not None else None,
            is_in_progress=in_progress is not None,
            in_progress_date=in_progress.get("in_progress_date") if in_progress is not None else None,
            is_pinned=item_id in self.pinned,
            reminder_at=int(remind_at) if isinstance(remind_at, (int, float)) else None,
        )

    def discard(self, item_ids: Iterable[str]) -> int:
        dropped = 0
        for item_id in item_ids:
            for table in (self.completed, self.in_progress, self.pinned, self.reminders):
                if table.pop(item_id, None) is not None:
                    dropped += 1
        return dropped


def toggle_complete(item: CalendarItem, overlay: LocalStateOverlay, now: datetime | None = None) -> CalendarItem:
    item_id = identity(item)
    if item_id in overlay.completed:
        del overlay.completed[item_id]
    else:
        overlay.completed[item_id] = {"completed_date": _iso(now), "title": item.title}
        overlay.in_progress.pop(item_id, None)
    return overlay.apply(item, item_id)


def toggle_in_progress(item: CalendarItem, overlay: LocalStateOverlay, now: datetime | None = None) -> CalendarItem:
    item_id = identity(item)
    if item_id in overlay.in_progress:
        del overlay.in_progress[item_id]
    else:
        overlay.in_progress[item_id] = {"in_progress_date": _iso(now)}
        overlay.completed.pop(item_id, None)
    return overlay.apply(item, item_id)


def toggle_pin(item: CalendarItem, overlay: LocalStateOverlay, now: datetime | None = None) -> CalendarItem:
    item_id = identity(item)
    if item_id in overlay.pinned:
        del overlay.pinned[item_id]
    else:
        overlay.pinned[item_id] = {
            "title": item.title,
            "due_raw": item.due_raw,
            "start_raw": item.start_raw,
            "due_time": item.due_time,
            "start_time": item.start_time,
            "pinned_date": _iso(now),
        }
    return overlay.apply(item, item_id)


def item_instant(item: CalendarItem) -> int | None:
    return parse_instant(item.due_raw or item.start_raw)


def set_reminder(item: CalendarItem, overlay: LocalStateOverlay, hours_before: int) -> CalendarItem:
    if hours_before < 0:
        raise ValueError("hours_before must not be negative.")
    due_at = item_instant(item)
    if due_at is None:
        raise ValueError(f"Item has no usable due or start date: {identity(item)}")
    item_id = identity(item)
    overlay.reminders[item_id] = {
        "remind_at": due_at - int(hours_before) * HOUR_MS,
        "hours_before": int(hours_before),
    }
    return overlay.apply(item, item_id)


def clear_reminder(item: CalendarItem, overlay: LocalStateOverlay) -> CalendarItem:
    item_id = identity(item)
    overlay.reminders.pop(item_id, None)
    return overlay.apply(item, item_id)


def cleanup_stale_reminders(items: Iterable[CalendarItem], overlay: LocalStateOverlay, now: int) -> int:
    """Drop reminders for items that are gone or already due."""
    upcoming = set()
    for item in items:
        due_at = item_instant(item)
        if due_at is not None and due_at > now:
            upcoming.add(identity(item))
    stale = [item_id for item_id in overlay.reminders if item_id not in upcoming]
    for item_id in stale:
        del overlay.reminders[item_id]
    return len(stale)
