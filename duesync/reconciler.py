from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable

from duesync.models import LOCAL_STATE_FIELDS, CalendarItem, RefreshSummary, now_ms

if TYPE_CHECKING:
    from duesync.local_state import LocalStateOverlay


@dataclass
class ReconcileOutcome:
    items: list[CalendarItem]
    summary: RefreshSummary
    removed_ids: list[str] = field(default_factory=list)
    updated_ids: list[str] = field(default_factory=list)
    added_ids: list[str] = field(default_factory=list)


def identity(item: CalendarItem) -> str:
    """Join key for an item across refreshes.

    Feed UID when present, else title plus due (or start) token. Two untitled
    items on the same day without UIDs share a key; callers live with that.
    """
    if item.uid:
        return item.uid
    return f"{item.title}_{item.due_raw or item.start_raw or ''}"


def _carry_local_state(source: CalendarItem, target: CalendarItem) -> CalendarItem:
    return target.with_updates(**{name: getattr(source, name) for name in LOCAL_STATE_FIELDS})


def _exclusive(item: CalendarItem) -> CalendarItem:
    if item.is_completed and item.is_in_progress:
        return item.with_updates(is_in_progress=False, in_progress_date=None)
    return item


def reconcile(
    previous: Iterable[CalendarItem],
    next_items: Iterable[CalendarItem],
    overlay: LocalStateOverlay | None = None,
    *,
    timestamp: int | None = None,
) -> ReconcileOutcome:
    """Diff two snapshots by identity and carry local state forward.

    The merged list is ``next_items`` in its own order with local state
    re-attached. Every identity in either snapshot is counted exactly once as
    added, updated, unchanged or removed; a repeated identity inside
    ``next_items`` is compared with its first occurrence.
    """
    previous_by_id: dict[str, CalendarItem] = {}
    for item in previous:
        previous_by_id[identity(item)] = item

    merged: list[CalendarItem] = []
    first_seen: dict[str, CalendarItem] = {}
    status_by_id: dict[str, str] = {}

    for item in next_items:
        item_id = identity(item)
        prev = previous_by_id.get(item_id)
        earlier = first_seen.get(item_id)
        if earlier is not None:
            if status_by_id[item_id] == "unchanged" and earlier.comparison_key() != item.comparison_key():
                status_by_id[item_id] = "updated"
        else:
            first_seen[item_id] = item
            if prev is None:
                status_by_id[item_id] = "added"
            elif prev.comparison_key() != item.comparison_key():
                status_by_id[item_id] = "updated"
            else:
                status_by_id[item_id] = "unchanged"

        result = item.without_local_state()
        if prev is not None:
            result = _carry_local_state(prev, result)
        if overlay is not None:
            result = overlay.apply(result, item_id)
        merged.append(_exclusive(result))

    removed_ids = [item_id for item_id in previous_by_id if item_id not in status_by_id]
    added_ids = [item_id for item_id, status in status_by_id.items() if status == "added"]
    updated_ids = [item_id for item_id, status in status_by_id.items() if status == "updated"]
    summary = RefreshSummary(
        added=len(added_ids),
        updated=len(updated_ids),
        removed=len(removed_ids),
        unchanged=sum(1 for status in status_by_id.values() if status == "unchanged"),
        timestamp=now_ms() if timestamp is None else timestamp,
    )
    return ReconcileOutcome(
        items=merged,
        summary=summary,
        removed_ids=removed_ids,
        updated_ids=updated_ids,
        added_ids=added_ids,
    )
