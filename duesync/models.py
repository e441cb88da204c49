from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime, timezone
from typing import Any


UNTITLED = "Untitled Event"
DEFAULT_CUSTOM_UID_PREFIX = "custom_"
FEED_SCHEMES = ("http://", "https://", "webcal://", "webcals://")

COMPARISON_FIELDS = (
    "title",
    "start_raw",
    "due_raw",
    "end_raw",
    "start_time",
    "due_time",
    "description",
    "location",
)
LOCAL_STATE_FIELDS = (
    "is_completed",
    "completed_date",
    "is_in_progress",
    "in_progress_date",
    "is_pinned",
    "reminder_at",
)


def now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def _optional_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass
class FeedConfig:
    url: str = ""
    timeout_seconds: int = 30
    retries: int = 3
    backoff_seconds: float = 1.0

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "FeedConfig":
        data = data or {}
        url = str(data.get("url", "") or "").strip()
        if url and not url.lower().startswith(FEED_SCHEMES):
            url = ""
        return cls(
            url=url,
            timeout_seconds=max(1, int(data.get("timeout_seconds", 30))),
            retries=max(1, int(data.get("retries", 3))),
            backoff_seconds=max(0.0, float(data.get("backoff_seconds", 1.0))),
        )


@dataclass
class RefreshConfig:
    interval_seconds: int = 1800
    custom_uid_prefix: str = DEFAULT_CUSTOM_UID_PREFIX

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "RefreshConfig":
        data = data or {}
        return cls(
            interval_seconds=max(60, int(data.get("interval_seconds", 1800))),
            custom_uid_prefix=str(data.get("custom_uid_prefix", DEFAULT_CUSTOM_UID_PREFIX)).strip()
            or DEFAULT_CUSTOM_UID_PREFIX,
        )


@dataclass
class ReminderConfig:
    default_hours_before: int = 24

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ReminderConfig":
        data = data or {}
        return cls(default_hours_before=max(1, int(data.get("default_hours_before", 24))))


@dataclass
class AppConfig:
    feed: FeedConfig = field(default_factory=FeedConfig)
    refresh: RefreshConfig = field(default_factory=RefreshConfig)
    reminders: ReminderConfig = field(default_factory=ReminderConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "AppConfig":
        data = data or {}
        return cls(
            feed=FeedConfig.from_dict(data.get("feed")),
            refresh=RefreshConfig.from_dict(data.get("refresh")),
            reminders=ReminderConfig.from_dict(data.get("reminders")),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def default_app_config() -> AppConfig:
    return AppConfig()


@dataclass
class CalendarItem:
    """One normalized feed entry.

    Feed-derived fields are populated by the parser and classifier. The
    local-state fields at the end are never set by parsing; they are
    re-attached by the reconciler from the previous snapshot or the overlay.
    """

    title: str = UNTITLED
    kind: str = "VEVENT"
    is_assignment: bool = False
    extracted_time: str | None = None
    description: str | None = None
    location: str | None = None
    start_raw: str | None = None
    start_time: str | None = None
    due_raw: str | None = None
    due_time: str | None = None
    due_inferred: bool = False
    end_raw: str | None = None
    end_time: str | None = None
    uid: str | None = None
    completed_raw: str | None = None
    completed_time: str | None = None
    status: str | None = None
    priority: int | None = None
    percent_complete: int | None = None
    rrule: str | None = None
    organizer: str | None = None
    attendees: list[str] | None = None

    is_completed: bool = False
    completed_date: str | None = None
    is_in_progress: bool = False
    in_progress_date: str | None = None
    is_pinned: bool = False
    reminder_at: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict[str, Any] | None) -> "CalendarItem":
        payload = payload or {}
        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in payload.items():
            if key not in known:
                continue
            if key in {"is_assignment", "due_inferred", "is_completed", "is_in_progress", "is_pinned"}:
                values[key] = bool(value)
            elif key in {"priority", "percent_complete", "reminder_at"}:
                values[key] = _optional_int(value)
            elif key == "attendees":
                if isinstance(value, list):
                    cleaned = [str(x) for x in value if x is not None]
                    values[key] = cleaned or None
            elif key == "title":
                values[key] = str(value or "") or UNTITLED
            elif key == "kind":
                values[key] = str(value or "VEVENT")
            else:
                values[key] = _optional_str(value)
        return cls(**values)

    def clone(self) -> "CalendarItem":
        return replace(self, attendees=list(self.attendees) if self.attendees else None)

    def with_updates(self, **kwargs: Any) -> "CalendarItem":
        return replace(self.clone(), **kwargs)

    def comparison_key(self) -> tuple[Any, ...]:
        return tuple(getattr(self, name) for name in COMPARISON_FIELDS)

    def without_local_state(self) -> "CalendarItem":
        return self.with_updates(
            is_completed=False,
            completed_date=None,
            is_in_progress=False,
            in_progress_date=None,
            is_pinned=False,
            reminder_at=None,
        )


@dataclass
class RefreshSummary:
    added: int = 0
    updated: int = 0
    removed: int = 0
    unchanged: int = 0
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self) -> dict[str, Any]:
        return {
            "added": self.added,
            "updated": self.updated,
            "removed": self.removed,
            "unchanged": self.unchanged,
            "timestamp": self.timestamp,
        }


@dataclass
class RefreshResult:
    status: str
    message: str
    duration_ms: int
    trigger: str
    summary: RefreshSummary | None = None
    run_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "message": self.message,
            "duration_ms": self.duration_ms,
            "trigger": self.trigger,
            "summary": self.summary.to_dict() if self.summary else None,
            "run_at": self.run_at.isoformat(),
        }
