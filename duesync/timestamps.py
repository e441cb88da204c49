from __future__ import annotations

import re
from datetime import date, datetime, timezone


INVALID_INSTANT = 0

MONTH_ABBREVIATIONS = (
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
)

CLOCK_PARTS_PATTERN = re.compile(r"(\d{1,2}):?(\d{2})?")


def _int_or_zero(text: str) -> int:
    return int(text) if text else 0


def _parse_wall_clock(token: str) -> tuple[datetime, bool] | None:
    """Split a DATE or DATE-TIME token into a naive datetime and a UTC flag."""
    token = (token or "").strip()
    if len(token) < 8:
        return None
    try:
        year = int(token[0:4])
        month = int(token[4:6])
        day = int(token[6:8])
        if "T" not in token:
            return datetime(year, month, day), False
        hour = _int_or_zero(token[9:11])
        minute = _int_or_zero(token[11:13])
        second = _int_or_zero(token[13:15])
        return datetime(year, month, day, hour, minute, second), token.endswith("Z")
    except ValueError:
        return None


def _to_aware(naive: datetime, is_utc: bool) -> datetime:
    if is_utc:
        return naive.replace(tzinfo=timezone.utc)
    # Implicit local time, resolved by the OS clock rather than a tz database.
    return naive.astimezone()


def parse_instant(token: str | None) -> int | None:
    """Return epoch milliseconds for a DATE or DATE-TIME token, or None."""
    if not token:
        return None
    parsed = _parse_wall_clock(token)
    if parsed is None:
        return None
    naive, is_utc = parsed
    try:
        return int(_to_aware(naive, is_utc).timestamp() * 1000)
    except (OverflowError, OSError, ValueError):
        return None


def to_instant(token: str | None) -> int:
    """Like parse_instant, but failures collapse to INVALID_INSTANT (0)."""
    instant = parse_instant(token)
    if instant is None:
        return INVALID_INSTANT
    return instant


def _display_date(value: date) -> str:
    return f"{MONTH_ABBREVIATIONS[value.month - 1]} {value.day}, {value.year}"


def _display_clock(value: datetime, with_seconds: bool) -> str:
    hour = value.hour % 12 or 12
    meridiem = "PM" if value.hour >= 12 else "AM"
    if with_seconds:
        return f"{hour:02d}:{value.minute:02d}:{value.second:02d} {meridiem}"
    return f"{hour:02d}:{value.minute:02d} {meridiem}"


def format_date_time(token: str | None) -> str | None:
    if not token:
        return None
    token = token.strip()
    parsed = _parse_wall_clock(token)
    if parsed is None:
        return None
    naive, is_utc = parsed
    if "T" not in token:
        return f"{token[0:4]}-{token[4:6]}-{token[6:8]}"
    local = naive
    if is_utc:
        try:
            local = naive.replace(tzinfo=timezone.utc).astimezone()
        except (OverflowError, OSError, ValueError):
            return None
    return f"{_display_date(local)}, {_display_clock(local, with_seconds=True)}"


def clock_to_hour_minute(clock_token: str) -> tuple[int, int] | None:
    """Convert '8:55 a.m.' or '11 pm' to 24-hour (hour, minute)."""
    normalized = re.sub(r"\s", "", clock_token.lower()).replace(".", "")
    match = CLOCK_PARTS_PATTERN.search(normalized)
    if not match:
        return None
    hours = int(match.group(1))
    minutes = int(match.group(2)) if match.group(2) else 0
    if "pm" in normalized and hours != 12:
        hours += 12
    elif "am" in normalized and hours == 12:
        hours = 0
    if hours > 23 or minutes > 59:
        return None
    return hours, minutes


def format_with_extracted_time(date_digits: str | None, clock_token: str) -> str | None:
    if not date_digits or len(date_digits) < 8:
        return None
    try:
        day = date(int(date_digits[0:4]), int(date_digits[4:6]), int(date_digits[6:8]))
    except ValueError:
        return None
    clock = clock_to_hour_minute(clock_token or "")
    if clock is None:
        return _display_date(day)
    moment = datetime(day.year, day.month, day.day, clock[0], clock[1])
    return f"{_display_date(moment)}, {_display_clock(moment, with_seconds=False)}"
