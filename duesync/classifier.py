from __future__ import annotations

import re

from duesync.models import CalendarItem
from duesync.timestamps import format_with_extracted_time


ASSIGNMENT_KEYWORDS = (
    "due",
    "assignment",
    "homework",
    "test",
    "quiz",
    "exam",
    "project",
    "paper",
    "lab",
    "presentation",
    "read",
    "watch",
    "complete",
    "finish",
    "study",
    "submit",
)
KEYWORD_PATTERN = re.compile(r"\b(?:" + "|".join(ASSIGNMENT_KEYWORDS) + r")\b", re.IGNORECASE)
# e.g. "ADV. BIOLOGY - B:" or "US HISTORY: SEM 2 - 3:"
CLASS_PREFIX_PATTERN = re.compile(r"^(?:ADV\.\s+)?[A-Z][A-Z0-9\s:/]+-\s*[A-Z0-9]+:", re.IGNORECASE)
CLOCK_TIME_PATTERN = re.compile(r"(\d{1,2}:\d{2}\s*[ap]\.?m\.?|\d{1,2}\s*[ap]\.?m\.?)", re.IGNORECASE)


def is_assignment_title(title: str | None) -> bool:
    if not title:
        return False
    return bool(KEYWORD_PATTERN.search(title) or CLASS_PREFIX_PATTERN.search(title))


def extract_clock_time(title: str | None) -> str | None:
    if not title:
        return None
    match = CLOCK_TIME_PATTERN.search(title)
    return match.group(1) if match else None


def _date_digits(raw: str) -> str:
    return re.sub(r"\D", "", raw)[:8]


def classify(item: CalendarItem) -> CalendarItem:
    """Flag assignments and fill in an inferred due date where the feed has none.

    An explicit due property always wins. Otherwise an assignment with a start
    date is due on that date, at the clock time named in its title if any.
    """
    is_assignment = is_assignment_title(item.title)
    extracted_time = extract_clock_time(item.title) if is_assignment else None
    updates: dict[str, object] = {
        "is_assignment": is_assignment,
        "extracted_time": extracted_time,
    }
    if item.due_raw is None and is_assignment and item.start_raw:
        updates["due_raw"] = item.start_raw
        updates["due_inferred"] = True
        if extracted_time:
            updates["due_time"] = format_with_extracted_time(_date_digits(item.start_raw), extracted_time)
        else:
            updates["due_time"] = item.start_time
    return item.with_updates(**updates)
