from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable

from duesync.classifier import classify
from duesync.models import UNTITLED, CalendarItem
from duesync.text_decoder import decode
from duesync.timestamps import format_date_time

logger = logging.getLogger(__name__)

COMPONENT_NAMES = ("VEVENT", "VTODO")

LINE_BREAK = re.compile(r"\r?\n")
FOLDED_LINE = re.compile(r"\r?\n[ \t]")
# Parameters sit between the property name and the value colon; quoted
# parameter values may themselves contain colons.
PARAMS = r'(?:;(?:[^:;"\n]|"[^"\n]*")*)*'
NEXT_PROPERTY = r"(?=\n[A-Z][A-Z0-9-]*[;:]|\Z)"
MAILTO_PREFIX = re.compile(r"^mailto:", re.IGNORECASE)


@dataclass(frozen=True)
class ComponentBlock:
    name: str
    body: str


@dataclass(frozen=True)
class FieldRule:
    attr: str
    pattern: re.Pattern[str]
    convert: Callable[[str], Any]
    multi: bool = False

    def extract(self, body: str) -> Any:
        if self.multi:
            values = [self.convert(match.group(1).strip()) for match in self.pattern.finditer(body)]
            values = [value for value in values if value is not None]
            return values or None
        match = self.pattern.search(body)
        if not match:
            return None
        return self.convert(match.group(1).strip())


def _raw(value: str) -> str | None:
    return value or None


def _text(value: str) -> str | None:
    return decode(value) or None


def _integer(value: str) -> int | None:
    match = re.match(r"[+-]?\d+", value)
    return int(match.group(0)) if match else None


def _address(value: str) -> str | None:
    return MAILTO_PREFIX.sub("", value).strip() or None


def _rule(
    attr: str,
    names: tuple[str, ...],
    convert: Callable[[str], Any] = _raw,
    *,
    multiline: bool = False,
    multi: bool = False,
) -> FieldRule:
    name_group = "|".join(re.escape(name) for name in names)
    if multiline:
        # Free-text values run until the next property line.
        pattern = re.compile(rf"^(?:{name_group}){PARAMS}:(.*?){NEXT_PROPERTY}", re.MULTILINE | re.DOTALL)
    else:
        pattern = re.compile(rf"^(?:{name_group}){PARAMS}:(.*)$", re.MULTILINE)
    return FieldRule(attr=attr, pattern=pattern, convert=convert, multi=multi)


FIELD_RULES: tuple[FieldRule, ...] = (
    _rule("title", ("SUMMARY",), _text, multiline=True),
    _rule("description", ("DESCRIPTION",), _text, multiline=True),
    _rule("location", ("LOCATION",), _text, multiline=True),
    _rule("start_raw", ("DTSTART",)),
    _rule("due_raw", ("DUE", "DTDUE")),
    _rule("end_raw", ("DTEND",)),
    _rule("uid", ("UID",)),
    _rule("completed_raw", ("COMPLETED",)),
    _rule("status", ("STATUS",)),
    _rule("priority", ("PRIORITY",), _integer),
    _rule("percent_complete", ("PERCENT-COMPLETE",), _integer),
    _rule("rrule", ("RRULE",)),
    _rule("organizer", ("ORGANIZER",), _address),
    _rule("attendees", ("ATTENDEE",), _address, multi=True),
)


def unfold(body: str) -> str:
    return FOLDED_LINE.sub("", body)


def split_blocks(text: str) -> list[ComponentBlock]:
    """Cut feed text into VEVENT/VTODO bodies.

    Nested sub-components (VALARM and the like) are left out of the body.
    A block that reaches another BEGIN or the end of the text without its END
    marker is dropped.
    """
    blocks: list[ComponentBlock] = []
    current: str | None = None
    body_lines: list[str] = []
    nested = 0
    for line in LINE_BREAK.split(text):
        if line[:1] in (" ", "\t"):
            # Folded continuation: never a BEGIN/END marker.
            if current is not None and not nested:
                body_lines.append(line)
            continue
        marker = line.rstrip().upper()
        if marker.startswith("BEGIN:"):
            name = marker[len("BEGIN:") :].strip()
            if name in COMPONENT_NAMES:
                if current is not None:
                    logger.debug("Dropping unterminated %s block", current)
                current = name
                body_lines = []
                nested = 0
                continue
            if current is not None:
                nested += 1
            continue
        if marker.startswith("END:") and current is not None:
            name = marker[len("END:") :].strip()
            if nested:
                nested -= 1
            elif name == current:
                blocks.append(ComponentBlock(name=current, body="\n".join(body_lines)))
                current = None
            continue
        if current is not None and not nested:
            body_lines.append(line)
    if current is not None:
        logger.debug("Dropping unterminated %s block at end of feed", current)
    return blocks


def extract_fields(body: str) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    for rule in FIELD_RULES:
        value = rule.extract(body)
        if value is not None:
            fields[rule.attr] = value
    return fields


def parse_block(block: ComponentBlock) -> CalendarItem:
    fields = extract_fields(unfold(block.body))
    start_raw = fields.get("start_raw")
    due_raw = fields.get("due_raw")
    end_raw = fields.get("end_raw")
    completed_raw = fields.get("completed_raw")
    item = CalendarItem(
        title=fields.get("title") or UNTITLED,
        kind=block.name,
        description=fields.get("description"),
        location=fields.get("location"),
        start_raw=start_raw,
        start_time=format_date_time(start_raw),
        due_raw=due_raw,
        due_time=format_date_time(due_raw),
        end_raw=end_raw,
        end_time=format_date_time(end_raw),
        uid=fields.get("uid"),
        completed_raw=completed_raw,
        completed_time=format_date_time(completed_raw),
        status=fields.get("status"),
        priority=fields.get("priority"),
        percent_complete=fields.get("percent_complete"),
        rrule=fields.get("rrule"),
        organizer=fields.get("organizer"),
        attendees=fields.get("attendees"),
    )
    return classify(item)


def parse_feed(text: str | None) -> list[CalendarItem]:
    if not text or not isinstance(text, str):
        return []
    items: list[CalendarItem] = []
    for block in split_blocks(text):
        try:
            items.append(parse_block(block))
        except Exception as exc:
            logger.warning("Skipping unparseable %s block: %s: %s", block.name, type(exc).__name__, exc)
    logger.debug("Parsed %d items from feed (%d chars)", len(items), len(text))
    return items
