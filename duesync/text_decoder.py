from __future__ import annotations

import re


_BACKSLASH_PLACEHOLDER = "\u0000BACKSLASH\u0000"

NAMED_ENTITIES = {
    "amp": "&",
    "lt": "<",
    "gt": ">",
    "quot": '"',
    "apos": "'",
    "nbsp": " ",
    "ndash": "–",
    "mdash": "—",
    "ldquo": '"',
    "rdquo": '"',
    "lsquo": "'",
    "rsquo": "'",
}

ESCAPE_PATTERN = re.compile(r"\\([nNr,;:])")
ENTITY_PATTERN = re.compile(r"&(?:#(\d+)|#[xX]([0-9a-fA-F]+)|([a-zA-Z]+));")
TAG_PATTERN = re.compile(r"</?[A-Za-z!][^<>]*>")
EXCESS_NEWLINES = re.compile(r"\n{3,}")

_ESCAPES = {"n": "\n", "N": "\n", "r": "\r", ",": ",", ";": ";", ":": ":"}


def _replace_entity(match: re.Match[str]) -> str:
    decimal, hexadecimal, name = match.groups()
    if name is not None:
        return NAMED_ENTITIES.get(name.lower(), match.group(0))
    try:
        codepoint = int(decimal, 10) if decimal is not None else int(hexadecimal, 16)
        return chr(codepoint)
    except (ValueError, OverflowError):
        return match.group(0)


def decode_entities(text: str) -> str:
    return ENTITY_PATTERN.sub(_replace_entity, text)


def decode(text: str | None) -> str:
    """Decode a free-text property value (SUMMARY, DESCRIPTION, LOCATION).

    Feed escapes are resolved first, then character references, then markup
    tags are removed. Literal ``\\\\`` pairs are parked in a placeholder for
    the whole pass so ``\\\\n`` stays a backslash followed by ``n``.
    Entities and tags are resolved repeatedly until the text stops changing,
    so a second decode of the output is a no-op.
    """
    if not text:
        return ""
    decoded = text.replace("\\\\", _BACKSLASH_PLACEHOLDER)
    decoded = ESCAPE_PATTERN.sub(lambda m: _ESCAPES[m.group(1)], decoded)
    # Portal HTML is often escaped twice ("&amp;amp;"). Every changing pass
    # shortens the text, so this ends.
    previous = None
    while decoded != previous:
        previous = decoded
        decoded = TAG_PATTERN.sub("", decode_entities(decoded))
    decoded = decoded.replace(_BACKSLASH_PLACEHOLDER, "\\")
    decoded = EXCESS_NEWLINES.sub("\n\n", decoded)
    return decoded.strip()
