"""Normalisation of free-form event and calendar fields."""
import re

MAX_TAGS = 20
MAX_TAG_LENGTH = 32

_HEX_COLOR = re.compile(r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$")


def sanitize_hex_color(value: str | None) -> str | None:
    """
    Normalise a hex colour to lowercase ``#rrggbb``.

    Accepts ``#rgb`` and ``#rrggbb``. Returns None for anything else.
    """
    if not value:
        return None

    trimmed = value.strip()
    if not _HEX_COLOR.match(trimmed):
        return None

    if len(trimmed) == 4:
        trimmed = "#" + "".join(ch * 2 for ch in trimmed[1:])
    return trimmed.lower()


def normalize_tags(value: list[str] | str | None) -> list[str]:
    """
    Clean a tag list.

    Accepts a list or a comma-separated string. Collapses whitespace, clips
    each tag to MAX_TAG_LENGTH, drops case-insensitive duplicates (first
    spelling wins) and keeps at most MAX_TAGS.
    """
    if isinstance(value, str):
        raw = value.split(",")
    elif isinstance(value, list):
        raw = [item for item in value if isinstance(item, str)]
    else:
        raw = []

    seen = set()
    tags = []
    for entry in raw:
        tag = re.sub(r"\s+", " ", entry.strip())
        if not tag:
            continue
        tag = tag[:MAX_TAG_LENGTH]
        key = tag.lower()
        if key in seen:
            continue
        seen.add(key)
        tags.append(tag)
        if len(tags) >= MAX_TAGS:
            break
    return tags
