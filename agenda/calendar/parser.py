"""Parse events out of uploaded iCalendar (ICS) documents.

Only the pieces needed to create plain events are read: SUMMARY,
DESCRIPTION, LOCATION, DTSTART and DTEND of each VEVENT. Recurrence,
attendees and alarms are ignored. The parser is forgiving:
a property it cannot read is skipped, and a VEVENT without a usable start
is dropped as a whole while the rest of the document is still imported.
"""
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta, tzinfo

MAX_IMPORT_EVENTS = 1000
MAX_TITLE_LENGTH = 255
MAX_DESCRIPTION_LENGTH = 5000
MAX_LOCATION_LENGTH = 200
DEFAULT_TITLE = "Imported event"

_DATE_ONLY = re.compile(r"^\d{8}$")
_DATE_TIME = re.compile(r"^(\d{4})(\d{2})(\d{2})T(\d{2})(\d{2})(\d{2})(Z?)$")


@dataclass
class IcsEventDraft:
    """An event read from an ICS document, ready to be stored."""
    title: str
    description: str | None
    location: str | None
    start_at: datetime
    end_at: datetime
    all_day: bool


@dataclass
class ImportBatch:
    """Result of parsing one document.

    Attributes:
        drafts: Usable events, in document order, at most ``max_events``.
        discarded: VEVENT blocks dropped because they had no usable start.
        truncated: Usable events dropped because the cap was reached.
    """
    drafts: list[IcsEventDraft] = field(default_factory=list)
    discarded: int = 0
    truncated: int = 0


def unfold_lines(text: str) -> list[str]:
    """
    Join folded lines back into logical lines.

    Line endings are normalised first. A physical line starting with a
    space or tab continues the previous one; exactly that one leading
    character is removed.
    """
    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    lines: list[str] = []
    for line in normalized.split("\n"):
        if line[:1] in (" ", "\t") and lines:
            lines[-1] += line[1:]
            continue
        lines.append(line)
    return lines


def _localize(naive: datetime, tz: tzinfo | None) -> datetime:
    if tz is None:
        return naive.astimezone()
    return naive.replace(tzinfo=tz)


def parse_ics_date(value: str, date_only: bool = False, tz: tzinfo | None = None) -> tuple[datetime, bool] | None:
    """
    Parse a DTSTART/DTEND value.

    Returns ``(instant, all_day)`` in UTC, or None when the value is not a
    date this parser understands. Dates (``YYYYMMDD``, or any value when
    ``date_only`` is set) mean local midnight and mark the event all-day.
    Date-times ending in ``Z`` are UTC, others are local to ``tz``
    (the server's zone when None, at the offset in force on that date).
    """
    value = value.strip()

    try:
        if date_only or _DATE_ONLY.match(value):
            digits = value[:8]
            if not digits.isdigit():
                return None
            start = datetime(int(digits[:4]), int(digits[4:6]), int(digits[6:8]))
            return _localize(start, tz).astimezone(UTC), True

        match = _DATE_TIME.match(value)
        if not match:
            return None
        year, month, day, hour, minute, second = (int(part) for part in match.groups()[:6])
        start = datetime(year, month, day, hour, minute, second)
        if match.group(7):
            return start.replace(tzinfo=UTC), False
        return _localize(start, tz).astimezone(UTC), False
    except (ValueError, OverflowError, OSError):
        return None


def _clip(value: str | None, limit: int) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value[:limit] if value else None


class _DraftBuilder:
    """Accumulates the properties of one VEVENT block."""

    def __init__(self):
        self.title = ""
        self.description: str | None = None
        self.location: str | None = None
        self.start_at: datetime | None = None
        self.end_at: datetime | None = None
        self.all_day = False

    def apply(self, line: str, tz: tzinfo | None) -> None:
        key, sep, value = line.partition(":")
        if not sep:
            return
        key = key.upper()
        name = key.split(";")[0].strip()
        date_only = "VALUE=DATE" in key and "VALUE=DATE-TIME" not in key

        if name == "SUMMARY":
            self.title = value
        elif name == "DESCRIPTION":
            self.description = value.replace("\\n", "\n")
        elif name == "LOCATION":
            self.location = value
        elif name == "DTSTART":
            parsed = parse_ics_date(value, date_only, tz)
            if parsed:
                self.start_at, self.all_day = parsed
        elif name == "DTEND":
            parsed = parse_ics_date(value, date_only, tz)
            if parsed:
                self.end_at = parsed[0]

    def build(self) -> IcsEventDraft | None:
        if self.start_at is None:
            return None

        end_at = self.end_at
        if end_at is None or end_at <= self.start_at:
            end_at = self.start_at + (timedelta(hours=24) if self.all_day else timedelta(hours=1))

        return IcsEventDraft(
            title=_clip(self.title, MAX_TITLE_LENGTH) or DEFAULT_TITLE,
            description=_clip(self.description, MAX_DESCRIPTION_LENGTH),
            location=_clip(self.location, MAX_LOCATION_LENGTH),
            start_at=self.start_at,
            end_at=end_at,
            all_day=self.all_day,
        )


def parse_ics(text: str, tz: tzinfo | None = None, max_events: int = MAX_IMPORT_EVENTS) -> ImportBatch:
    """
    Parse an ICS document into event drafts.

    Properties of components nested inside a VEVENT (VALARM) are not read.
    Drafts past ``max_events`` are counted in ``truncated`` and dropped.
    """
    batch = ImportBatch()
    current: _DraftBuilder | None = None
    nested = 0

    for line in unfold_lines(text):
        marker = line.strip().upper()

        if marker == "BEGIN:VEVENT":
            current = _DraftBuilder()
            nested = 0
            continue

        if marker == "END:VEVENT":
            if current is not None:
                draft = current.build()
                if draft is None:
                    batch.discarded += 1
                elif len(batch.drafts) < max_events:
                    batch.drafts.append(draft)
                else:
                    batch.truncated += 1
            current = None
            continue

        if current is None:
            continue

        if marker.startswith("BEGIN:"):
            nested += 1
        elif marker.startswith("END:"):
            nested = max(0, nested - 1)
        elif nested == 0:
            current.apply(line, tz)

    return batch


def parse_ics_events(text: str, tz: tzinfo | None = None, max_events: int = MAX_IMPORT_EVENTS) -> list[IcsEventDraft]:
    """Parse an ICS document and return only the usable drafts."""
    return parse_ics(text, tz, max_events).drafts
