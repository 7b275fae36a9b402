"""Encode and decode recurrence rules.

Stored rules use a small subset of RFC 5545, always written as two lines::

    DTSTART:20250310T090000Z
    RRULE:FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,WE;UNTIL=20250601T090000Z

Only FREQ (DAILY/WEEKLY/MONTHLY/YEARLY), INTERVAL, BYDAY, UNTIL and COUNT
are understood. Encoding always emits tokens in that order. Decoding accepts
any order and casing, skips anything it does not recognise and never raises.

Rule text goes through ``parse_rule`` first, which turns it into a
``ParsedRule``: a frequency, an interval, a weekday tuple and exactly one end
condition. ``decode_rule`` then maps that onto the ``RepeatConfig`` the
repeat picker works with.
"""
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta

from dateutil.rrule import rrulestr

from agenda.core.timeutils import as_utc
from agenda.models.repeat import EndMode, Frequency, RepeatConfig, RepeatPreset

logger = logging.getLogger(__name__)

# 0=Sunday .. 6=Saturday
WEEKDAY_TOKENS = ("SU", "MO", "TU", "WE", "TH", "FR", "SA")

PRESET_FREQUENCIES = {
    RepeatPreset.DAILY: Frequency.DAILY,
    RepeatPreset.WEEKLY: Frequency.WEEKLY,
    RepeatPreset.MONTHLY: Frequency.MONTHLY,
    RepeatPreset.YEARLY: Frequency.YEARLY,
}

SIMPLE_PRESETS = {value: key for key, value in PRESET_FREQUENCIES.items()}

_STAMP_FORMAT = "%Y%m%dT%H%M%SZ"
_DATETIME_TOKEN = re.compile(r"^(\d{4})(\d{2})(\d{2})T(\d{2})(\d{2})(\d{2})(Z?)$")
_DATE_TOKEN = re.compile(r"^(\d{4})(\d{2})(\d{2})$")
_BYDAY_ITEM = re.compile(r"^[+-]?\d{0,2}(SU|MO|TU|WE|TH|FR|SA)$")
_STAMP_VALUE = re.compile(r"(?im)(\bDTSTART:|\bUNTIL=)(\d{8}(?:T\d{6}Z?)?)(?=;|\s|$)")


@dataclass(frozen=True)
class EndNever:
    pass


@dataclass(frozen=True)
class EndOnDate:
    until: datetime


@dataclass(frozen=True)
class EndAfterCount:
    count: int


EndCondition = EndNever | EndOnDate | EndAfterCount


@dataclass(frozen=True)
class ParsedRule:
    """Typed tokens of a rule.

    ``frequency`` is None when the text had no usable FREQ token; such a
    rule means "does not repeat".
    """
    frequency: Frequency | None
    interval: int = 1
    weekdays: tuple[int, ...] = ()
    end: EndCondition = field(default_factory=EndNever)
    dtstart: datetime | None = None


def format_stamp(value: datetime) -> str:
    """Format an instant as a zero-padded UTC token (``YYYYMMDDTHHMMSSZ``)."""
    return as_utc(value).strftime(_STAMP_FORMAT)


def parse_stamp(token: str) -> datetime | None:
    """Parse a DTSTART/UNTIL value, returning None when it is unusable.

    Date-only values mean midnight UTC. Values without a trailing ``Z`` are
    also read as UTC.
    """
    token = token.strip().upper()
    try:
        match = _DATETIME_TOKEN.match(token)
        if match:
            year, month, day, hour, minute, second = (int(part) for part in match.groups()[:6])
            return datetime(year, month, day, hour, minute, second, tzinfo=UTC)
        match = _DATE_TOKEN.match(token)
        if match:
            year, month, day = (int(part) for part in match.groups())
            return datetime(year, month, day, tzinfo=UTC)
    except ValueError:
        return None
    return None


def _positive_int(value: str) -> int | None:
    try:
        number = int(value.strip())
    except ValueError:
        return None
    return number if number > 0 else None


def _parse_weekdays(value: str) -> tuple[int, ...]:
    days = set()
    for item in value.split(","):
        match = _BYDAY_ITEM.match(item.strip().upper())
        if match:
            days.add(WEEKDAY_TOKENS.index(match.group(1)))
    return tuple(sorted(days))


def parse_rule(text: str | None) -> ParsedRule:
    """Tokenize rule text into a ``ParsedRule``.

    Accepts the two-line form, a lone ``RRULE:`` line or bare ``FREQ=...``
    parts. When both COUNT and UNTIL are present, COUNT wins.
    """
    if not text or not text.strip():
        return ParsedRule(frequency=None)

    frequency = None
    interval = 1
    weekdays: tuple[int, ...] = ()
    until = None
    count = None
    dtstart = None

    for raw_line in text.replace("\r", "\n").split("\n"):
        line = raw_line.strip()
        if not line:
            continue
        head, sep, rest = line.partition(":")
        name = head.split(";")[0].strip().upper()
        if sep and name == "DTSTART":
            dtstart = parse_stamp(rest)
            continue
        if sep and name in ("RRULE", "EXRULE", "EXDATE", "RDATE"):
            if name != "RRULE":
                continue
            line = rest

        for part in line.split(";"):
            key, eq, value = part.partition("=")
            if not eq:
                continue
            key = key.strip().upper()
            value = value.strip()
            if key == "FREQ":
                try:
                    frequency = Frequency(value.upper())
                except ValueError:
                    logger.debug(f"Ignoring unsupported FREQ value: {value}")
            elif key == "INTERVAL":
                interval = _positive_int(value) or 1
            elif key == "BYDAY":
                weekdays = _parse_weekdays(value)
            elif key == "UNTIL":
                until = parse_stamp(value)
            elif key == "COUNT":
                count = _positive_int(value)

    if count is not None:
        end = EndAfterCount(count)
    elif until is not None:
        end = EndOnDate(until)
    else:
        end = EndNever()

    return ParsedRule(
        frequency=frequency,
        interval=interval,
        weekdays=weekdays,
        end=end,
        dtstart=dtstart,
    )


def _weekday_index(value: datetime) -> int:
    # datetime.weekday() is 0=Monday; rules use 0=Sunday
    return (value.weekday() + 1) % 7


def _until_instant(until_date: date, series_start: datetime, all_day: bool) -> datetime:
    start = as_utc(series_start)
    if all_day:
        return datetime.combine(until_date, time(23, 59, 59), tzinfo=UTC)
    return datetime.combine(until_date, start.timetz())


def encode_rule(config: RepeatConfig, series_start: datetime, all_day: bool = False) -> str | None:
    """Encode a repeat configuration as two-line rule text.

    Returns None for the ``none`` preset. ``custom`` encodes as WEEKLY unless
    the config carries a decoded ``frequency``.
    """
    if config.preset == RepeatPreset.NONE:
        return None

    if config.preset == RepeatPreset.CUSTOM:
        frequency = config.frequency or Frequency.WEEKLY
    else:
        frequency = PRESET_FREQUENCIES[config.preset]

    tokens = [f"FREQ={frequency.value}"]

    interval = max(1, math.floor(config.interval or 1))
    if interval > 1:
        tokens.append(f"INTERVAL={interval}")

    weekdays = sorted(set(config.weekdays))
    if frequency == Frequency.WEEKLY and not weekdays:
        weekdays = [_weekday_index(as_utc(series_start))]
    if weekdays and (frequency == Frequency.WEEKLY or config.preset == RepeatPreset.CUSTOM):
        tokens.append("BYDAY=" + ",".join(WEEKDAY_TOKENS[day] for day in weekdays))

    if config.end_mode == EndMode.ON_DATE and config.until_date is not None:
        until = _until_instant(config.until_date, series_start, all_day)
        tokens.append(f"UNTIL={format_stamp(until)}")
    elif config.end_mode == EndMode.AFTER_COUNT:
        count = max(1, math.floor(config.count or 1))
        tokens.append(f"COUNT={count}")

    return f"DTSTART:{format_stamp(series_start)}\nRRULE:{';'.join(tokens)}"


def decode_rule(text: str | None) -> RepeatConfig:
    """Decode rule text into the repeat picker's configuration.

    Lossy: any simple shape decodes to its simple preset, even if
    it was saved as ``custom``. BYDAY only fits a simple preset for WEEKLY
    rules; other frequencies with weekdays stay ``custom`` so the weekdays
    survive the next encode.
    """
    parsed = parse_rule(text)
    if parsed.frequency is None:
        return RepeatConfig()

    weekdays = list(parsed.weekdays)
    preset = RepeatPreset.CUSTOM
    if parsed.interval == 1:
        if parsed.frequency == Frequency.WEEKLY or not weekdays:
            preset = SIMPLE_PRESETS[parsed.frequency]

    end = parsed.end
    if isinstance(end, EndAfterCount):
        end_mode, until_date, count = EndMode.AFTER_COUNT, None, end.count
    elif isinstance(end, EndOnDate):
        end_mode, until_date, count = EndMode.ON_DATE, end.until.date(), None
    else:
        end_mode, until_date, count = EndMode.NEVER, None, None

    return RepeatConfig(
        preset=preset,
        interval=parsed.interval,
        weekdays=weekdays,
        end_mode=end_mode,
        until_date=until_date,
        count=count,
        frequency=parsed.frequency if preset == RepeatPreset.CUSTOM else None,
    )


def rule_bounds(text: str | None) -> tuple[datetime | None, int | None]:
    """Return the (until, count) pair mirrored onto an event row."""
    end = parse_rule(text).end
    if isinstance(end, EndOnDate):
        return end.until, None
    if isinstance(end, EndAfterCount):
        return None, end.count
    return None, None


def canonical_stamps(text: str) -> str:
    """Rewrite plain DTSTART and UNTIL values as UTC ``YYYYMMDDTHHMMSSZ`` stamps.

    Date-only and zone-less values are read as UTC, as ``parse_rule`` reads
    them. Values that do not parse are left for the caller to reject.
    """
    def replace(match: re.Match) -> str:
        stamp = parse_stamp(match.group(2))
        return match.group(1) + (format_stamp(stamp) if stamp else match.group(2))

    return _STAMP_VALUE.sub(replace, text)


def validate_rule(text: str | None, series_start: datetime | None = None) -> bool:
    """Check a rule supplied directly by a caller.

    The rule must name a supported frequency and dateutil must be able to
    build a recurrence from it.
    """
    if not text or parse_rule(text).frequency is None:
        return False
    text = canonical_stamps(text)
    try:
        if series_start is not None and "DTSTART" not in text.upper():
            rrulestr(text, dtstart=as_utc(series_start))
        else:
            rrulestr(text)
    except (ValueError, TypeError) as e:
        logger.debug(f"Rejected recurrence rule {text!r}: {e}")
        return False
    return True


def occurrence_duration(start_at: datetime, end_at: datetime) -> timedelta:
    return as_utc(end_at) - as_utc(start_at)
