"""Event lifecycle for recurring series and their occurrence overrides.

A series root stores its recurrence rule and the set of excluded occurrence
starts (``exdates``). Editing one occurrence excludes that start from the
series and creates an override event pointing back at the root. Deleting one
occurrence only excludes it. Series-wide edits change the root in place and
leave overrides alone; deleting a series removes the root and every override
in one transaction.

Occurrence expansion is left to the client: ``events_in_range`` returns
every series root together with the overrides and plain events that touch
the window.
"""
import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, or_
from sqlmodel import Session, select

from agenda.calendar.calendars import resolve_calendar
from agenda.calendar.fields import normalize_tags, sanitize_hex_color
from agenda.calendar.rules import (
    canonical_stamps,
    encode_rule,
    format_stamp,
    occurrence_duration,
    parse_rule,
    rule_bounds,
    validate_rule,
)
from agenda.core.database import atomic
from agenda.core.errors import NotFoundError, ValidationError
from agenda.core.timeutils import as_utc, to_iso, utcnow
from agenda.models import Event, Reminder
from agenda.models.event import EventCreate, EventPatch
from agenda.models.reminder import ReminderIn
from agenda.models.repeat import RepeatConfig, RepeatPreset

logger = logging.getLogger(__name__)

# Fields an override inherits from its series unless the patch sets them
INHERITED_FIELDS = (
    "title",
    "all_day",
    "location",
    "description",
    "notes",
    "color",
    "event_type",
    "working_location_label",
    "timezone",
    "tags",
)

REQUIRED_FIELDS = ("title", "start_at", "end_at", "all_day", "event_type", "calendar_id")

TEXT_FIELDS = (
    "title",
    "location",
    "description",
    "notes",
    "event_type",
    "working_location_label",
    "timezone",
)


def merge_exdates(existing: list[datetime], *instants: datetime) -> list[datetime]:
    """
    Merge occurrence starts into an exdate set.

    Union of both sides, deduplicated by exact instant, sorted ascending.
    Merging the same instant again returns the same list.
    """
    merged = {as_utc(value) for value in existing}
    merged.update(as_utc(value) for value in instants)
    return sorted(merged)


def _store_exdates(event: Event, instants: list[datetime]) -> None:
    # Assign a new list so the JSON column is flagged dirty
    event.exdates = [to_iso(value) for value in instants]


def _check_window(start_at: datetime, end_at: datetime) -> None:
    if start_at >= end_at:
        raise ValidationError("End time must be after start time.")


def _clean_color(value: str | None) -> str | None:
    if value is None:
        return None
    color = sanitize_hex_color(value)
    if not color:
        raise ValidationError("Invalid color value.")
    return color


def _build_reminders(reminders: list[ReminderIn], user_id: int) -> list[Reminder]:
    return [
        Reminder(user_id=user_id, minutes_before=r.minutes_before, method=r.method)
        for r in reminders
    ]


def _normalize_rule_text(text: str, start_at: datetime) -> str:
    """Rewrite a caller-supplied rule into the stored two-line form."""
    rule_line = None
    for line in text.replace("\r", "\n").split("\n"):
        line = line.strip()
        if not line:
            continue
        if line.upper().startswith("RRULE:"):
            rule_line = line[len("RRULE:"):]
        elif "=" in line.split(":")[0]:
            rule_line = line
    if rule_line is None:
        raise ValidationError("Invalid recurrence rule.")

    anchor = parse_rule(text).dtstart or start_at
    return f"DTSTART:{format_stamp(anchor)}\nRRULE:{canonical_stamps(rule_line)}"


def _derive_rule(
    repeat: RepeatConfig | None,
    rule_text: str | None,
    start_at: datetime,
    all_day: bool,
) -> str | None:
    if repeat is not None:
        return encode_rule(repeat, start_at, all_day)
    if rule_text:
        if not validate_rule(rule_text, start_at):
            raise ValidationError("Invalid recurrence rule.")
        return _normalize_rule_text(rule_text, start_at)
    return None


def _set_rule(event: Event, rule: str | None) -> None:
    event.recurrence_rule = rule
    event.recurrence_until, event.recurrence_count = rule_bounds(rule)


def _reanchor_rule(rule: str, start_at: datetime) -> str:
    """Move a stored rule's DTSTART to a new series start."""
    lines = [line for line in rule.split("\n") if not line.upper().startswith("DTSTART")]
    return "\n".join([f"DTSTART:{format_stamp(start_at)}", *lines])


def get_event(session: Session, event_id: UUID, user_id: int = 1) -> Event:
    event = session.get(Event, event_id)
    if not event or event.user_id != user_id:
        raise NotFoundError("Event not found.")
    return event


def _require_series(
    session: Session,
    series_id: UUID,
    occurrence_start: datetime | None,
    user_id: int,
) -> Event:
    series = get_event(session, series_id, user_id)
    if not series.is_recurring:
        raise ValidationError("Single-occurrence changes require a recurring event.")
    if occurrence_start is None:
        raise ValidationError("occurrenceStart is required when scope is single.")
    return series


def create_event(session: Session, payload: EventCreate, user_id: int = 1) -> Event:
    """
    Create a standalone event or a series root.

    Raises:
        ValidationError: end not after start, bad colour or bad rule.
        NotFoundError: the target calendar does not exist.
    """
    start_at = as_utc(payload.start_at)
    end_at = as_utc(payload.end_at)
    _check_window(start_at, end_at)
    color = _clean_color(payload.color)
    calendar = resolve_calendar(session, payload.calendar_id, user_id)
    rule = _derive_rule(payload.repeat, payload.recurrence_rule, start_at, payload.all_day)

    event = Event(
        user_id=user_id,
        calendar_id=calendar.id,
        title=payload.title,
        start_at=start_at,
        end_at=end_at,
        all_day=payload.all_day,
        location=payload.location,
        description=payload.description,
        notes=payload.notes,
        color=color,
        event_type=payload.event_type,
        working_location_label=payload.working_location_label,
        timezone=payload.timezone,
        tags=normalize_tags(payload.tags),
    )
    _set_rule(event, rule)
    if rule:
        _store_exdates(event, merge_exdates([], *payload.exdates))
    event.reminders = _build_reminders(payload.reminders, user_id)

    with atomic(session):
        session.add(event)
    session.refresh(event)

    logger.info(f"Created event {event.id} ({'series' if rule else 'single'}): {event.title}")
    return event


def apply_series_edit(session: Session, event_id: UUID, patch: EventPatch, user_id: int = 1) -> Event:
    """
    Update an event, or a whole series, in place.

    Only fields present in the patch change; an explicit null clears an
    optional field. A new ``repeat`` config is re-encoded into the rule,
    ``repeat: null`` (or a ``none`` preset) stops the series. Existing
    overrides are not touched.
    """
    event = get_event(session, event_id, user_id)
    fields = patch.model_dump(exclude_unset=True)

    for name in REQUIRED_FIELDS:
        if name in fields and fields[name] is None:
            raise ValidationError(f"{name} cannot be cleared.")

    start_at = as_utc(fields.get("start_at", event.start_at))
    end_at = as_utc(fields.get("end_at", event.end_at))
    _check_window(start_at, end_at)
    all_day = fields.get("all_day", event.all_day)

    if event.is_override and (
        (patch.repeat is not None and patch.repeat.preset != RepeatPreset.NONE)
        or patch.recurrence_rule
    ):
        raise ValidationError("Occurrence overrides cannot repeat.")

    if "calendar_id" in fields:
        event.calendar_id = resolve_calendar(session, fields["calendar_id"], user_id).id
    if "color" in fields:
        event.color = _clean_color(fields["color"])
    for name in TEXT_FIELDS:
        if name in fields:
            setattr(event, name, fields[name])
    if "tags" in fields:
        event.tags = normalize_tags(fields["tags"] or [])

    if "repeat" in fields:
        rule = encode_rule(patch.repeat, start_at, all_day) if patch.repeat is not None else None
        _set_rule(event, rule)
    elif "recurrence_rule" in fields:
        _set_rule(event, _derive_rule(None, patch.recurrence_rule, start_at, all_day))
    elif event.is_recurring and start_at != event.start_at:
        _set_rule(event, _reanchor_rule(event.recurrence_rule, start_at))

    event.start_at = start_at
    event.end_at = end_at
    event.all_day = all_day

    if "reminders" in fields:
        event.reminders = _build_reminders(patch.reminders or [], user_id)

    event.updated_at = utcnow()

    with atomic(session):
        session.add(event)
    session.refresh(event)

    logger.info(f"Updated event {event.id}: {sorted(fields)}")
    return event


def apply_single_occurrence_edit(
    session: Session,
    series_id: UUID,
    occurrence_start: datetime | None,
    patch: EventPatch,
    user_id: int = 1,
) -> Event:
    """
    Replace one occurrence of a series with an override event.

    The occurrence start is added to the series' exdates and the override is
    created in the same transaction. Fields missing from the patch come from
    the series; start and end default to the occurrence's own slot, and the
    series' reminders are copied unless the patch brings its own.

    Raises:
        NotFoundError: the series does not exist.
        ValidationError: the event does not repeat, ``occurrence_start`` is
            missing, the patch tries to make the override repeat, or the
            resulting end is not after the start.
    """
    series = _require_series(session, series_id, occurrence_start, user_id)
    occurrence_start = as_utc(occurrence_start)
    fields = patch.model_dump(exclude_unset=True)

    if (patch.repeat is not None and patch.repeat.preset != RepeatPreset.NONE) or patch.recurrence_rule:
        raise ValidationError("Occurrence overrides cannot repeat.")
    for name in ("title", "all_day", "event_type"):
        if name in fields and fields[name] is None:
            raise ValidationError(f"{name} cannot be cleared.")

    occurrence_end = occurrence_start + occurrence_duration(series.start_at, series.end_at)
    start_at = as_utc(fields["start_at"]) if fields.get("start_at") else occurrence_start
    end_at = as_utc(fields["end_at"]) if fields.get("end_at") else occurrence_end
    _check_window(start_at, end_at)

    calendar_id = series.calendar_id
    if fields.get("calendar_id"):
        calendar_id = resolve_calendar(session, fields["calendar_id"], user_id).id

    override = Event(
        user_id=user_id,
        calendar_id=calendar_id,
        parent_event_id=series.id,
        original_occurrence_start=occurrence_start,
        title=series.title,
        start_at=start_at,
        end_at=end_at,
    )
    for name in INHERITED_FIELDS:
        value = fields[name] if name in fields else getattr(series, name)
        setattr(override, name, value)
    override.color = _clean_color(override.color)
    override.tags = normalize_tags(override.tags or [])
    _set_rule(override, None)
    override.exdates = []

    if "reminders" in fields:
        override.reminders = _build_reminders(patch.reminders or [], user_id)
    else:
        override.reminders = [
            Reminder(user_id=user_id, minutes_before=r.minutes_before, method=r.method)
            for r in series.reminders
        ]

    with atomic(session):
        _store_exdates(series, merge_exdates(series.exdate_instants(), occurrence_start))
        series.updated_at = utcnow()
        session.add(series)
        session.add(override)
    session.refresh(override)

    logger.info(
        f"Created override {override.id} for series {series_id} "
        f"occurrence {occurrence_start.isoformat()}"
    )
    return override


def apply_single_occurrence_delete(
    session: Session,
    series_id: UUID,
    occurrence_start: datetime | None,
    user_id: int = 1,
) -> Event:
    """
    Exclude one occurrence from a series.

    Only the exdate set changes. An override already recorded for the same
    occurrence is kept as it is; it no longer shows up in expansions but is
    not deleted either, so it is logged for follow-up.

    Returns:
        The updated series root.
    """
    series = _require_series(session, series_id, occurrence_start, user_id)
    occurrence_start = as_utc(occurrence_start)

    statement = (
        select(Event)
        .where(Event.parent_event_id == series.id)
        .where(Event.original_occurrence_start == occurrence_start)
    )
    existing = session.exec(statement).all()
    if existing:
        logger.warning(
            f"Occurrence {occurrence_start.isoformat()} of series {series_id} deleted while "
            f"override(s) {[str(e.id) for e in existing]} still reference it; overrides left in place"
        )

    with atomic(session):
        _store_exdates(series, merge_exdates(series.exdate_instants(), occurrence_start))
        series.updated_at = utcnow()
        session.add(series)
    session.refresh(series)

    logger.info(f"Excluded occurrence {occurrence_start.isoformat()} from series {series_id}")
    return series


def delete_series(session: Session, series_id: UUID, user_id: int = 1) -> int:
    """
    Delete a series root and every override that references it.

    Overrides are found through the parent index and removed before the
    root, all inside one transaction: either every row goes or none does.

    Returns:
        Number of event rows removed (overrides + 1).
    """
    series = get_event(session, series_id, user_id)
    statement = select(Event).where(Event.parent_event_id == series.id)
    overrides = session.exec(statement).all()

    with atomic(session):
        for override in overrides:
            session.delete(override)
        session.flush()
        session.delete(series)

    removed = len(overrides) + 1
    logger.info(f"Deleted series {series_id} with {len(overrides)} override(s)")
    return removed


def delete_standalone_or_override(session: Session, event_id: UUID, user_id: int = 1) -> None:
    """Delete exactly one non-recurring event or override row."""
    event = get_event(session, event_id, user_id)
    if event.is_recurring:
        raise ValidationError("Recurring events must be deleted as a series.")

    with atomic(session):
        session.delete(event)
    logger.info(f"Deleted event {event_id}")


def events_in_range(
    session: Session,
    window_start: datetime,
    window_end: datetime,
    user_id: int = 1,
    calendar_ids: list[UUID] | None = None,
) -> list[Event]:
    """
    Select the events a client needs to render ``[window_start, window_end)``.

    - plain events (no rule, no parent) whose span intersects the window
    - every series root, whatever its dates; the client expands it
    - overrides whose original occurrence start falls inside the window
    """
    window_start = as_utc(window_start)
    window_end = as_utc(window_end)
    if window_start >= window_end:
        raise ValidationError("Invalid date range.")

    plain = and_(
        Event.recurrence_rule.is_(None),
        Event.parent_event_id.is_(None),
        Event.start_at < window_end,
        Event.end_at > window_start,
    )
    roots = Event.recurrence_rule.is_not(None)
    replaced = and_(
        Event.parent_event_id.is_not(None),
        Event.original_occurrence_start >= window_start,
        Event.original_occurrence_start < window_end,
    )

    statement = (
        select(Event)
        .where(Event.user_id == user_id)
        .where(or_(plain, roots, replaced))
        .order_by(Event.start_at, Event.created_at)
    )
    if calendar_ids:
        statement = statement.where(Event.calendar_id.in_(calendar_ids))
    return list(session.exec(statement).all())
