"""Export a calendar as an iCalendar feed."""
import re
from datetime import timedelta

from icalendar import Calendar as ICalendar
from icalendar import Event as ICalEvent
from icalendar import vRecur

from agenda.calendar.rules import WEEKDAY_TOKENS, EndAfterCount, EndOnDate, parse_rule
from agenda.core.timeutils import as_utc
from agenda.models import Calendar, Event

PRODID = "-//Agenda//Calendar//EN"


def _recurrence(rule_text: str) -> vRecur | None:
    parsed = parse_rule(rule_text)
    if parsed.frequency is None:
        return None

    recur = vRecur(freq=parsed.frequency.value)
    if parsed.interval > 1:
        recur["interval"] = parsed.interval
    if parsed.weekdays:
        recur["byday"] = [WEEKDAY_TOKENS[day] for day in parsed.weekdays]
    if isinstance(parsed.end, EndOnDate):
        recur["until"] = parsed.end.until
    elif isinstance(parsed.end, EndAfterCount):
        recur["count"] = parsed.end.count
    return recur


def _to_component(event: Event) -> ICalEvent:
    component = ICalEvent()
    # Overrides share their series' UID and name the replaced occurrence
    uid = event.parent_event_id or event.id
    component.add("uid", str(uid))
    component.add("summary", event.title)

    start_at = as_utc(event.start_at)
    end_at = as_utc(event.end_at)
    if event.all_day:
        component.add("dtstart", start_at.date())
        end_day = end_at.date()
        if end_day <= start_at.date():
            end_day = start_at.date() + timedelta(days=1)
        component.add("dtend", end_day)
    else:
        component.add("dtstart", start_at)
        component.add("dtend", end_at)

    description = event.description or event.notes
    if description:
        component.add("description", description)
    if event.location:
        component.add("location", event.location)
    if event.tags:
        component.add("categories", event.tags)

    if event.recurrence_rule:
        recur = _recurrence(event.recurrence_rule)
        if recur is not None:
            component.add("rrule", recur)
        for exdate in event.exdate_instants():
            component.add("exdate", exdate)
    if event.original_occurrence_start is not None:
        component.add("recurrence-id", as_utc(event.original_occurrence_start))

    component.add("dtstamp", as_utc(event.updated_at))
    return component


def export_calendar(calendar: Calendar, events: list[Event]) -> bytes:
    """Serialize ``events`` into an ICS document named after ``calendar``."""
    feed = ICalendar()
    feed.add("prodid", PRODID)
    feed.add("version", "2.0")
    feed.add("x-wr-calname", f"Agenda - {calendar.name}")

    for event in events:
        feed.add_component(_to_component(event))

    return feed.to_ical()


def export_filename(calendar: Calendar) -> str:
    slug = re.sub(r"[^a-zA-Z0-9-_]+", "-", calendar.name).lower().strip("-")
    return f"{slug or 'calendar'}.ics"
