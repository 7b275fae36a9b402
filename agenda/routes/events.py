"""Event routes: range queries, search and the event lifecycle."""
from datetime import datetime
from typing import Literal
from uuid import UUID

from dateutil.relativedelta import relativedelta
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import or_
from sqlmodel import Session, select

from agenda.calendar.overrides import (
    apply_series_edit,
    apply_single_occurrence_delete,
    apply_single_occurrence_edit,
    create_event,
    delete_series,
    delete_standalone_or_override,
    events_in_range,
    get_event,
)
from agenda.core.database import get_session
from agenda.core.timeutils import utcnow
from agenda.models import Event
from agenda.models.event import EventCreate, EventPatch, EventRead

router = APIRouter(prefix="/events", tags=["events"])

SEARCH_LIMIT = 20
DEFAULT_RANGE_MONTHS = 3

Scope = Literal["series", "single"]


def parse_calendar_ids(raw: str | None) -> list[UUID] | None:
    """Parse a comma-separated calendar id filter. Empty means no filter."""
    if not raw:
        return None
    ids = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.append(UUID(part))
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid calendar id.")
    return ids or None


@router.get("")
async def list_events(
    start: datetime | None = None,
    end: datetime | None = None,
    calendar_ids: str | None = Query(None, alias="calendarIds"),
    session: Session = Depends(get_session),
):
    """
    List what a client needs to render ``[start, end)``.

    A missing bound defaults to three months before or after now.

    Returns plain events overlapping the window, every series root (the
    client expands occurrences, skipping exdates) and the overrides whose
    original occurrence falls inside the window.
    """
    now = utcnow()
    start = start or now - relativedelta(months=DEFAULT_RANGE_MONTHS)
    end = end or now + relativedelta(months=DEFAULT_RANGE_MONTHS)
    events = events_in_range(session, start, end, calendar_ids=parse_calendar_ids(calendar_ids))
    return {"events": [EventRead.model_validate(event) for event in events]}


@router.get("/search")
async def search_events(
    q: str = "",
    calendar_ids: str | None = Query(None, alias="calendarIds"),
    session: Session = Depends(get_session),
):
    """
    Case-insensitive substring search over title, description, location and notes.

    Queries shorter than two characters return nothing.
    """
    term = q.strip()
    if len(term) < 2:
        return {"events": []}

    pattern = f"%{term}%"
    statement = (
        select(Event)
        .where(Event.user_id == 1)
        .where(
            or_(
                Event.title.ilike(pattern),
                Event.description.ilike(pattern),
                Event.location.ilike(pattern),
                Event.notes.ilike(pattern),
            )
        )
        .order_by(Event.start_at)
        .limit(SEARCH_LIMIT)
    )
    ids = parse_calendar_ids(calendar_ids)
    if ids:
        statement = statement.where(Event.calendar_id.in_(ids))

    events = session.exec(statement).all()
    return {"events": [EventRead.model_validate(event) for event in events]}


@router.post("", status_code=201)
async def add_event(payload: EventCreate, session: Session = Depends(get_session)):
    """Create a standalone event or a recurring series."""
    event = create_event(session, payload)
    return EventRead.model_validate(event)


@router.get("/{event_id}")
async def event_detail(event_id: UUID, session: Session = Depends(get_session)):
    """Get a single event with its reminders."""
    return EventRead.model_validate(get_event(session, event_id))


@router.patch("/{event_id}")
async def update_event(
    event_id: UUID,
    patch: EventPatch,
    scope: Scope = "series",
    occurrence_start: datetime | None = Query(None, alias="occurrenceStart"),
    session: Session = Depends(get_session),
):
    """
    Edit an event.

    With ``scope=series`` (default) the event, or the whole series, changes
    in place. With ``scope=single`` the occurrence starting at
    ``occurrenceStart`` is replaced by a new override event, which is
    returned.
    """
    if scope == "single":
        event = apply_single_occurrence_edit(session, event_id, occurrence_start, patch)
    else:
        event = apply_series_edit(session, event_id, patch)
    return EventRead.model_validate(event)


@router.delete("/{event_id}")
async def remove_event(
    event_id: UUID,
    scope: Scope = "series",
    occurrence_start: datetime | None = Query(None, alias="occurrenceStart"),
    session: Session = Depends(get_session),
):
    """
    Delete an event.

    - ``scope=single``: exclude one occurrence from the series
    - an override or standalone event: delete that one row
    - a series root: delete the root and all of its overrides
    """
    if scope == "single":
        series = apply_single_occurrence_delete(session, event_id, occurrence_start)
        return {"deleted": 0, "event": EventRead.model_validate(series)}

    event = get_event(session, event_id)
    has_overrides = session.exec(
        select(Event.id).where(Event.parent_event_id == event.id).limit(1)
    ).first()
    if event.is_override or (not event.is_recurring and has_overrides is None):
        delete_standalone_or_override(session, event_id)
        return {"deleted": 1}

    return {"deleted": delete_series(session, event_id)}
