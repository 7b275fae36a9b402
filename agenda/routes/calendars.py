"""Calendar routes: management, ICS import and ICS export."""
import logging
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import Response
from sqlmodel import Session, select

from agenda.calendar.calendars import delete_calendar, ensure_default_calendar, resolve_calendar
from agenda.calendar.export import export_calendar, export_filename
from agenda.calendar.fields import sanitize_hex_color
from agenda.calendar.parser import parse_ics
from agenda.core.config import settings
from agenda.core.database import atomic, get_session
from agenda.core.timeutils import utcnow
from agenda.models import Calendar, Event
from agenda.models.calendar import CalendarCreate, CalendarPatch

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/calendars", tags=["calendars"])


@router.get("")
async def list_calendars(session: Session = Depends(get_session)):
    """
    List calendars, oldest first.

    Creates the default calendar on first use so the list is never empty.
    """
    ensure_default_calendar(session)
    statement = (
        select(Calendar)
        .where(Calendar.user_id == 1)
        .order_by(Calendar.created_at)
    )
    return {"calendars": session.exec(statement).all()}


@router.post("", status_code=201)
async def create_calendar(payload: CalendarCreate, session: Session = Depends(get_session)):
    """Create a calendar. An invalid or missing colour falls back to the default."""
    calendar = Calendar(
        name=payload.name.strip(),
        color=sanitize_hex_color(payload.color) or settings.default_calendar_color,
    )
    with atomic(session):
        session.add(calendar)
    session.refresh(calendar)
    return calendar


@router.patch("/{calendar_id}")
async def update_calendar(
    calendar_id: UUID,
    payload: CalendarPatch,
    session: Session = Depends(get_session),
):
    """
    Rename or recolour a calendar.

    Returns 400 when the body changes nothing or the colour is not a hex
    colour.
    """
    fields = payload.model_dump(exclude_unset=True)
    if fields.get("name") is None and fields.get("color") is None:
        raise HTTPException(status_code=400, detail="Nothing to update.")

    color = None
    if fields.get("color") is not None:
        color = sanitize_hex_color(fields["color"])
        if not color:
            raise HTTPException(status_code=400, detail="Invalid color value.")

    calendar = resolve_calendar(session, calendar_id)
    if fields.get("name"):
        calendar.name = fields["name"].strip()
    if color:
        calendar.color = color
    calendar.updated_at = utcnow()

    with atomic(session):
        session.add(calendar)
    session.refresh(calendar)
    return calendar


@router.delete("/{calendar_id}")
async def remove_calendar(calendar_id: UUID, session: Session = Depends(get_session)):
    """
    Delete a calendar.

    Its events move to the oldest remaining calendar. The last calendar
    cannot be deleted.
    """
    fallback = delete_calendar(session, calendar_id)
    return {"message": "Calendar deleted.", "events_moved_to": str(fallback.id)}


@router.post("/import")
async def import_calendar(
    file: UploadFile = File(...),
    calendar_id: UUID | None = Form(None),
    timezone: str | None = Form(None),
    session: Session = Depends(get_session),
):
    """
    Import events from an ICS file.

    Floating times in the file are read in ``timezone`` (IANA name), else the
    configured import zone, else the server's zone. Blocks without a usable
    start are skipped. Returns 400 if the file is empty or has no usable
    events; nothing is stored in that case.
    """
    raw = await file.read()
    text = raw.decode("utf-8", errors="replace")
    if not text.strip():
        raise HTTPException(status_code=400, detail="ICS file is empty.")

    zone_name = timezone or settings.import_timezone
    tz = None
    if zone_name:
        try:
            tz = ZoneInfo(zone_name)
        except (ZoneInfoNotFoundError, ValueError):
            raise HTTPException(status_code=400, detail="Invalid timezone.")

    calendar = resolve_calendar(session, calendar_id)
    batch = parse_ics(text, tz=tz, max_events=settings.import_max_events)
    if not batch.drafts:
        raise HTTPException(status_code=400, detail="No valid events found in the ICS file.")

    events = [
        Event(
            calendar_id=calendar.id,
            title=draft.title,
            description=draft.description,
            location=draft.location,
            start_at=draft.start_at,
            end_at=draft.end_at,
            all_day=draft.all_day,
        )
        for draft in batch.drafts
    ]
    with atomic(session):
        session.add_all(events)

    logger.info(
        f"Imported {len(events)} events into {calendar.id} "
        f"(discarded={batch.discarded}, truncated={batch.truncated})"
    )
    return {
        "imported_count": len(events),
        "skipped_count": batch.discarded + batch.truncated,
    }


@router.get("/{calendar_id}/export")
async def export_calendar_feed(calendar_id: UUID, session: Session = Depends(get_session)):
    """Download every event of a calendar as an ICS file."""
    calendar = resolve_calendar(session, calendar_id)
    statement = (
        select(Event)
        .where(Event.calendar_id == calendar.id)
        .order_by(Event.start_at)
        .limit(5000)
    )
    events = session.exec(statement).all()

    return Response(
        content=export_calendar(calendar, list(events)),
        media_type="text/calendar; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{export_filename(calendar)}"'},
    )
