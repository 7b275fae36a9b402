"""Calendar lookup and lifecycle helpers."""
import logging
from uuid import UUID

from sqlmodel import Session, select

from agenda.core.config import settings
from agenda.core.database import atomic
from agenda.core.errors import NotFoundError, ValidationError
from agenda.models import Calendar, Event

logger = logging.getLogger(__name__)


def ensure_default_calendar(session: Session, user_id: int = 1) -> Calendar:
    """Return the user's oldest calendar, creating "Personal" if none exist."""
    statement = (
        select(Calendar)
        .where(Calendar.user_id == user_id)
        .order_by(Calendar.created_at)
    )
    existing = session.exec(statement).first()
    if existing:
        return existing

    calendar = Calendar(
        user_id=user_id,
        name=settings.default_calendar_name,
        color=settings.default_calendar_color,
    )
    with atomic(session):
        session.add(calendar)
    session.refresh(calendar)
    logger.info(f"Created default calendar for user {user_id}")
    return calendar


def resolve_calendar(session: Session, calendar_id: UUID | None, user_id: int = 1) -> Calendar:
    """Look up a target calendar, falling back to the default one."""
    if calendar_id is None:
        return ensure_default_calendar(session, user_id)

    calendar = session.get(Calendar, calendar_id)
    if not calendar or calendar.user_id != user_id:
        raise NotFoundError("Calendar not found.")
    return calendar


def delete_calendar(session: Session, calendar_id: UUID, user_id: int = 1) -> Calendar:
    """
    Delete a calendar, moving its events to another calendar.

    The move and the delete happen in one transaction. The last remaining
    calendar cannot be deleted.

    Returns:
        The calendar that received the events.
    """
    calendar = resolve_calendar(session, calendar_id, user_id)

    statement = (
        select(Calendar)
        .where(Calendar.user_id == user_id)
        .order_by(Calendar.created_at)
    )
    calendars = session.exec(statement).all()
    if len(calendars) <= 1:
        raise ValidationError("At least one calendar is required.")

    fallback = next(c for c in calendars if c.id != calendar.id)
    deleted_name = calendar.name

    with atomic(session):
        moved = session.exec(
            select(Event)
            .where(Event.user_id == user_id)
            .where(Event.calendar_id == calendar.id)
        ).all()
        for event in moved:
            event.calendar_id = fallback.id
            session.add(event)
        session.flush()
        session.delete(calendar)

    logger.info(f"Deleted calendar {deleted_name}, events moved to {fallback.name}")
    return fallback
