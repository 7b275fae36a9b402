"""Reminder routes polled by in-app clients."""
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from agenda.calendar.reminders import clamp_window, compute_due, fire_reminder
from agenda.core.database import get_session
from agenda.models.reminder import ReminderRead

router = APIRouter(prefix="/events/reminders", tags=["reminders"])


@router.get("")
async def due_reminders(
    window_minutes: str | None = Query(None, alias="windowMinutes"),
    session: Session = Depends(get_session),
):
    """
    List in-app reminders due now or within the next ``windowMinutes``.

    The window is clamped to 1-1440 minutes; anything unreadable falls back
    to the configured default.
    """
    window = clamp_window(window_minutes)
    due = compute_due(session, window_minutes=window)
    return {"window_minutes": window, "reminders": due}


@router.post("/{reminder_id}/fire")
async def fire(reminder_id: UUID, session: Session = Depends(get_session)):
    """Mark a reminder as fired. Firing twice keeps the first timestamp."""
    reminder, fired = fire_reminder(session, reminder_id)
    message = "Reminder fired." if fired else "Reminder already fired."
    return {"message": message, "reminder": ReminderRead.model_validate(reminder)}
