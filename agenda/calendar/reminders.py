"""Due-reminder computation and firing.

Clients (or the optional server-side poller in ``agenda.core.scheduler``)
poll ``compute_due`` every few tens of seconds and call ``fire_reminder``
once they have shown a reminder. Firing is idempotent: ``fired_at`` is only
ever written while it is still empty.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import update
from sqlmodel import Session, select

from agenda.core.config import settings
from agenda.core.errors import NotFoundError
from agenda.core.timeutils import as_utc, utcnow
from agenda.models import Event, Reminder

logger = logging.getLogger(__name__)

MIN_WINDOW_MINUTES = 1
MAX_WINDOW_MINUTES = 24 * 60


@dataclass
class DueReminder:
    """A reminder whose fire time falls inside the polled window."""
    id: UUID
    event_id: UUID
    event_title: str
    calendar_id: UUID
    event_start_at: datetime
    reminder_at: datetime
    minutes_before: int


def clamp_window(raw: int | float | str | None, default: int | None = None) -> int:
    """Clamp a requested window to 1..1440 minutes; junk gives the default."""
    fallback = default if default is not None else settings.reminder_window_default
    if raw is None or raw == "":
        return fallback
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return fallback
    if value != value or value in (float("inf"), float("-inf")):
        return fallback
    return min(max(int(value), MIN_WINDOW_MINUTES), MAX_WINDOW_MINUTES)


def reminder_time(start_at: datetime, minutes_before: int) -> datetime:
    return as_utc(start_at) - timedelta(minutes=minutes_before)


def compute_due(
    session: Session,
    now: datetime | None = None,
    window_minutes: int | None = None,
    user_id: int = 1,
) -> list[DueReminder]:
    """
    List in-app reminders that are due around ``now``.

    Candidates are unfired in-app reminders of events starting between
    ``reminder_lookback_hours`` before and ``reminder_lookahead_days`` after
    ``now``. A candidate is due when its fire time lies in
    ``[now - grace, now + window]``; the grace period keeps a slightly late
    poll from missing it.

    Returns:
        Due reminders sorted by fire time.
    """
    now = as_utc(now or utcnow())
    window = clamp_window(window_minutes)
    earliest = now - timedelta(minutes=settings.reminder_grace_minutes)
    latest = now + timedelta(minutes=window)

    statement = (
        select(Reminder, Event)
        .join(Event, Reminder.event_id == Event.id)
        .where(Reminder.user_id == user_id)
        .where(Reminder.method == "inapp")
        .where(Reminder.fired_at.is_(None))
        .where(Event.start_at >= now - timedelta(hours=settings.reminder_lookback_hours))
        .where(Event.start_at <= now + timedelta(days=settings.reminder_lookahead_days))
        .order_by(Reminder.created_at)
        .limit(settings.reminder_candidate_limit)
    )

    due = []
    for reminder, event in session.exec(statement).all():
        fire_at = reminder_time(event.start_at, reminder.minutes_before)
        if earliest <= fire_at <= latest:
            due.append(
                DueReminder(
                    id=reminder.id,
                    event_id=event.id,
                    event_title=event.title,
                    calendar_id=event.calendar_id,
                    event_start_at=event.start_at,
                    reminder_at=fire_at,
                    minutes_before=reminder.minutes_before,
                )
            )

    due.sort(key=lambda item: item.reminder_at)
    return due


def fire_reminder(
    session: Session,
    reminder_id: UUID,
    now: datetime | None = None,
    user_id: int = 1,
) -> tuple[Reminder, bool]:
    """
    Mark a reminder as fired.

    The write is conditional on ``fired_at`` still being empty, so two
    concurrent calls cannot both succeed and a fired reminder keeps its
    original timestamp.

    Returns:
        The reminder and whether this call was the one that fired it.

    Raises:
        NotFoundError: no such reminder for this user.
    """
    reminder = session.get(Reminder, reminder_id)
    if not reminder or reminder.user_id != user_id:
        raise NotFoundError("Reminder not found.")
    if reminder.fired_at is not None:
        return reminder, False

    result = session.exec(
        update(Reminder)
        .where(Reminder.id == reminder_id)
        .where(Reminder.fired_at.is_(None))
        .values(fired_at=as_utc(now or utcnow()))
    )
    session.commit()
    session.refresh(reminder)

    fired = result.rowcount == 1
    if fired:
        logger.info(f"Reminder {reminder_id} fired at {reminder.fired_at.isoformat()}")
    return reminder, fired
