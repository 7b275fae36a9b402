"""Background reminder dispatcher.

Off by default: clients normally poll the due-reminders endpoint and fire
reminders themselves. When ``reminder_dispatch_enabled`` is set, the server
fires in-app reminders whose time has come and logs each one.
"""
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlmodel import Session

from agenda.calendar.reminders import compute_due, fire_reminder
from agenda.core.config import settings
from agenda.core.database import engine
from agenda.core.timeutils import utcnow

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


def dispatch_due_reminders(session: Session) -> int:
    """Fire every reminder whose time has passed. Returns how many fired."""
    now = utcnow()
    fired = 0
    for due in compute_due(session, now=now, window_minutes=1):
        if due.reminder_at > now:
            continue
        _, was_fired = fire_reminder(session, due.id, now=now)
        if was_fired:
            fired += 1
            logger.info(f"Reminder for '{due.event_title}' at {due.event_start_at.isoformat()}")
    return fired


def reminder_job():
    """Background reminder job."""
    try:
        with Session(engine) as session:
            fired = dispatch_due_reminders(session)
            if fired:
                logger.info(f"Reminder dispatch fired {fired} reminder(s)")
    except Exception as e:
        logger.error(f"Reminder dispatch failed: {e}")


def start_scheduler():
    """Start the background scheduler if dispatching is enabled."""
    if not settings.reminder_dispatch_enabled:
        logger.info("Reminder dispatch disabled, scheduler not started")
        return
    scheduler.add_job(
        reminder_job,
        trigger=IntervalTrigger(seconds=settings.reminder_poll_seconds),
        id="reminder_dispatch",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(
        f"Scheduler started, dispatching reminders every {settings.reminder_poll_seconds} seconds"
    )


def shutdown_scheduler():
    """Graceful shutdown."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler shut down")
