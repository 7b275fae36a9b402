"""Reminder model for event notifications.

A reminder belongs to exactly one event and fires ``minutes_before`` the
event starts. ``fired_at`` moves from ``None`` to a timestamp once and is
never reset.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Literal, Optional
from uuid import UUID, uuid4

from sqlalchemy import Column
from sqlmodel import Field, Relationship, SQLModel

from agenda.core.database import UTCDateTime
from agenda.core.timeutils import utcnow

if TYPE_CHECKING:
    from agenda.models.event import Event

REMINDER_METHODS = ("inapp", "email")
MAX_MINUTES_BEFORE = 60 * 24 * 30

ReminderMethod = Literal["inapp", "email"]


class Reminder(SQLModel, table=True):
    """A notification scheduled relative to an event's start.

    Attributes:
        id: Unique identifier (UUID).
        user_id: Owner (single user for now).
        event_id: Foreign key to the owning Event.
        minutes_before: Offset before the event start, 0 to 30 days.
        method: Delivery channel, "inapp" or "email". Only in-app
            reminders are surfaced by the due-reminder query.
        fired_at: When the reminder was delivered, or None.
        created_at: Creation time.
        event: Reference to the owning Event object.
    """
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: int = Field(default=1, index=True)
    event_id: UUID = Field(foreign_key="event.id", index=True)
    minutes_before: int = Field(default=0)
    method: str = Field(default="inapp")
    fired_at: datetime | None = Field(default=None, sa_column=Column(UTCDateTime, nullable=True))
    created_at: datetime = Field(
        default_factory=utcnow, sa_column=Column(UTCDateTime, nullable=False)
    )

    # Relationship
    event: Optional["Event"] = Relationship(back_populates="reminders")


class ReminderIn(SQLModel):
    minutes_before: int = Field(ge=0, le=MAX_MINUTES_BEFORE)
    method: ReminderMethod = "inapp"


class ReminderRead(SQLModel):
    id: UUID
    minutes_before: int
    method: str
    fired_at: datetime | None = None
