"""Event model for calendar events and recurring series.

This module defines the Event model, the central entity of the application.
A single table holds three kinds of rows:

* standalone events (no rule, no parent),
* series roots, which carry a recurrence rule and the set of excluded
  occurrence starts (``exdates``),
* overrides, which replace one occurrence of a series. An override points
  back at its series through ``parent_event_id`` and names the occurrence it
  replaces in ``original_occurrence_start``. The link is a plain indexed
  column; a series never owns its overrides through the ORM, and deleting a
  series enumerates them explicitly.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Literal
from uuid import UUID, uuid4

from pydantic import field_validator
from sqlalchemy import JSON, Column
from sqlmodel import Field, Relationship, SQLModel

from agenda.core.database import UTCDateTime
from agenda.core.timeutils import from_iso, utcnow
from agenda.models.reminder import ReminderIn, ReminderRead
from agenda.models.repeat import RepeatConfig

if TYPE_CHECKING:
    from agenda.models.reminder import Reminder

EVENT_TYPES = ("default", "focus", "outOfOffice", "workingLocation")

EventType = Literal["default", "focus", "outOfOffice", "workingLocation"]


class Event(SQLModel, table=True):
    """A calendar event, series root or occurrence override.

    Attributes:
        id: Unique identifier (UUID).
        user_id: Owner of this event (single user for now).
        calendar_id: Foreign key to the Calendar holding the event.
        parent_event_id: For overrides, the series root this row replaces an
            occurrence of. Never set together with a recurrence rule.
        original_occurrence_start: For overrides, the start of the
            occurrence being replaced.
        title: Event title.
        start_at: Start instant (UTC).
        end_at: End instant (UTC), always after ``start_at``.
        all_day: If True, start and end are whole-day boundaries.
        timezone: Advisory IANA zone name; instant math ignores it.
        recurrence_rule: Two-line DTSTART/RRULE text, see
            ``agenda.calendar.rules``.
        recurrence_until: Mirror of the rule's UNTIL token.
        recurrence_count: Mirror of the rule's COUNT token.
        exdates: Excluded occurrence starts, stored as sorted, unique
            UTC ISO strings.
        tags: Normalised, case-insensitively unique tag list.
        reminders: Reminders owned by this event.
    """
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: int = Field(default=1, index=True)
    calendar_id: UUID = Field(foreign_key="calendar.id", index=True)
    parent_event_id: UUID | None = Field(default=None, foreign_key="event.id", index=True)
    original_occurrence_start: datetime | None = Field(
        default=None, sa_column=Column(UTCDateTime, nullable=True)
    )
    title: str
    start_at: datetime = Field(sa_column=Column(UTCDateTime, nullable=False, index=True))
    end_at: datetime = Field(sa_column=Column(UTCDateTime, nullable=False))
    all_day: bool = Field(default=False)
    location: str | None = None
    description: str | None = None
    notes: str | None = None
    color: str | None = None
    event_type: str = Field(default="default")
    working_location_label: str | None = None
    timezone: str | None = None
    recurrence_rule: str | None = None
    recurrence_until: datetime | None = Field(
        default=None, sa_column=Column(UTCDateTime, nullable=True)
    )
    recurrence_count: int | None = None
    exdates: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    tags: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(
        default_factory=utcnow, sa_column=Column(UTCDateTime, nullable=False)
    )
    updated_at: datetime = Field(
        default_factory=utcnow, sa_column=Column(UTCDateTime, nullable=False)
    )

    # Relationship
    reminders: list["Reminder"] = Relationship(
        back_populates="event",
        sa_relationship_kwargs={
            "cascade": "all, delete-orphan",
            "order_by": "Reminder.minutes_before",
        },
    )

    @property
    def is_recurring(self) -> bool:
        return bool(self.recurrence_rule)

    @property
    def is_override(self) -> bool:
        return self.parent_event_id is not None

    def exdate_instants(self) -> list[datetime]:
        return [from_iso(value) for value in self.exdates or []]


def _clean_optional_text(value):
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


class EventCreate(SQLModel):
    """Payload for creating an event.

    A series is created by sending either ``repeat`` (preferred, encoded
    server-side) or a ready-made ``recurrence_rule``.
    """
    calendar_id: UUID | None = None
    title: str = Field(min_length=1, max_length=255)
    start_at: datetime
    end_at: datetime
    all_day: bool = False
    location: str | None = Field(default=None, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    notes: str | None = Field(default=None, max_length=5000)
    color: str | None = None
    event_type: EventType = "default"
    working_location_label: str | None = Field(default=None, max_length=120)
    timezone: str | None = Field(default=None, max_length=120)
    repeat: RepeatConfig | None = None
    recurrence_rule: str | None = None
    exdates: list[datetime] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    reminders: list[ReminderIn] = Field(default_factory=list)

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator(
        "location", "description", "notes", "color",
        "working_location_label", "timezone", "recurrence_rule",
        mode="before",
    )
    @classmethod
    def clean_text(cls, value):
        return _clean_optional_text(value)


class EventPatch(SQLModel):
    """Partial update for an event or a single occurrence.

    Each field has three states: absent from the request body (leave
    unchanged), explicitly ``null`` (clear it) or a value (set it). Callers
    read the supplied fields with ``model_dump(exclude_unset=True)``; a
    plain attribute read cannot tell the first two apart.
    """
    calendar_id: UUID | None = None
    title: str | None = Field(default=None, min_length=1, max_length=255)
    start_at: datetime | None = None
    end_at: datetime | None = None
    all_day: bool | None = None
    location: str | None = Field(default=None, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    notes: str | None = Field(default=None, max_length=5000)
    color: str | None = None
    event_type: EventType | None = None
    working_location_label: str | None = Field(default=None, max_length=120)
    timezone: str | None = Field(default=None, max_length=120)
    repeat: RepeatConfig | None = None
    recurrence_rule: str | None = None
    tags: list[str] | None = None
    reminders: list[ReminderIn] | None = None

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator(
        "location", "description", "notes", "color",
        "working_location_label", "timezone", "recurrence_rule",
        mode="before",
    )
    @classmethod
    def clean_text(cls, value):
        return _clean_optional_text(value)


class EventRead(SQLModel):
    id: UUID
    calendar_id: UUID
    parent_event_id: UUID | None = None
    original_occurrence_start: datetime | None = None
    title: str
    start_at: datetime
    end_at: datetime
    all_day: bool
    location: str | None = None
    description: str | None = None
    notes: str | None = None
    color: str | None = None
    event_type: str
    working_location_label: str | None = None
    timezone: str | None = None
    recurrence_rule: str | None = None
    recurrence_until: datetime | None = None
    recurrence_count: int | None = None
    exdates: list[datetime] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    reminders: list[ReminderRead] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
