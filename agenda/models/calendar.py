"""Calendar model for grouping events.

Every event belongs to exactly one calendar. Users always keep at least one
calendar; a default "Personal" calendar is created the first time one is
needed.
"""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Column
from sqlmodel import Field, SQLModel

from agenda.core.database import UTCDateTime
from agenda.core.timeutils import utcnow


class Calendar(SQLModel, table=True):
    """A named, coloured collection of events.

    Attributes:
        id: Unique identifier (UUID).
        user_id: Owner of this calendar (single user for now).
        name: Display name, 1-80 characters.
        color: Normalised ``#rrggbb`` colour.
        created_at: Creation time; the oldest calendar is the default.
        updated_at: Last modification time.
    """
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: int = Field(default=1, index=True)
    name: str
    color: str = Field(default="#3b82f6")
    created_at: datetime = Field(
        default_factory=utcnow, sa_column=Column(UTCDateTime, nullable=False)
    )
    updated_at: datetime = Field(
        default_factory=utcnow, sa_column=Column(UTCDateTime, nullable=False)
    )


class CalendarCreate(SQLModel):
    name: str = Field(min_length=1, max_length=80)
    color: str | None = None


class CalendarPatch(SQLModel):
    name: str | None = Field(default=None, min_length=1, max_length=80)
    color: str | None = None
