"""Repeat configuration exchanged with clients.

``RepeatConfig`` is never stored. Clients send it when creating or editing a
series, and ``agenda.calendar.rules`` turns it into the stored rule text (and
back again when a client needs to show the repeat picker for an existing
series).
"""

import math
from datetime import date
from enum import Enum

from pydantic import field_validator
from sqlmodel import Field, SQLModel


class RepeatPreset(str, Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    CUSTOM = "custom"


class EndMode(str, Enum):
    NEVER = "never"
    ON_DATE = "on_date"
    AFTER_COUNT = "after_count"


class Frequency(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class RepeatConfig(SQLModel):
    """How a series repeats.

    Attributes:
        preset: The picker choice. ``custom`` is a weekly rule with explicit
            weekdays and/or an interval above one.
        interval: Repeat every N units, at least 1.
        weekdays: Weekday indices, 0=Sunday through 6=Saturday.
        end_mode: Which end condition applies. ``until_date`` and ``count``
            are only read when ``end_mode`` selects them.
        until_date: Last day of the series for ``on_date``.
        count: Number of occurrences for ``after_count``.
        frequency: Only used with ``custom``. Filled in when a stored rule
            decodes to a non-weekly custom shape so that encoding it again
            keeps the original frequency.
    """
    preset: RepeatPreset = RepeatPreset.NONE
    interval: int = 1
    weekdays: list[int] = Field(default_factory=list)
    end_mode: EndMode = EndMode.NEVER
    until_date: date | None = None
    count: int | None = None
    frequency: Frequency | None = None

    @field_validator("interval", "count", mode="before")
    @classmethod
    def floor_numbers(cls, value):
        if isinstance(value, float) and math.isfinite(value):
            return math.floor(value)
        return value

    @field_validator("weekdays")
    @classmethod
    def check_weekdays(cls, value: list[int]) -> list[int]:
        for day in value:
            if day < 0 or day > 6:
                raise ValueError("weekdays must be between 0 (Sunday) and 6 (Saturday)")
        return sorted(set(value))
