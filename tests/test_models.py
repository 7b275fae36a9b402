"""Tests for database models and request payloads."""

from datetime import UTC, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError
from sqlmodel import Session, select

from agenda.calendar.fields import normalize_tags, sanitize_hex_color
from agenda.models import Calendar, Event, Reminder
from agenda.models.event import EventCreate, EventPatch
from agenda.models.reminder import ReminderIn
from agenda.models.repeat import RepeatConfig


class TestEventModel:
    """Tests for the Event model."""

    def test_create_event(self, session: Session, calendar: Calendar):
        """Test creating a basic event."""
        event = Event(
            calendar_id=calendar.id,
            title="Test Meeting",
            start_at=datetime(2025, 3, 10, 9, 0, tzinfo=UTC),
            end_at=datetime(2025, 3, 10, 10, 0, tzinfo=UTC),
        )
        session.add(event)
        session.commit()

        retrieved = session.exec(select(Event).where(Event.title == "Test Meeting")).first()

        assert retrieved is not None
        assert retrieved.user_id == 1
        assert retrieved.event_type == "default"
        assert retrieved.exdates == []
        assert retrieved.is_recurring is False
        assert retrieved.is_override is False

    def test_datetimes_come_back_as_utc(self, session: Session, calendar: Calendar):
        """Offsets are normalised to UTC on the way in."""
        plus_two = timezone(timedelta(hours=2))
        event = Event(
            calendar_id=calendar.id,
            title="Offset",
            start_at=datetime(2025, 3, 10, 11, 0, tzinfo=plus_two),
            end_at=datetime(2025, 3, 10, 12, 0, tzinfo=plus_two),
        )
        session.add(event)
        session.commit()
        session.refresh(event)

        assert event.start_at == datetime(2025, 3, 10, 9, 0, tzinfo=UTC)
        assert event.start_at.tzinfo is UTC

    def test_reminders_deleted_with_event(self, session: Session, calendar: Calendar):
        event = Event(
            calendar_id=calendar.id,
            title="With reminder",
            start_at=datetime(2025, 3, 10, 9, 0, tzinfo=UTC),
            end_at=datetime(2025, 3, 10, 10, 0, tzinfo=UTC),
        )
        event.reminders = [Reminder(minutes_before=10)]
        session.add(event)
        session.commit()

        session.delete(event)
        session.commit()

        assert session.exec(select(Reminder)).all() == []


class TestPayloads:
    def test_title_is_stripped(self):
        payload = EventCreate(
            title="  Lunch  ",
            start_at=datetime(2025, 3, 10, 12, 0, tzinfo=UTC),
            end_at=datetime(2025, 3, 10, 13, 0, tzinfo=UTC),
        )
        assert payload.title == "Lunch"

    def test_blank_title_rejected(self):
        with pytest.raises(ValidationError):
            EventCreate(
                title="   ",
                start_at=datetime(2025, 3, 10, 12, 0, tzinfo=UTC),
                end_at=datetime(2025, 3, 10, 13, 0, tzinfo=UTC),
            )

    def test_blank_optional_text_becomes_none(self):
        payload = EventCreate(
            title="Lunch",
            start_at=datetime(2025, 3, 10, 12, 0, tzinfo=UTC),
            end_at=datetime(2025, 3, 10, 13, 0, tzinfo=UTC),
            location="   ",
        )
        assert payload.location is None

    def test_unknown_event_type_rejected(self):
        with pytest.raises(ValidationError):
            EventCreate(
                title="Lunch",
                start_at=datetime(2025, 3, 10, 12, 0, tzinfo=UTC),
                end_at=datetime(2025, 3, 10, 13, 0, tzinfo=UTC),
                event_type="party",
            )

    def test_patch_tracks_explicit_fields(self):
        patch = EventPatch.model_validate({"location": None, "title": "New"})
        assert patch.model_dump(exclude_unset=True) == {"location": None, "title": "New"}

    def test_reminder_bounds(self):
        with pytest.raises(ValidationError):
            ReminderIn(minutes_before=-1)
        with pytest.raises(ValidationError):
            ReminderIn(minutes_before=43201)
        with pytest.raises(ValidationError):
            ReminderIn(minutes_before=10, method="sms")

    def test_repeat_weekdays(self):
        assert RepeatConfig(weekdays=[3, 1, 3]).weekdays == [1, 3]
        with pytest.raises(ValidationError):
            RepeatConfig(weekdays=[7])

    def test_repeat_interval_floored(self):
        assert RepeatConfig(interval=2.8).interval == 2


class TestFields:
    def test_sanitize_hex_color(self):
        assert sanitize_hex_color("#ABC") == "#aabbcc"
        assert sanitize_hex_color(" #A1B2C3 ") == "#a1b2c3"
        assert sanitize_hex_color("red") is None
        assert sanitize_hex_color("#abcd") is None
        assert sanitize_hex_color(None) is None

    def test_normalize_tags_from_string(self):
        assert normalize_tags("work, Work ,  home  office,") == ["work", "home office"]

    def test_normalize_tags_limits(self):
        tags = normalize_tags([f"tag{i}" for i in range(30)] + ["x" * 50])
        assert len(tags) == 20
        assert normalize_tags(["y" * 50]) == ["y" * 32]
