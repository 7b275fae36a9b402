"""Shared test fixtures."""

from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from agenda.calendar.overrides import create_event
from agenda.core.database import get_session
from agenda.main import app
from agenda.models import Calendar, Event
from agenda.models.event import EventCreate
from agenda.models.reminder import ReminderIn
from agenda.models.repeat import RepeatConfig, RepeatPreset

SERIES_START = datetime(2025, 3, 3, 9, 0, tzinfo=UTC)


@pytest.fixture(name="engine")
def engine_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="session")
def session_fixture(engine):
    """Create a new database session for each test."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Create a test client with the test database session."""

    def get_session_override():
        return session

    app.dependency_overrides[get_session] = get_session_override
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="calendar")
def calendar_fixture(session: Session) -> Calendar:
    """Create the user's first calendar."""
    calendar = Calendar(name="Work", color="#112233")
    session.add(calendar)
    session.commit()
    session.refresh(calendar)
    return calendar


@pytest.fixture(name="weekly_series")
def weekly_series_fixture(session: Session, calendar: Calendar) -> Event:
    """Create a weekly Monday 09:00-10:00 series with a 15 minute reminder."""
    payload = EventCreate(
        calendar_id=calendar.id,
        title="Standup",
        start_at=SERIES_START,
        end_at=SERIES_START + timedelta(hours=1),
        location="Room 4",
        tags=["team"],
        repeat=RepeatConfig(preset=RepeatPreset.WEEKLY),
        reminders=[ReminderIn(minutes_before=15)],
    )
    return create_event(session, payload)


@pytest.fixture(name="single_event")
def single_event_fixture(session: Session, calendar: Calendar) -> Event:
    """Create a one-off event."""
    payload = EventCreate(
        calendar_id=calendar.id,
        title="Dentist",
        start_at=datetime(2025, 3, 12, 14, 0, tzinfo=UTC),
        end_at=datetime(2025, 3, 12, 15, 0, tzinfo=UTC),
        description="Bring insurance card",
    )
    return create_event(session, payload)
