"""Tests for API routes."""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

from fastapi.testclient import TestClient
from sqlmodel import Session, select

from agenda.models import Calendar, Event, Reminder

ICS_DOCUMENT = "\r\n".join(
    [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "BEGIN:VEVENT",
        "SUMMARY:Imported meeting",
        "DTSTART:20250310T090000Z",
        "DTEND:20250310T100000Z",
        "DESCRIPTION:Discuss the",
        "  roadmap",
        "END:VEVENT",
        "BEGIN:VEVENT",
        "SUMMARY:No start",
        "END:VEVENT",
        "BEGIN:VEVENT",
        "SUMMARY:Offsite",
        "DTSTART;VALUE=DATE:20250320",
        "END:VEVENT",
        "END:VCALENDAR",
    ]
)


class TestHealthEndpoint:
    """Tests for the health check endpoint."""

    def test_health_check(self, client: TestClient):
        """Test the health endpoint returns OK."""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["app"] == "Agenda"


class TestEventsRoutes:
    """Tests for event-related routes."""

    def test_create_series(self, client: TestClient, calendar: Calendar):
        """Test creating a weekly series from a repeat config."""
        response = client.post(
            "/events",
            json={
                "calendar_id": str(calendar.id),
                "title": "Standup",
                "start_at": "2025-03-03T09:00:00Z",
                "end_at": "2025-03-03T09:15:00Z",
                "repeat": {"preset": "weekly", "weekdays": [1, 3, 5], "end_mode": "after_count", "count": 5},
                "reminders": [{"minutes_before": 10}],
            },
        )
        assert response.status_code == 201
        data = response.json()
        assert data["recurrence_rule"].endswith("RRULE:FREQ=WEEKLY;BYDAY=MO,WE,FR;COUNT=5")
        assert data["recurrence_count"] == 5
        assert data["reminders"][0]["minutes_before"] == 10

    def test_create_invalid_window(self, client: TestClient, calendar: Calendar):
        """Test 400 when the end is not after the start."""
        response = client.post(
            "/events",
            json={
                "calendar_id": str(calendar.id),
                "title": "Backwards",
                "start_at": "2025-03-03T10:00:00Z",
                "end_at": "2025-03-03T09:00:00Z",
            },
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "End time must be after start time."

    def test_event_detail(self, client: TestClient, single_event: Event):
        response = client.get(f"/events/{single_event.id}")
        assert response.status_code == 200
        assert response.json()["title"] == "Dentist"

    def test_event_detail_not_found(self, client: TestClient):
        """Test 404 for non-existent event."""
        response = client.get(f"/events/{uuid4()}")
        assert response.status_code == 404
        assert response.json()["detail"] == "Event not found."

    def test_list_events_in_range(self, client: TestClient, weekly_series: Event, single_event: Event):
        response = client.get(
            "/events",
            params={"start": "2025-03-09T00:00:00Z", "end": "2025-03-16T00:00:00Z"},
        )
        assert response.status_code == 200
        ids = {e["id"] for e in response.json()["events"]}
        assert ids == {str(weekly_series.id), str(single_event.id)}

    def test_list_events_invalid_range(self, client: TestClient):
        response = client.get(
            "/events",
            params={"start": "2025-03-16T00:00:00Z", "end": "2025-03-09T00:00:00Z"},
        )
        assert response.status_code == 400

    def test_list_events_default_range(self, client: TestClient, calendar: Calendar):
        """Without bounds the window is three months either side of now."""
        now = datetime.now(UTC)
        soon = client.post(
            "/events",
            json={
                "calendar_id": str(calendar.id),
                "title": "Soon",
                "start_at": (now + timedelta(days=7)).isoformat(),
                "end_at": (now + timedelta(days=7, hours=1)).isoformat(),
            },
        ).json()
        client.post(
            "/events",
            json={
                "calendar_id": str(calendar.id),
                "title": "Next year",
                "start_at": (now + timedelta(days=200)).isoformat(),
                "end_at": (now + timedelta(days=200, hours=1)).isoformat(),
            },
        )

        response = client.get("/events")
        assert response.status_code == 200
        assert [e["id"] for e in response.json()["events"]] == [soon["id"]]

    def test_list_events_bad_calendar_filter(self, client: TestClient):
        response = client.get(
            "/events",
            params={"start": "2025-03-09T00:00:00Z", "end": "2025-03-16T00:00:00Z", "calendarIds": "nope"},
        )
        assert response.status_code == 400

    def test_search(self, client: TestClient, single_event: Event, weekly_series: Event):
        response = client.get("/events/search", params={"q": "INSURANCE"})
        assert response.status_code == 200
        assert [e["id"] for e in response.json()["events"]] == [str(single_event.id)]

    def test_search_short_query(self, client: TestClient, single_event: Event):
        response = client.get("/events/search", params={"q": "d"})
        assert response.json()["events"] == []

    def test_patch_series(self, client: TestClient, weekly_series: Event):
        response = client.patch(f"/events/{weekly_series.id}", json={"title": "Sync", "location": None})
        assert response.status_code == 200
        data = response.json()
        assert data["title"] == "Sync"
        assert data["location"] is None
        assert data["tags"] == ["team"]

    def test_patch_single_occurrence(self, client: TestClient, weekly_series: Event, session: Session):
        """Test editing one occurrence creates an override."""
        response = client.patch(
            f"/events/{weekly_series.id}",
            params={"scope": "single", "occurrenceStart": "2025-03-10T09:00:00Z"},
            json={"title": "Standup (remote)"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["parent_event_id"] == str(weekly_series.id)
        assert data["recurrence_rule"] is None
        assert datetime.fromisoformat(data["original_occurrence_start"]) == datetime(2025, 3, 10, 9, 0, tzinfo=UTC)

        session.refresh(weekly_series)
        assert weekly_series.exdate_instants() == [datetime(2025, 3, 10, 9, 0, tzinfo=UTC)]

    def test_patch_single_requires_occurrence(self, client: TestClient, weekly_series: Event):
        response = client.patch(
            f"/events/{weekly_series.id}",
            params={"scope": "single"},
            json={"title": "x"},
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "occurrenceStart is required when scope is single."

    def test_delete_single_occurrence(self, client: TestClient, weekly_series: Event, session: Session):
        response = client.delete(
            f"/events/{weekly_series.id}",
            params={"scope": "single", "occurrenceStart": "2025-03-17T09:00:00Z"},
        )
        assert response.status_code == 200
        assert response.json()["deleted"] == 0
        session.refresh(weekly_series)
        assert weekly_series.exdate_instants() == [datetime(2025, 3, 17, 9, 0, tzinfo=UTC)]

    def test_delete_series_with_overrides(self, client: TestClient, weekly_series: Event, session: Session):
        client.patch(
            f"/events/{weekly_series.id}",
            params={"scope": "single", "occurrenceStart": "2025-03-10T09:00:00Z"},
            json={"title": "Moved"},
        )
        response = client.delete(f"/events/{weekly_series.id}")
        assert response.status_code == 200
        assert response.json()["deleted"] == 2
        assert session.exec(select(Event)).all() == []

    def test_delete_standalone(self, client: TestClient, single_event: Event, session: Session):
        event_id = single_event.id
        response = client.delete(f"/events/{event_id}")
        assert response.status_code == 200
        assert response.json()["deleted"] == 1
        assert session.get(Event, event_id) is None


class TestReminderRoutes:
    """Tests for reminder polling and firing."""

    def test_due_and_fire(self, client: TestClient, session: Session, calendar: Calendar):
        now = datetime.now(UTC)
        event = Event(
            calendar_id=calendar.id,
            title="Call",
            start_at=now + timedelta(minutes=20),
            end_at=now + timedelta(minutes=50),
        )
        event.reminders = [Reminder(minutes_before=15)]
        session.add(event)
        session.commit()

        response = client.get("/events/reminders", params={"windowMinutes": "5000"})
        assert response.status_code == 200
        data = response.json()
        assert data["window_minutes"] == 1440
        assert len(data["reminders"]) == 1
        reminder_id = data["reminders"][0]["id"]

        response = client.post(f"/events/reminders/{reminder_id}/fire")
        assert response.status_code == 200
        first = response.json()["reminder"]["fired_at"]
        assert first is not None

        response = client.post(f"/events/reminders/{reminder_id}/fire")
        assert response.json()["message"] == "Reminder already fired."
        assert response.json()["reminder"]["fired_at"] == first

        assert client.get("/events/reminders").json()["reminders"] == []

    def test_fire_unknown(self, client: TestClient):
        response = client.post(f"/events/reminders/{uuid4()}/fire")
        assert response.status_code == 404


class TestCalendarRoutes:
    """Tests for calendar management, import and export."""

    def test_list_creates_default(self, client: TestClient):
        response = client.get("/calendars")
        assert response.status_code == 200
        calendars = response.json()["calendars"]
        assert [c["name"] for c in calendars] == ["Personal"]

    def test_create_and_patch(self, client: TestClient):
        response = client.post("/calendars", json={"name": "Family", "color": "#F00"})
        assert response.status_code == 201
        created = response.json()
        assert created["color"] == "#ff0000"

        response = client.patch(f"/calendars/{created['id']}", json={"color": "blue"})
        assert response.status_code == 400

        response = client.patch(f"/calendars/{created['id']}", json={"name": "Home"})
        assert response.json()["name"] == "Home"

    def test_delete_moves_events(self, client: TestClient, session: Session, single_event: Event, calendar: Calendar):
        other = client.post("/calendars", json={"name": "Other"}).json()

        response = client.delete(f"/calendars/{calendar.id}")
        assert response.status_code == 200
        assert response.json()["events_moved_to"] == other["id"]

        session.refresh(single_event)
        assert str(single_event.calendar_id) == other["id"]

    def test_cannot_delete_last_calendar(self, client: TestClient, calendar: Calendar):
        response = client.delete(f"/calendars/{calendar.id}")
        assert response.status_code == 400

    def test_import(self, client: TestClient, session: Session, calendar: Calendar):
        response = client.post(
            "/calendars/import",
            files={"file": ("work.ics", ICS_DOCUMENT.encode(), "text/calendar")},
            data={"calendar_id": str(calendar.id), "timezone": "UTC"},
        )
        assert response.status_code == 200
        assert response.json() == {"imported_count": 2, "skipped_count": 1}

        events = session.exec(select(Event).order_by(Event.start_at)).all()
        assert [e.title for e in events] == ["Imported meeting", "Offsite"]
        assert events[0].description == "Discuss the roadmap"
        assert events[1].all_day is True

    def test_import_empty_file(self, client: TestClient, calendar: Calendar):
        response = client.post(
            "/calendars/import",
            files={"file": ("empty.ics", b"   ", "text/calendar")},
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "ICS file is empty."

    def test_import_without_events(self, client: TestClient, calendar: Calendar):
        response = client.post(
            "/calendars/import",
            files={"file": ("none.ics", b"BEGIN:VCALENDAR\r\nEND:VCALENDAR\r\n", "text/calendar")},
        )
        assert response.status_code == 400

    def test_import_bad_timezone(self, client: TestClient, calendar: Calendar):
        response = client.post(
            "/calendars/import",
            files={"file": ("work.ics", ICS_DOCUMENT.encode(), "text/calendar")},
            data={"timezone": "Mars/Olympus"},
        )
        assert response.status_code == 400

    def test_export(self, client: TestClient, calendar: Calendar, weekly_series: Event, single_event: Event):
        client.patch(
            f"/events/{weekly_series.id}",
            params={"scope": "single", "occurrenceStart": "2025-03-10T09:00:00Z"},
            json={"title": "Moved"},
        )
        response = client.get(f"/calendars/{calendar.id}/export")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/calendar")
        assert 'filename="work.ics"' in response.headers["content-disposition"]

        body = response.text
        assert "BEGIN:VCALENDAR" in body
        assert body.count("BEGIN:VEVENT") == 3
        assert "RRULE:FREQ=WEEKLY;BYDAY=MO" in body
        assert "EXDATE" in body
        assert "RECURRENCE-ID" in body
        assert "SUMMARY:Dentist" in body


class TestRuleRoutes:
    def test_encode(self, client: TestClient):
        response = client.post(
            "/rules/encode",
            json={"repeat": {"preset": "daily", "end_mode": "after_count", "count": 3}, "start_at": "2025-03-03T09:00:00Z"},
        )
        assert response.json()["rule"] == "DTSTART:20250303T090000Z\nRRULE:FREQ=DAILY;COUNT=3"

    def test_decode(self, client: TestClient):
        response = client.post("/rules/decode", json={"rule": "FREQ=DAILY;UNTIL=20250601T000000Z"})
        repeat = response.json()["repeat"]
        assert repeat["preset"] == "daily"
        assert repeat["end_mode"] == "on_date"
        assert repeat["until_date"] == "2025-06-01"
