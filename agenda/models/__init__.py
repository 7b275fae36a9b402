from agenda.models.calendar import Calendar
from agenda.models.event import Event
from agenda.models.reminder import Reminder

__all__ = ["Calendar", "Event", "Reminder"]
