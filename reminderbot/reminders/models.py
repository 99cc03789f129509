"""Data models for reminders and their scheduled firings."""

from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field

from ..caldav.models import Attendee

# Reminders created by the sync process carry this id until the store assigns one.
PLACEHOLDER_REMINDER_ID = -1


class Reminder(BaseModel):
    """A user-configured reminder bound to an event UID."""

    reminder_id: int = PLACEHOLDER_REMINDER_ID
    calendar_id: int
    user_id: int
    event_uid: str
    room: str = Field(..., description="Matrix room id or alias to post into")
    minutes_before: int = Field(default=5, ge=0)
    template: Optional[str] = None
    attendee_editable: bool = False


class PendingReminder(BaseModel):
    """A reminder joined with the event instance it fires for."""

    reminder_id: int
    calendar_id: int
    event_uid: str
    summary: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    room: str
    minutes_before: int
    template: Optional[str] = None
    occurrence: datetime
    attendees: List[Attendee] = Field(default_factory=list)

    @property
    def fire_time(self) -> datetime:
        return self.occurrence - timedelta(minutes=self.minutes_before)

    @property
    def dispatch_key(self) -> Tuple[int, str, datetime]:
        """Identifies one firing of one reminder."""
        return (self.reminder_id, self.event_uid, self.occurrence)
