"""Data models for CalDAV calendar processing."""

import base64
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class AuthType(str, Enum):
    """Supported authentication types for CalDAV sources."""

    NONE = "none"
    BASIC = "basic"
    BEARER = "bearer"


class CalendarAuth(BaseModel):
    """Authentication configuration for a CalDAV source."""

    type: AuthType = AuthType.NONE
    username: Optional[str] = None
    password: Optional[str] = Field(default=None, repr=False)
    bearer_token: Optional[str] = Field(default=None, repr=False)

    def get_headers(self) -> Dict[str, str]:
        """Get HTTP headers for authentication."""
        headers = {}

        if self.type == AuthType.BASIC and self.username:
            credentials = f"{self.username}:{self.password or ''}"
            encoded = base64.b64encode(credentials.encode()).decode()
            headers["Authorization"] = f"Basic {encoded}"

        elif self.type == AuthType.BEARER and self.bearer_token:
            headers["Authorization"] = f"Bearer {self.bearer_token}"

        return headers


class CalendarSource(BaseModel):
    """A user's remote calendar as stored by the application."""

    calendar_id: int = Field(..., description="Store-assigned calendar identifier")
    user_id: int = Field(..., description="Owning user")
    name: str = Field(..., description="Human-readable calendar name")
    url: str = Field(..., description="CalDAV collection URL")
    auth: CalendarAuth = Field(default_factory=CalendarAuth)


class Attendee(BaseModel):
    """An event participant identified by email address."""

    email: str
    common_name: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def display_name(self) -> str:
        return self.common_name or self.email


class RecurrenceEnd(str, Enum):
    """How an event's recurrence rule terminates."""

    NONE = "none"
    COUNT = "count"
    INFINITE = "infinite"
    UNTIL = "until"


class BaseEvent(BaseModel):
    """Recurring or single event definition, independent of its occurrences."""

    calendar_id: int
    uid: str
    summary: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    organizer: Optional[Attendee] = None
    attendees: List[Attendee] = Field(default_factory=list)
    recurrence_end: RecurrenceEnd = RecurrenceEnd.NONE

    @property
    def dedup_key(self) -> tuple:
        """Key used to recognise the same meeting under a new UID."""
        return (self.summary, self.organizer)


class EventInstance(BaseModel):
    """One concrete occurrence of a BaseEvent."""

    uid: str
    occurrence: datetime
    attendees: List[Attendee] = Field(default_factory=list)


class CalendarDocument(BaseModel):
    """A single calendar-data payload from a CalDAV multistatus response."""

    href: Optional[str] = None
    etag: Optional[str] = None
    calendar_data: str


@dataclass
class RawEvent:
    """All fetched VEVENT components sharing one UID.

    ``master`` is the component carrying the recurrence rule (or the only
    component for single events); ``overrides`` hold RECURRENCE-ID instances.
    """

    uid: str
    master: Optional[Any] = None
    overrides: List[Any] = field(default_factory=list)

    @property
    def recurrence_end(self) -> RecurrenceEnd:
        if self.master is None:
            return RecurrenceEnd.NONE

        rule = self.master.get("RRULE")
        if rule is None:
            return RecurrenceEnd.NONE
        if "UNTIL" in rule:
            return RecurrenceEnd.UNTIL
        if "COUNT" in rule:
            return RecurrenceEnd.COUNT
        return RecurrenceEnd.INFINITE
