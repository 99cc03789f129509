"""CalDAV retrieval, iCalendar decoding and recurrence expansion."""

from .exceptions import (
    CalDAVAuthError,
    CalDAVDecodeError,
    CalDAVError,
    CalDAVFetchError,
    CalDAVNetworkError,
)
from .fetcher import CalDAVFetcher
from .models import (
    Attendee,
    AuthType,
    BaseEvent,
    CalendarAuth,
    CalendarDocument,
    CalendarSource,
    EventInstance,
    RawEvent,
    RecurrenceEnd,
)
from .parser import CalendarDecoder
from .rrule_expander import RecurrenceExpander

__all__ = [
    "Attendee",
    "AuthType",
    "BaseEvent",
    "CalDAVAuthError",
    "CalDAVDecodeError",
    "CalDAVError",
    "CalDAVFetchError",
    "CalDAVFetcher",
    "CalDAVNetworkError",
    "CalendarAuth",
    "CalendarDecoder",
    "CalendarDocument",
    "CalendarSource",
    "EventInstance",
    "RawEvent",
    "RecurrenceEnd",
    "RecurrenceExpander",
]
