"""Calendar synchronization pipeline."""

from .coordinator import SyncCoordinator
from .dedup import EventDeduplicator, SummaryOrganizerMatcher
from .exceptions import CalendarNotFoundError, SyncError

__all__ = [
    "CalendarNotFoundError",
    "EventDeduplicator",
    "SummaryOrganizerMatcher",
    "SyncCoordinator",
    "SyncError",
]
