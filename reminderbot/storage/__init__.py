"""SQLite persistence for calendars, events, instances and reminders."""

from .database import DatabaseManager
from .exceptions import PersistenceError

__all__ = ["DatabaseManager", "PersistenceError"]
