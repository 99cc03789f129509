"""Sync-specific exceptions."""

from typing import Optional


class SyncError(Exception):
    """Base exception for calendar synchronization errors."""

    def __init__(self, message: str, calendar_id: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.calendar_id = calendar_id


class CalendarNotFoundError(SyncError):
    """Exception raised when a sync is requested for an unknown calendar."""

