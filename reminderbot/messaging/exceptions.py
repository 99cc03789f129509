"""Messaging exceptions."""

from typing import Optional


class DispatchError(Exception):
    """Raised when a reminder cannot be delivered to its room."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
