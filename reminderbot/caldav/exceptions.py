"""CalDAV-specific exceptions for error handling."""

from typing import Optional


class CalDAVError(Exception):
    """Base exception for CalDAV-related errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class CalDAVFetchError(CalDAVError):
    """Exception raised when calendar data cannot be fetched."""



class CalDAVAuthError(CalDAVFetchError):
    """Exception raised when CalDAV authentication fails."""



class CalDAVNetworkError(CalDAVFetchError):
    """Exception raised for network-related CalDAV errors."""



class CalDAVDecodeError(CalDAVError):
    """Exception raised when a calendar document cannot be decoded."""

