"""Utility functions and helpers package."""

from .helpers import ensure_utc, format_duration, safe_async_call, utc_now
from .logging import setup_logging

__all__ = [
    "ensure_utc",
    "format_duration",
    "safe_async_call",
    "setup_logging",
    "utc_now",
]
