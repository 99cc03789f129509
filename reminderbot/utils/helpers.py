"""General utility functions and helpers."""

import logging
from collections.abc import Awaitable
from datetime import datetime, timedelta
from typing import Any, Callable, Optional, TypeVar

import pytz

logger = logging.getLogger(__name__)

T = TypeVar("T")


def utc_now() -> datetime:
    """Current time as a UTC-aware datetime."""
    return datetime.now(pytz.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Convert ``dt`` to UTC, treating naive values as already UTC."""
    if dt.tzinfo is None:
        return pytz.utc.localize(dt)
    return dt.astimezone(pytz.utc)


async def safe_async_call(
    func: Callable[..., Awaitable[T]],
    default: Optional[T] = None,
    log_errors: bool = True,
    *args: Any,
    **kwargs: Any,
) -> Optional[T]:
    """Safely call an async function with error handling.

    Args:
        func: Async function to call
        default: Default value to return on error
        log_errors: Whether to log errors
        *args: Arguments to pass to function
        **kwargs: Keyword arguments to pass to function

    Returns:
        Function result or default value on error
    """
    try:
        return await func(*args, **kwargs)
    except Exception:
        if log_errors:
            logger.exception(f"Error in {func.__name__}")
        return default


def format_duration(delta: timedelta) -> str:
    """Format a time span as a short human-readable string.

    Negative spans are rendered as "overdue".
    """
    seconds = int(delta.total_seconds())
    if seconds < 0:
        return "overdue"
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        minutes, remaining_seconds = divmod(seconds, 60)
        if remaining_seconds == 0:
            return f"{minutes}m"
        return f"{minutes}m {remaining_seconds}s"
    hours, remainder = divmod(seconds, 3600)
    remaining_minutes = remainder // 60
    if remaining_minutes == 0:
        return f"{hours}h"
    return f"{hours}h {remaining_minutes}m"
