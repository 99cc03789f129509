"""Thread-safe ordered queue of upcoming reminder firings."""

import threading
from collections import deque
from datetime import datetime, timedelta
from typing import Deque, Iterable, List, Optional, Tuple

from ..utils.helpers import utc_now
from .models import PendingReminder

QueueEntry = Tuple[datetime, PendingReminder]


class ReminderQueue:
    """Reminders ordered by fire time.

    The queue is only ever rebuilt as a whole with :meth:`replace`; the
    scheduler consumes due entries from the front with :meth:`pop_due`.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: Deque[QueueEntry] = deque()

    def replace(self, entries: Iterable[QueueEntry]) -> None:
        """Swap in a new set of entries, stably sorted by fire time."""
        ordered = deque(sorted(entries, key=lambda entry: entry[0]))
        with self._lock:
            self._entries = ordered

    def time_to_next(self, now: Optional[datetime] = None) -> Optional[timedelta]:
        """Time until the earliest entry fires; negative when it is overdue."""
        if now is None:
            now = utc_now()
        with self._lock:
            if not self._entries:
                return None
            return self._entries[0][0] - now

    def pop_due(self, now: Optional[datetime] = None) -> List[PendingReminder]:
        """Remove and return every entry whose fire time is at or before ``now``."""
        if now is None:
            now = utc_now()
        due = []
        with self._lock:
            while self._entries and self._entries[0][0] <= now:
                due.append(self._entries.popleft()[1])
        return due

    def snapshot(self) -> List[QueueEntry]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
