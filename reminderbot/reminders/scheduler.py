"""Scheduler loop that fires reminders when they come due."""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from ..messaging.exceptions import DispatchError
from ..storage.exceptions import PersistenceError
from ..utils.helpers import format_duration, utc_now
from .queue import ReminderQueue

logger = logging.getLogger(__name__)

# How long dispatched firings are remembered for duplicate suppression
DISPATCH_HISTORY = timedelta(days=1)


class ReminderScheduler:
    """Sleeps until the next reminder is due, then dispatches everything due.

    The sleep is capped at ``scheduler_max_sleep`` seconds and is cut short by
    :meth:`notify`, which is called whenever the queue is rebuilt. A wake-up
    requested while the loop is busy dispatching is kept and consumed by the
    next wait.
    """

    def __init__(self, settings: Any, queue: ReminderQueue, dispatcher: Any, database: Any):
        self.settings = settings
        self.queue = queue
        self.dispatcher = dispatcher
        self.database = database
        self.max_sleep = timedelta(seconds=settings.scheduler_max_sleep)

        self._wakeup = asyncio.Event()
        self._dispatched: Dict[Tuple[int, str, datetime], datetime] = {}

    def notify(self) -> None:
        """Wake the loop so it re-evaluates the head of the queue."""
        self._wakeup.set()

    async def recompute(self, now: Optional[datetime] = None) -> int:
        """Rebuild the queue from stored reminders and instances.

        Firings whose time has already passed are dropped, not sent late.

        Returns:
            Number of queued firings
        """
        joins = await self.database.get_all_pending_reminder_joins()
        if now is None:
            now = utc_now()

        upcoming = [(fire_time, reminder) for fire_time, reminder in joins if fire_time >= now]
        self.queue.replace(upcoming)
        self.notify()

        logger.info(f"Reminder queue rebuilt: {len(upcoming)} upcoming firings")
        return len(upcoming)

    def next_sleep(self, now: Optional[datetime] = None) -> timedelta:
        time_to_next = self.queue.time_to_next(now)
        if time_to_next is None:
            return self.max_sleep
        return min(time_to_next, self.max_sleep)

    async def wait_for_next(self) -> None:
        """Wait until the next firing, a notification, or the sleep cap."""
        sleep = self.next_sleep()
        if sleep <= timedelta(0):
            return

        logger.debug(f"Next reminder check in {format_duration(sleep)}")
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout=sleep.total_seconds())
        except asyncio.TimeoutError:
            return
        self._wakeup.clear()

    async def dispatch_due(self, now: Optional[datetime] = None) -> int:
        """Send every reminder that is due.

        A failed delivery is logged and not retried; the remaining reminders
        are still sent.

        Returns:
            Number of reminders delivered
        """
        if now is None:
            now = utc_now()

        sent = 0
        for reminder in self.queue.pop_due(now):
            key = reminder.dispatch_key
            if key in self._dispatched:
                logger.debug(
                    f"Reminder {reminder.reminder_id} already sent for {reminder.occurrence}"
                )
                continue
            self._dispatched[key] = reminder.occurrence

            try:
                await self.dispatcher.send(reminder)
                sent += 1
            except (DispatchError, PersistenceError) as e:
                logger.error(
                    f"Failed to send reminder {reminder.reminder_id} "
                    f"for {reminder.event_uid}: {e.message}"
                )
            except Exception:
                logger.exception(f"Unexpected error sending reminder {reminder.reminder_id}")

        self._prune_dispatched(now)
        return sent

    def _prune_dispatched(self, now: datetime) -> None:
        cutoff = now - DISPATCH_HISTORY
        expired = [key for key, occurrence in self._dispatched.items() if occurrence < cutoff]
        for key in expired:
            del self._dispatched[key]

    async def run(self, shutdown_event: asyncio.Event) -> None:
        """Run until ``shutdown_event`` is set.

        Setting the event should be followed by :meth:`notify` so that a
        sleeping loop notices promptly.
        """
        logger.info(f"Starting reminder scheduler (max sleep: {format_duration(self.max_sleep)})")

        while not shutdown_event.is_set():
            try:
                await self.wait_for_next()
                if shutdown_event.is_set():
                    break
                await self.dispatch_due()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Reminder scheduler error")

        logger.info("Reminder scheduler stopped")
