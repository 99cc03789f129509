"""Per-calendar synchronization pipeline: fetch, expand, deduplicate, persist."""

import asyncio
import logging
from collections.abc import Awaitable
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from ..caldav.exceptions import CalDAVError
from ..caldav.fetcher import CalDAVFetcher
from ..caldav.models import CalendarSource
from ..caldav.parser import CalendarDecoder
from ..caldav.rrule_expander import RecurrenceExpander
from ..storage.exceptions import PersistenceError
from ..utils.helpers import utc_now
from .dedup import EventDeduplicator
from .exceptions import CalendarNotFoundError, SyncError

logger = logging.getLogger(__name__)


class SyncCoordinator:
    """Runs the sync pipeline for one or all calendars.

    A failure while syncing one calendar never affects the others. After
    every successful write the ``on_synced`` callback is awaited so that the
    reminder queue can be rebuilt from the new state.
    """

    def __init__(
        self,
        settings: Any,
        database: Any,
        fetcher: Optional[CalDAVFetcher] = None,
        decoder: Optional[CalendarDecoder] = None,
        expander: Optional[RecurrenceExpander] = None,
        deduplicator: Optional[EventDeduplicator] = None,
        on_synced: Optional[Callable[[], Awaitable[Any]]] = None,
    ):
        self.settings = settings
        self.database = database
        self.fetcher = fetcher or CalDAVFetcher(settings)
        self.decoder = decoder or CalendarDecoder()
        self.expander = expander or RecurrenceExpander(settings)
        self.deduplicator = deduplicator or EventDeduplicator(database)
        self.on_synced = on_synced

        self.last_successful_sync: Dict[int, datetime] = {}
        self._locks: Dict[int, asyncio.Lock] = {}

    def _calendar_lock(self, calendar_id: int) -> asyncio.Lock:
        return self._locks.setdefault(calendar_id, asyncio.Lock())

    async def sync_calendar(self, source: CalendarSource, now: Optional[datetime] = None) -> None:
        """Synchronize one calendar.

        Passes over the same calendar are serialized so that two of them never
        copy the same reminder from one stored snapshot.

        Args:
            source: Calendar to synchronize
            now: Reference time for the expansion window

        Raises:
            SyncError: If any stage fails; stored events are left unchanged
        """
        if now is None:
            now = utc_now()

        lock = self._calendar_lock(source.calendar_id)
        if lock.locked():
            logger.verbose(  # type: ignore[attr-defined]
                f"Calendar {source.calendar_id} is already syncing, waiting"
            )

        async with lock:
            logger.info(f"Syncing calendar {source.calendar_id} ({source.name})")

            try:
                documents = await self.fetcher.fetch_calendar_documents(source)
                raw_events = self.decoder.decode_documents(documents)
                raw_events_by_uid = {raw_event.uid: raw_event for raw_event in raw_events}

                events, instances = self.expander.expand(source.calendar_id, raw_events, now=now)

                previous_events = await self.database.get_previous_instances(source.calendar_id)
                await self.deduplicator.reassign_reminders(
                    source, previous_events, events, raw_events_by_uid
                )

                await self.database.upsert_events_and_replace_instances(
                    source.calendar_id, events, instances
                )

            except CalDAVError as e:
                raise SyncError(
                    f"Fetching calendar {source.calendar_id} failed: {e.message}",
                    source.calendar_id,
                ) from e
            except PersistenceError as e:
                raise SyncError(
                    f"Storing calendar {source.calendar_id} failed: {e.message}",
                    source.calendar_id,
                ) from e
            except Exception as e:
                logger.exception(f"Unexpected error syncing calendar {source.calendar_id}")
                raise SyncError(
                    f"Syncing calendar {source.calendar_id} failed: {e}", source.calendar_id
                ) from e

            self.last_successful_sync[source.calendar_id] = now

        logger.info(
            f"Calendar {source.calendar_id} synced: {len(events)} events, "
            f"{len(instances)} upcoming instances"
        )

        if self.on_synced is not None:
            try:
                await self.on_synced()
            except PersistenceError:
                logger.exception("Reminder recompute after sync failed")

    async def sync_calendar_by_id(self, calendar_id: int) -> None:
        """Look up a calendar and synchronize it.

        Raises:
            CalendarNotFoundError: If no such calendar exists
            SyncError: If the sync fails
        """
        try:
            source = await self.database.get_calendar_source(calendar_id)
        except PersistenceError as e:
            raise SyncError(
                f"Loading calendar {calendar_id} failed: {e.message}", calendar_id
            ) from e

        if source is None:
            raise CalendarNotFoundError(f"Calendar {calendar_id} does not exist", calendar_id)

        await self.sync_calendar(source)

    async def sync_all_calendars(self) -> Dict[int, bool]:
        """Synchronize every calendar, isolating failures per calendar.

        Returns:
            Mapping of calendar id to whether its sync succeeded
        """
        try:
            sources = await self.database.get_calendar_sources()
        except PersistenceError:
            logger.exception("Could not load calendar list")
            return {}

        results: Dict[int, bool] = {}
        for source in sources:
            try:
                await self.sync_calendar(source)
                results[source.calendar_id] = True
            except SyncError as e:
                logger.error(f"Sync failed for calendar {source.calendar_id}: {e.message}")
                results[source.calendar_id] = False
            except Exception:
                logger.exception(f"Unexpected error syncing calendar {source.calendar_id}")
                results[source.calendar_id] = False

        succeeded = sum(1 for ok in results.values() if ok)
        logger.info(f"Sync pass complete: {succeeded}/{len(results)} calendars updated")
        return results

    async def close(self) -> None:
        await self.fetcher._close_client()
