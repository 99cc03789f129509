"""Carrying reminders over when a meeting series is recreated under a new UID."""

import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple

from ..caldav.models import BaseEvent, CalendarSource, EventInstance, RawEvent, RecurrenceEnd
from ..reminders.models import PLACEHOLDER_REMINDER_ID, Reminder

logger = logging.getLogger(__name__)

PreviousEvents = List[Tuple[BaseEvent, List[EventInstance]]]


def _reminder_signature(reminder: Reminder) -> Tuple[Any, ...]:
    return (reminder.user_id, reminder.room, reminder.minutes_before, reminder.template)


class ReplacementMatcher(Protocol):
    """Decides which new events replace which previously stored ones."""

    def find_replacements(
        self,
        previous_events: PreviousEvents,
        new_events: List[BaseEvent],
        raw_events_by_uid: Mapping[str, RawEvent],
    ) -> List[Tuple[BaseEvent, BaseEvent]]:
        """Return (previous, replacement) pairs."""
        ...


class SummaryOrganizerMatcher:
    """Matches events by identical summary and organizer.

    Calendar clients often end a series ("this and following") by setting an
    UNTIL on the old rule and creating a fresh series with a new UID. Events
    whose series is still open-ended or count-bounded on the server are left
    alone: they have not been split.
    """

    def should_consider(
        self, previous: BaseEvent, raw_events_by_uid: Mapping[str, RawEvent]
    ) -> bool:
        raw_event = raw_events_by_uid.get(previous.uid)
        if raw_event is None:
            return True
        return raw_event.recurrence_end not in (RecurrenceEnd.COUNT, RecurrenceEnd.INFINITE)

    def find_replacements(
        self,
        previous_events: PreviousEvents,
        new_events: List[BaseEvent],
        raw_events_by_uid: Mapping[str, RawEvent],
    ) -> List[Tuple[BaseEvent, BaseEvent]]:
        previous_uids = {event.uid for event, _ in previous_events}

        by_key: Dict[Tuple[Any, ...], List[BaseEvent]] = {}
        for event in new_events:
            if event.uid in previous_uids:
                continue
            by_key.setdefault(event.dedup_key, []).append(event)

        pairs = []
        for previous, _ in previous_events:
            if not self.should_consider(previous, raw_events_by_uid):
                continue

            for candidate in by_key.get(previous.dedup_key, []):
                if candidate.uid != previous.uid:
                    pairs.append((previous, candidate))

        return pairs


class EventDeduplicator:
    """Copies a calendar owner's reminders from replaced events onto their successors."""

    def __init__(self, database: Any, matcher: Optional[ReplacementMatcher] = None):
        self.database = database
        self.matcher: ReplacementMatcher = matcher or SummaryOrganizerMatcher()

    async def reassign_reminders(
        self,
        source: CalendarSource,
        previous_events: PreviousEvents,
        new_events: List[BaseEvent],
        raw_events_by_uid: Mapping[str, RawEvent],
    ) -> List[Reminder]:
        """Create copies of the owner's reminders for each detected replacement.

        The reminders on the previous event stay untouched.

        Returns:
            The reminders that were created, with their assigned ids
        """
        created: List[Reminder] = []
        pairs = self.matcher.find_replacements(previous_events, new_events, raw_events_by_uid)

        for previous, replacement in pairs:
            reminders = await self.database.get_reminders_for_event(
                source.calendar_id, previous.uid
            )
            owned = [reminder for reminder in reminders if reminder.user_id == source.user_id]
            if not owned:
                continue

            logger.info(
                f"Found event duplicate, porting {len(owned)} reminders "
                f"from {previous.uid} to {replacement.uid}"
            )

            # Copies already made for this replacement are not repeated
            existing = {
                _reminder_signature(reminder)
                for reminder in await self.database.get_reminders_for_event(
                    source.calendar_id, replacement.uid
                )
            }

            for reminder in owned:
                if _reminder_signature(reminder) in existing:
                    continue
                copy = reminder.model_copy(
                    update={
                        "reminder_id": PLACEHOLDER_REMINDER_ID,
                        "event_uid": replacement.uid,
                    }
                )
                copy.reminder_id = await self.database.add_reminder(copy)
                created.append(copy)

        return created
