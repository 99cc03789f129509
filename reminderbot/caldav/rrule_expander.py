"""RRULE expansion of fetched events into a bounded window of occurrences."""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from dateutil.rrule import rrulestr, rruleset
from icalendar.prop import vRecur

from ..utils.helpers import utc_now
from .models import BaseEvent, EventInstance, RawEvent
from .parser import parse_attendees, parse_organizer, text_property

logger = logging.getLogger(__name__)


class RecurrenceExpansionError(Exception):
    """Raised when an event's recurrence data cannot be expanded."""


def _as_aware(value: date, reference: datetime) -> datetime:
    """Interpret a DATE or floating DATE-TIME in the zone of ``reference``."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=reference.tzinfo)
        return value
    return datetime.combine(value, reference.timetz())


def _date_values(prop: Any, reference: datetime) -> List[datetime]:
    """Flatten EXDATE/RDATE properties into aware datetimes."""
    if prop is None:
        return []
    props = prop if isinstance(prop, list) else [prop]

    values = []
    for item in props:
        for entry in getattr(item, "dts", []):
            value = entry.dt
            if isinstance(value, tuple):
                # PERIOD values, only the start matters here
                value = value[0]
            values.append(_as_aware(value, reference))
    return values


class RecurrenceExpander:
    """Expands master events and their overrides into concrete instances.

    Instances are bounded to a window around "now" so that the stored set
    stays small and only meetings that can still fire reminders are kept.
    All-day and floating events are never expanded because they have no
    absolute start time to count a reminder offset from.
    """

    def __init__(self, settings: Any):
        """Initialize RecurrenceExpander with settings.

        Args:
            settings: Application settings providing the expansion window
        """
        self.settings = settings
        self.past_window = timedelta(days=settings.expansion_past_days)
        self.future_window = timedelta(days=settings.expansion_future_days)

    def window(self, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
        """Inclusive expansion window around ``now``."""
        if now is None:
            now = utc_now()
        return now - self.past_window, now + self.future_window

    def expand(
        self, calendar_id: int, raw_events: Iterable[RawEvent], now: Optional[datetime] = None
    ) -> Tuple[List[BaseEvent], List[EventInstance]]:
        """Expand every raw event of a calendar.

        Args:
            calendar_id: Calendar the events belong to
            raw_events: Decoded events grouped by UID
            now: Reference time for the window, defaults to the current time

        Returns:
            Base events and their instances ordered by occurrence
        """
        window_start, window_end = self.window(now)
        events: List[BaseEvent] = []
        instances: List[EventInstance] = []

        for raw_event in raw_events:
            try:
                expanded = self.expand_event(calendar_id, raw_event, window_start, window_end)
            except RecurrenceExpansionError as e:
                logger.warning(f"Skipping event {raw_event.uid}: {e}")
                continue

            if expanded is None:
                continue

            event, event_instances = expanded
            events.append(event)
            instances.extend(event_instances)

        instances.sort(key=lambda instance: instance.occurrence)
        logger.debug(
            f"Expanded {len(events)} events into {len(instances)} instances "
            f"for calendar {calendar_id}"
        )
        return events, instances

    def expand_event(
        self,
        calendar_id: int,
        raw_event: RawEvent,
        window_start: datetime,
        window_end: datetime,
    ) -> Optional[Tuple[BaseEvent, List[EventInstance]]]:
        """Expand a single event, or return None when it is not schedulable."""
        base = raw_event.master
        if base is None:
            if not raw_event.overrides:
                return None
            base = raw_event.overrides[0]

        dtstart_prop = base.get("DTSTART")
        if dtstart_prop is None:
            logger.debug(f"Event {raw_event.uid} has no DTSTART")
            return None

        try:
            # Malformed values surface as broken properties that raise on access
            dtstart = dtstart_prop.dt
            if not hasattr(dtstart, "hour"):
                logger.debug(f"Skipping all-day event {raw_event.uid}")
                return None
            if dtstart.tzinfo is None:
                logger.debug(f"Skipping floating event {raw_event.uid}")
                return None

            event = BaseEvent(
                calendar_id=calendar_id,
                uid=raw_event.uid,
                summary=text_property(base, "SUMMARY"),
                description=text_property(base, "DESCRIPTION"),
                location=text_property(base, "LOCATION"),
                organizer=parse_organizer(base),
                attendees=parse_attendees(base),
                recurrence_end=raw_event.recurrence_end,
            )

            if raw_event.master is None:
                instances = self._override_instances(
                    event, raw_event.overrides, dtstart, window_start, window_end
                )
            else:
                instances = self._master_instances(
                    event, raw_event, dtstart, window_start, window_end
                )
        except (ValueError, TypeError, AttributeError, OverflowError) as e:
            raise RecurrenceExpansionError(str(e)) from e

        instances.sort(key=lambda instance: instance.occurrence)
        return event, instances

    def _master_instances(
        self,
        event: BaseEvent,
        raw_event: RawEvent,
        dtstart: datetime,
        window_start: datetime,
        window_end: datetime,
    ) -> List[EventInstance]:
        master = raw_event.master
        overridden: Dict[datetime, Any] = {}
        for override in raw_event.overrides:
            recurrence_id = _as_aware(override.get("RECURRENCE-ID").dt, dtstart)
            overridden[recurrence_id] = override

        if master.get("RRULE") is None and master.get("RDATE") is None:
            slots = [dtstart]
        else:
            slots = self._build_ruleset(master, dtstart).between(
                window_start, window_end, inc=True
            )

        instances = [
            EventInstance(uid=event.uid, occurrence=slot, attendees=event.attendees)
            for slot in slots
            if slot not in overridden and window_start <= slot <= window_end
        ]
        instances.extend(
            self._override_instances(
                event, overridden.values(), dtstart, window_start, window_end
            )
        )
        return instances

    def _override_instances(
        self,
        event: BaseEvent,
        overrides: Iterable[Any],
        dtstart: datetime,
        window_start: datetime,
        window_end: datetime,
    ) -> List[EventInstance]:
        instances = []
        for override in overrides:
            if str(override.get("STATUS", "")).upper() == "CANCELLED":
                continue

            start_prop = override.get("DTSTART")
            if start_prop is None or not hasattr(start_prop.dt, "hour"):
                continue

            occurrence = _as_aware(start_prop.dt, dtstart)
            if window_start <= occurrence <= window_end:
                instances.append(
                    EventInstance(
                        uid=event.uid,
                        occurrence=occurrence,
                        attendees=parse_attendees(override),
                    )
                )
        return instances

    def _build_ruleset(self, master: Any, dtstart: datetime) -> rruleset:
        """Build a dateutil rruleset from RRULE, RDATE and EXDATE."""
        rules = rruleset()
        rules.rdate(dtstart)

        rrule_props = master.get("RRULE")
        if rrule_props is not None:
            if not isinstance(rrule_props, list):
                rrule_props = [rrule_props]
            for rrule_prop in rrule_props:
                rules.rrule(self._parse_rule(rrule_prop, dtstart))

        for value in _date_values(master.get("RDATE"), dtstart):
            rules.rdate(value)
        for value in _date_values(master.get("EXDATE"), dtstart):
            rules.exdate(value)

        return rules

    def _parse_rule(self, rrule_prop: Any, dtstart: datetime) -> Any:
        # dateutil rejects a naive UNTIL next to an aware DTSTART
        recur = vRecur(rrule_prop)
        until = recur.pop("UNTIL", None)

        rule = rrulestr(recur.to_ical().decode("utf-8"), dtstart=dtstart)
        if until:
            until_value = until[0] if isinstance(until, list) else until
            rule = rule.replace(until=_as_aware(until_value, dtstart))
        return rule
