"""Decoding of CalDAV calendar-data payloads into grouped VEVENT components."""

import logging
from typing import Any, Dict, Iterable, List, Optional

from icalendar import Calendar

from .exceptions import CalDAVDecodeError
from .models import Attendee, CalendarDocument, RawEvent

logger = logging.getLogger(__name__)

MAILTO_PREFIX = "mailto:"


def parse_attendee(attendee_prop: Any) -> Optional[Attendee]:
    """Parse an ATTENDEE or ORGANIZER property.

    Only ``mailto:`` addresses are understood. Participants who declined are
    treated as absent.

    Args:
        attendee_prop: iCalendar vCalAddress property

    Returns:
        Parsed Attendee or None
    """
    value = str(attendee_prop).strip()
    if not value.lower().startswith(MAILTO_PREFIX):
        return None

    email = value[len(MAILTO_PREFIX) :]
    if not email:
        return None

    params = getattr(attendee_prop, "params", {})
    if str(params.get("PARTSTAT", "")).upper() == "DECLINED":
        return None

    common_name = params.get("CN")
    return Attendee(email=email, common_name=str(common_name) if common_name else None)


def parse_attendees(component: Any) -> List[Attendee]:
    """Collect the accepted/undecided attendees of a VEVENT."""
    attendee_props = component.get("ATTENDEE")
    if attendee_props is None:
        return []
    if not isinstance(attendee_props, list):
        attendee_props = [attendee_props]

    attendees = []
    for prop in attendee_props:
        attendee = parse_attendee(prop)
        if attendee:
            attendees.append(attendee)
    return attendees


def parse_organizer(component: Any) -> Optional[Attendee]:
    organizer = component.get("ORGANIZER")
    if organizer is None:
        return None
    return parse_attendee(organizer)


def text_property(component: Any, name: str) -> Optional[str]:
    value = component.get(name)
    if value is None:
        return None
    return str(value)


class CalendarDecoder:
    """Turns raw calendar documents into per-UID groups of VEVENT components."""

    def decode_document(self, document: CalendarDocument) -> List[RawEvent]:
        """Decode a single calendar-data payload.

        Raises:
            CalDAVDecodeError: If the payload is not valid iCalendar data
        """
        try:
            calendars = Calendar.from_ical(document.calendar_data, multiple=True)
        except Exception as e:
            raise CalDAVDecodeError(f"Invalid calendar data in {document.href}: {e}") from e

        grouped: Dict[str, RawEvent] = {}
        for calendar in calendars:
            for component in calendar.walk("VEVENT"):
                self._add_component(grouped, component)

        return list(grouped.values())

    def decode_documents(self, documents: Iterable[CalendarDocument]) -> List[RawEvent]:
        """Decode all documents, skipping the ones that fail.

        Components that share a UID across documents are merged.
        """
        grouped: Dict[str, RawEvent] = {}
        failures = 0

        for document in documents:
            try:
                raw_events = self.decode_document(document)
            except CalDAVDecodeError as e:
                failures += 1
                logger.warning(f"Skipping undecodable calendar document: {e.message}")
                continue

            for raw_event in raw_events:
                existing = grouped.get(raw_event.uid)
                if existing is None:
                    grouped[raw_event.uid] = raw_event
                    continue
                if existing.master is None:
                    existing.master = raw_event.master
                existing.overrides.extend(raw_event.overrides)

        if failures:
            logger.info(f"Decoded {len(grouped)} events, {failures} documents skipped")
        return list(grouped.values())

    def _add_component(self, grouped: Dict[str, RawEvent], component: Any) -> None:
        uid = component.get("UID")
        if not uid:
            logger.debug("Ignoring VEVENT without UID")
            return

        uid = str(uid)
        raw_event = grouped.setdefault(uid, RawEvent(uid=uid))

        if component.get("RECURRENCE-ID") is not None:
            raw_event.overrides.append(component)
        elif raw_event.master is None:
            raw_event.master = component
        else:
            logger.debug(f"Duplicate master component for {uid}, keeping the first")
