"""Unit tests for reminder carry-over between replaced and replacement events."""

from datetime import datetime
from unittest.mock import AsyncMock, Mock

import pytest
import pytz

from reminderbot.caldav.models import (
    Attendee,
    BaseEvent,
    CalendarSource,
    EventInstance,
    RawEvent,
    RecurrenceEnd,
)
from reminderbot.caldav.parser import CalendarDecoder
from reminderbot.reminders.models import Reminder
from reminderbot.sync.dedup import EventDeduplicator, SummaryOrganizerMatcher

ORGANIZER = Attendee(email="alice@example.org", common_name="Alice")
OCCURRENCE = pytz.utc.localize(datetime(2024, 1, 15, 9, 0))


def _event(uid: str, summary: str = "Weekly sync", organizer=ORGANIZER) -> BaseEvent:
    return BaseEvent(calendar_id=1, uid=uid, summary=summary, organizer=organizer)


def _raw(make_document, uid: str, rrule: str) -> RawEvent:
    document = make_document(f"UID:{uid}\nDTSTART:20240101T090000Z\n{rrule}")
    return CalendarDecoder().decode_document(document)[0]


@pytest.fixture
def source() -> CalendarSource:
    return CalendarSource(calendar_id=1, user_id=10, name="Work", url="https://dav/work/")


class TestSummaryOrganizerMatcher:
    """Test replacement detection."""

    @pytest.fixture
    def matcher(self) -> SummaryOrganizerMatcher:
        return SummaryOrganizerMatcher()

    def test_find_replacements_when_series_split_then_pairs_old_with_new(
        self, matcher, make_document
    ) -> None:
        previous = [(_event("A"), [EventInstance(uid="A", occurrence=OCCURRENCE)])]
        new_events = [_event("A"), _event("B"), _event("C", summary="Other")]
        raw_by_uid = {"A": _raw(make_document, "A", "RRULE:FREQ=WEEKLY;UNTIL=20240110T090000Z")}

        pairs = matcher.find_replacements(previous, new_events, raw_by_uid)

        assert [(old.uid, new.uid) for old, new in pairs] == [("A", "B")]

    @pytest.mark.parametrize(
        "rrule", ["RRULE:FREQ=WEEKLY", "RRULE:FREQ=WEEKLY;COUNT=10"]
    )
    def test_find_replacements_when_series_still_open_then_no_pairs(
        self, matcher, make_document, rrule: str
    ) -> None:
        previous = [(_event("A"), [])]
        raw_by_uid = {"A": _raw(make_document, "A", rrule)}

        pairs = matcher.find_replacements(previous, [_event("A"), _event("B")], raw_by_uid)

        assert pairs == []

    def test_find_replacements_when_previous_deleted_then_considered(self, matcher) -> None:
        pairs = matcher.find_replacements([(_event("A"), [])], [_event("B")], {})

        assert [(old.uid, new.uid) for old, new in pairs] == [("A", "B")]

    def test_find_replacements_when_candidate_already_known_then_ignored(self, matcher) -> None:
        previous = [(_event("A"), []), (_event("B"), [])]

        pairs = matcher.find_replacements(previous, [_event("B")], {})

        assert pairs == []

    def test_find_replacements_when_organizer_differs_then_no_match(self, matcher) -> None:
        other = Attendee(email="carol@example.org")

        pairs = matcher.find_replacements([(_event("A"), [])], [_event("B", organizer=other)], {})

        assert pairs == []


class TestEventDeduplicator:
    """Test reminder copying."""

    @pytest.mark.asyncio
    async def test_reassign_reminders_when_replacement_found_then_owner_reminders_copied(
        self, source
    ) -> None:
        database = AsyncMock()
        owned = Reminder(
            reminder_id=5, calendar_id=1, user_id=10, event_uid="A", room="!r", minutes_before=15
        )
        foreign = Reminder(
            reminder_id=6,
            calendar_id=2,
            user_id=99,
            event_uid="A",
            room="!x",
            attendee_editable=True,
        )
        database.get_reminders_for_event.side_effect = lambda calendar_id, uid: (
            [owned, foreign] if uid == "A" else []
        )
        database.add_reminder.return_value = 42

        created = await EventDeduplicator(database).reassign_reminders(
            source, [(_event("A"), [])], [_event("B")], {}
        )

        assert len(created) == 1
        assert created[0].reminder_id == 42
        assert created[0].event_uid == "B"
        assert created[0].minutes_before == 15
        assert created[0].room == "!r"
        stored = database.add_reminder.call_args.args[0]
        assert stored.reminder_id == -1
        assert owned.event_uid == "A"

    @pytest.mark.asyncio
    async def test_reassign_reminders_when_copy_exists_then_not_duplicated(self, source) -> None:
        database = AsyncMock()
        original = Reminder(reminder_id=5, calendar_id=1, user_id=10, event_uid="A", room="!r")
        existing_copy = original.model_copy(update={"reminder_id": 7, "event_uid": "B"})
        database.get_reminders_for_event.side_effect = lambda calendar_id, uid: (
            [original] if uid == "A" else [existing_copy]
        )

        created = await EventDeduplicator(database).reassign_reminders(
            source, [(_event("A"), [])], [_event("B")], {}
        )

        assert created == []
        database.add_reminder.assert_not_called()

    @pytest.mark.asyncio
    async def test_reassign_reminders_when_matcher_injected_then_used(self, source) -> None:
        database = AsyncMock()
        matcher = Mock()
        matcher.find_replacements.return_value = []

        created = await EventDeduplicator(database, matcher=matcher).reassign_reminders(
            source, [(_event("A"), [])], [_event("B")], {}
        )

        assert created == []
        database.get_reminders_for_event.assert_not_called()

    @pytest.mark.asyncio
    async def test_reassign_reminders_when_stored_end_to_end_then_copy_fires_on_new_event(
        self, database, make_document
    ) -> None:
        user_id = await database.add_user("alice@example.org")
        calendar_id = await database.add_calendar(user_id, "Work", "https://dav/work/")
        source = CalendarSource(
            calendar_id=calendar_id, user_id=user_id, name="Work", url="https://dav/work/"
        )
        old = BaseEvent(
            calendar_id=calendar_id,
            uid="A",
            summary="Weekly sync",
            organizer=ORGANIZER,
            recurrence_end=RecurrenceEnd.INFINITE,
        )
        await database.upsert_events_and_replace_instances(
            calendar_id, [old], [EventInstance(uid="A", occurrence=OCCURRENCE)]
        )
        await database.add_reminder(
            Reminder(calendar_id=calendar_id, user_id=user_id, event_uid="A", room="!r")
        )

        new = old.model_copy(update={"uid": "B", "recurrence_end": RecurrenceEnd.NONE})
        previous = await database.get_previous_instances(calendar_id)
        raw_by_uid = {"A": _raw(make_document, "A", "RRULE:FREQ=WEEKLY;UNTIL=20240110T090000Z")}

        await EventDeduplicator(database).reassign_reminders(source, previous, [new], raw_by_uid)
        await database.upsert_events_and_replace_instances(
            calendar_id, [new], [EventInstance(uid="B", occurrence=OCCURRENCE)]
        )

        joins = await database.get_all_pending_reminder_joins()
        assert [reminder.event_uid for _, reminder in joins] == ["B"]
