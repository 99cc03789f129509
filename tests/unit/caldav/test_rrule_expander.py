"""Unit tests for recurrence expansion within the scheduling window."""

from datetime import datetime
from unittest.mock import patch

import pytest
import pytz

from reminderbot.caldav.models import RawEvent
from reminderbot.caldav.parser import CalendarDecoder
from reminderbot.caldav.rrule_expander import RecurrenceExpander

NOW = pytz.utc.localize(datetime(2024, 1, 10, 12, 0))


@pytest.fixture
def expander(test_settings) -> RecurrenceExpander:
    return RecurrenceExpander(test_settings)


@pytest.fixture
def decode(make_document):
    decoder = CalendarDecoder()

    def _decode(*vevents: str):
        return decoder.decode_document(make_document(*vevents))

    return _decode


def _occurrences(instances):
    return [instance.occurrence.astimezone(pytz.utc).replace(tzinfo=None) for instance in instances]


class TestRecurrenceExpanderWindow:
    """Test the bounds of the expansion window."""

    def test_window_when_now_given_then_spans_past_and_future_days(self, expander) -> None:
        start, end = expander.window(NOW)

        assert start == pytz.utc.localize(datetime(2024, 1, 3, 12, 0))
        assert end == pytz.utc.localize(datetime(2024, 2, 9, 12, 0))

    def test_expand_when_single_event_on_window_edge_then_included(
        self, expander, decode
    ) -> None:
        raw_events = decode("UID:edge\nDTSTART:20240209T120000Z\nSUMMARY:Edge")

        events, instances = expander.expand(1, raw_events, now=NOW)

        assert [event.uid for event in events] == ["edge"]
        assert _occurrences(instances) == [datetime(2024, 2, 9, 12, 0)]

    def test_expand_when_single_event_outside_window_then_event_without_instances(
        self, expander, decode
    ) -> None:
        raw_events = decode("UID:old\nDTSTART:20231201T090000Z")

        events, instances = expander.expand(1, raw_events, now=NOW)

        assert len(events) == 1
        assert instances == []


class TestRecurrenceExpanderRules:
    """Test RRULE, EXDATE and RDATE handling."""

    def test_expand_when_weekly_rule_then_only_instances_in_window(
        self, expander, decode
    ) -> None:
        raw_events = decode("UID:weekly\nDTSTART:20231204T090000Z\nRRULE:FREQ=WEEKLY")

        _, instances = expander.expand(1, raw_events, now=NOW)

        assert _occurrences(instances) == [
            datetime(2024, 1, 8, 9, 0),
            datetime(2024, 1, 15, 9, 0),
            datetime(2024, 1, 22, 9, 0),
            datetime(2024, 1, 29, 9, 0),
            datetime(2024, 2, 5, 9, 0),
        ]

    def test_expand_when_until_set_then_series_stops(self, expander, decode) -> None:
        raw_events = decode(
            "UID:until\nDTSTART:20231204T090000Z\nRRULE:FREQ=WEEKLY;UNTIL=20240120T090000Z"
        )

        _, instances = expander.expand(1, raw_events, now=NOW)

        assert _occurrences(instances) == [datetime(2024, 1, 8, 9, 0), datetime(2024, 1, 15, 9, 0)]

    def test_expand_when_exdate_then_occurrence_removed(self, expander, decode) -> None:
        raw_events = decode(
            """
            UID:weekly
            DTSTART:20231204T090000Z
            RRULE:FREQ=WEEKLY;COUNT=10
            EXDATE:20240115T090000Z
            """
        )

        _, instances = expander.expand(1, raw_events, now=NOW)

        assert datetime(2024, 1, 15, 9, 0) not in _occurrences(instances)
        assert _occurrences(instances) == [
            datetime(2024, 1, 8, 9, 0),
            datetime(2024, 1, 22, 9, 0),
            datetime(2024, 1, 29, 9, 0),
            datetime(2024, 2, 5, 9, 0),
        ]

    def test_expand_when_rdate_then_extra_occurrence_added(self, expander, decode) -> None:
        raw_events = decode(
            """
            UID:extra
            DTSTART:20240108T090000Z
            RRULE:FREQ=WEEKLY;COUNT=2
            RDATE:20240111T150000Z
            """
        )

        _, instances = expander.expand(1, raw_events, now=NOW)

        assert _occurrences(instances) == [
            datetime(2024, 1, 8, 9, 0),
            datetime(2024, 1, 11, 15, 0),
            datetime(2024, 1, 15, 9, 0),
        ]

    def test_expand_when_tzid_start_then_occurrences_follow_local_time(
        self, expander, decode
    ) -> None:
        raw_events = decode(
            "UID:berlin\nDTSTART;TZID=Europe/Berlin:20240108T090000\nRRULE:FREQ=WEEKLY;COUNT=2"
        )

        _, instances = expander.expand(1, raw_events, now=NOW)

        assert _occurrences(instances) == [datetime(2024, 1, 8, 8, 0), datetime(2024, 1, 15, 8, 0)]


class TestRecurrenceExpanderOverrides:
    """Test RECURRENCE-ID overrides and attendee handling."""

    def test_expand_when_override_moves_instance_then_new_time_replaces_slot(
        self, expander, decode
    ) -> None:
        raw_events = decode(
            """
            UID:weekly
            DTSTART:20240108T090000Z
            RRULE:FREQ=WEEKLY;COUNT=2
            ATTENDEE;CN=Alice:mailto:alice@example.org
            """,
            """
            UID:weekly
            RECURRENCE-ID:20240108T090000Z
            DTSTART:20240108T100000Z
            ATTENDEE;CN=Bob:mailto:bob@example.org
            """,
        )

        _, instances = expander.expand(1, raw_events, now=NOW)

        assert _occurrences(instances) == [datetime(2024, 1, 8, 10, 0), datetime(2024, 1, 15, 9, 0)]
        assert [a.email for a in instances[0].attendees] == ["bob@example.org"]
        assert [a.email for a in instances[1].attendees] == ["alice@example.org"]

    def test_expand_when_override_cancelled_then_instance_dropped(self, expander, decode) -> None:
        raw_events = decode(
            "UID:weekly\nDTSTART:20240108T090000Z\nRRULE:FREQ=WEEKLY;COUNT=2",
            "UID:weekly\nRECURRENCE-ID:20240115T090000Z\nDTSTART:20240115T090000Z\nSTATUS:CANCELLED",
        )

        _, instances = expander.expand(1, raw_events, now=NOW)

        assert _occurrences(instances) == [datetime(2024, 1, 8, 9, 0)]

    def test_expand_when_only_overrides_then_event_built_from_override(
        self, expander, decode
    ) -> None:
        raw_events = decode(
            "UID:orphan\nRECURRENCE-ID:20240112T090000Z\nDTSTART:20240112T093000Z\nSUMMARY:Orphan"
        )

        events, instances = expander.expand(1, raw_events, now=NOW)

        assert events[0].summary == "Orphan"
        assert _occurrences(instances) == [datetime(2024, 1, 12, 9, 30)]

    def test_expand_when_attendee_declined_then_excluded_from_instances(
        self, expander, decode
    ) -> None:
        raw_events = decode(
            """
            UID:meeting
            DTSTART:20240111T090000Z
            ATTENDEE;PARTSTAT=ACCEPTED:mailto:alice@example.org
            ATTENDEE;PARTSTAT=DECLINED:mailto:bob@example.org
            """
        )

        events, instances = expander.expand(1, raw_events, now=NOW)

        assert [a.email for a in events[0].attendees] == ["alice@example.org"]
        assert [a.email for a in instances[0].attendees] == ["alice@example.org"]


class TestRecurrenceExpanderSkips:
    """Test events that cannot be scheduled."""

    def test_expand_when_all_day_then_skipped(self, expander, decode) -> None:
        raw_events = decode("UID:holiday\nDTSTART;VALUE=DATE:20240111\nRRULE:FREQ=YEARLY")

        events, instances = expander.expand(1, raw_events, now=NOW)

        assert events == []
        assert instances == []

    def test_expand_when_floating_then_skipped(self, expander, decode) -> None:
        raw_events = decode("UID:floating\nDTSTART:20240111T090000")

        events, _ = expander.expand(1, raw_events, now=NOW)

        assert events == []

    def test_expand_when_no_components_then_skipped(self, expander) -> None:
        events, instances = expander.expand(1, [RawEvent(uid="empty")], now=NOW)

        assert events == []
        assert instances == []

    def test_expand_when_one_event_fails_then_others_still_expanded(
        self, expander, decode
    ) -> None:
        raw_events = decode(
            "UID:good\nDTSTART:20240111T090000Z",
            "UID:bad\nDTSTART:20240111T090000Z",
        )
        original = expander._master_instances

        def flaky(event, raw_event, *args):
            if event.uid == "bad":
                raise ValueError("broken rule")
            return original(event, raw_event, *args)

        with patch.object(expander, "_master_instances", side_effect=flaky):
            events, instances = expander.expand(1, raw_events, now=NOW)

        assert [event.uid for event in events] == ["good"]
        assert len(instances) == 1

    def test_expand_when_sibling_document_has_malformed_start_then_others_expanded(
        self, expander, make_document
    ) -> None:
        raw_events = CalendarDecoder().decode_documents(
            [
                make_document("UID:bad\nDTSTART:not-a-date\nSUMMARY:Broken", href="/bad.ics"),
                make_document("UID:good\nDTSTART:20240112T090000Z", href="/good.ics"),
            ]
        )

        events, instances = expander.expand(1, raw_events, now=NOW)

        assert [event.uid for event in events] == ["good"]
        assert _occurrences(instances) == [datetime(2024, 1, 12, 9, 0)]
