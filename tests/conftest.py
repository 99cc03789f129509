"""Shared test configuration with lightweight fixtures."""

import shutil
import tempfile
from collections.abc import AsyncGenerator
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, List, Optional

import pytest
import pytest_asyncio
import pytz

from reminderbot.caldav.models import Attendee, CalendarDocument
from reminderbot.config.settings import LoggingSettings, MatrixSettings
from reminderbot.reminders.models import PendingReminder
from reminderbot.storage.database import DatabaseManager

ICS_HEADER = "BEGIN:VCALENDAR\r\nVERSION:2.0\r\nPRODID:-//ReminderBot Tests//EN\r\n"
ICS_FOOTER = "END:VCALENDAR\r\n"


@pytest.fixture
def test_settings() -> Any:
    """Create lightweight test settings without file I/O."""

    class MockSettings:
        def __init__(self) -> None:
            self.app_name = "ReminderBot-Test"

            self.sync_interval = 300
            self.mappings_refresh_interval = 300
            self.scheduler_max_sleep = 300

            self.fetch_lookback_days = 180
            self.expansion_past_days = 7
            self.expansion_future_days = 30

            self.request_timeout = 5
            self.max_retries = 2
            self.retry_backoff_factor = 0.0

            self.data_dir = Path(tempfile.mkdtemp(prefix="reminderbot_test_"))
            self.config_dir = self.data_dir / "config"
            self.database_file = self.data_dir / "test.db"

            self.matrix = MatrixSettings(
                homeserver_url="https://matrix.example.org/", access_token="test-token"
            )
            self.logging = LoggingSettings(console_level="ERROR")

        def cleanup(self) -> None:
            shutil.rmtree(self.data_dir, ignore_errors=True)

    settings = MockSettings()
    yield settings
    settings.cleanup()


@pytest.fixture
def utc() -> Callable[..., datetime]:
    """Build UTC-aware datetimes tersely."""

    def _make(*args: int) -> datetime:
        return pytz.utc.localize(datetime(*args))

    return _make


@pytest.fixture
def make_ics() -> Callable[..., str]:
    """Wrap VEVENT bodies into a VCALENDAR document."""

    def _make(*vevents: str) -> str:
        body = ""
        for vevent in vevents:
            lines = [line.strip() for line in vevent.strip().splitlines() if line.strip()]
            body += "BEGIN:VEVENT\r\n" + "\r\n".join(lines) + "\r\nEND:VEVENT\r\n"
        return ICS_HEADER + body + ICS_FOOTER

    return _make


@pytest.fixture
def make_document(make_ics: Callable[..., str]) -> Callable[..., CalendarDocument]:
    def _make(*vevents: str, href: str = "/cal/event.ics") -> CalendarDocument:
        return CalendarDocument(href=href, etag='"1"', calendar_data=make_ics(*vevents))

    return _make


@pytest.fixture
def make_pending() -> Callable[..., PendingReminder]:
    """Build PendingReminder instances with sensible defaults."""

    def _make(
        occurrence: datetime,
        reminder_id: int = 1,
        event_uid: str = "event-1",
        minutes_before: int = 10,
        summary: Optional[str] = "Standup",
        attendees: Optional[List[Attendee]] = None,
        **kwargs: Any,
    ) -> PendingReminder:
        return PendingReminder(
            reminder_id=reminder_id,
            calendar_id=kwargs.pop("calendar_id", 1),
            event_uid=event_uid,
            summary=summary,
            room=kwargs.pop("room", "!room:example.org"),
            minutes_before=minutes_before,
            occurrence=occurrence,
            attendees=attendees or [],
            **kwargs,
        )

    return _make


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncGenerator[DatabaseManager, None]:
    """Real DatabaseManager backed by a temporary SQLite file."""
    manager = DatabaseManager(tmp_path / "reminderbot_test.db")
    await manager.initialize()
    yield manager


def pytest_configure(config: Any) -> None:
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "critical_path: Core functionality tests")
