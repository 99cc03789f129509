"""SQLite persistence for calendars, synced events, reminders and identity data."""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, Union

import aiosqlite
import pytz

from ..caldav.models import (
    Attendee,
    AuthType,
    BaseEvent,
    CalendarAuth,
    CalendarSource,
    EventInstance,
    RecurrenceEnd,
)
from ..reminders.models import PendingReminder, Reminder
from ..utils.helpers import ensure_utc
from .exceptions import PersistenceError

logger = logging.getLogger(__name__)

# Fixed-width UTC so that string comparison in SQL matches chronological order
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS users (
        user_id INTEGER PRIMARY KEY AUTOINCREMENT,
        email TEXT NOT NULL UNIQUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS calendars (
        calendar_id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        url TEXT NOT NULL,
        auth_type TEXT NOT NULL DEFAULT 'none',
        user_name TEXT,
        password TEXT,
        bearer_token TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS events (
        calendar_id INTEGER NOT NULL REFERENCES calendars(calendar_id) ON DELETE CASCADE,
        event_id TEXT NOT NULL,
        summary TEXT,
        description TEXT,
        location TEXT,
        organizer TEXT,
        attendees TEXT NOT NULL DEFAULT '[]',
        recurrence_end TEXT NOT NULL DEFAULT 'none',
        PRIMARY KEY (calendar_id, event_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS next_dates (
        calendar_id INTEGER NOT NULL,
        event_id TEXT NOT NULL,
        timestamp TEXT NOT NULL,
        attendees TEXT NOT NULL DEFAULT '[]',
        FOREIGN KEY (calendar_id, event_id)
            REFERENCES events(calendar_id, event_id) ON DELETE CASCADE
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_next_dates_event
    ON next_dates(calendar_id, event_id, timestamp)
    """,
    """
    CREATE TABLE IF NOT EXISTS reminders (
        reminder_id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
        calendar_id INTEGER NOT NULL REFERENCES calendars(calendar_id) ON DELETE CASCADE,
        event_id TEXT NOT NULL,
        room TEXT NOT NULL,
        minutes_before INTEGER NOT NULL,
        template TEXT,
        attendee_editable INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_reminders_event
    ON reminders(event_id, calendar_id)
    """,
    """
    CREATE TABLE IF NOT EXISTS email_to_matrix_id (
        email TEXT PRIMARY KEY,
        matrix_id TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS out_today (
        email TEXT PRIMARY KEY
    )
    """,
]


def to_db_timestamp(value: datetime) -> str:
    return ensure_utc(value).strftime(TIMESTAMP_FORMAT)


def from_db_timestamp(value: str) -> datetime:
    return pytz.utc.localize(datetime.strptime(value, TIMESTAMP_FORMAT))


def _dump_attendees(attendees: Iterable[Attendee]) -> str:
    return json.dumps([attendee.model_dump() for attendee in attendees])


def _load_attendees(value: Optional[str]) -> List[Attendee]:
    return [Attendee(**item) for item in json.loads(value or "[]")]


def _dump_attendee(attendee: Optional[Attendee]) -> Optional[str]:
    return attendee.model_dump_json() if attendee else None


def _load_attendee(value: Optional[str]) -> Optional[Attendee]:
    return Attendee.model_validate_json(value) if value else None


class DatabaseManager:
    """Manages SQLite operations for the sync engine and the reminder scheduler.

    The schema is created lazily on first use. Each operation opens its own
    connection; multi-statement writes run in a single transaction that is
    rolled back when any statement fails.
    """

    def __init__(self, database_path: Union[Path, str]):
        """Initialize database manager.

        Args:
            database_path: Path to SQLite database file
        """
        self.database_path = Path(database_path)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialized = False
        self._initialization_lock: Optional[asyncio.Lock] = None

        logger.info(f"Database manager initialized (lazy): {database_path}")

    async def initialize(self) -> bool:
        """Create the schema eagerly.

        Returns:
            True if the database is ready, False otherwise
        """
        try:
            await self._ensure_initialized()
        except PersistenceError:
            return False
        return True

    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return

        if self._initialization_lock is None:
            self._initialization_lock = asyncio.Lock()

        async with self._initialization_lock:
            if self._initialized:
                return
            await self._initialize_database()
            self._initialized = True

    async def _initialize_database(self) -> None:
        try:
            async with aiosqlite.connect(str(self.database_path)) as db:
                await db.execute("PRAGMA journal_mode=WAL")
                await db.execute("PRAGMA synchronous=NORMAL")
                await db.execute("PRAGMA foreign_keys=ON")

                for statement in SCHEMA:
                    await db.execute(statement)

                await db.commit()
                logger.info("Database schema initialized successfully")

        except aiosqlite.Error as e:
            logger.exception("Failed to initialize database")
            raise PersistenceError(f"Schema initialization failed: {e}", "initialize") from e

    @asynccontextmanager
    async def _connect(self, operation: str) -> AsyncIterator[aiosqlite.Connection]:
        """Open a connection, translating SQLite failures into PersistenceError."""
        await self._ensure_initialized()

        try:
            async with aiosqlite.connect(str(self.database_path)) as db:
                await db.execute("PRAGMA foreign_keys=ON")
                db.row_factory = aiosqlite.Row
                yield db
        except aiosqlite.Error as e:
            logger.error(f"Database operation '{operation}' failed: {e}")
            raise PersistenceError(f"{operation} failed: {e}", operation) from e

    # Users and calendars

    async def add_user(self, email: str) -> int:
        """Create a user (or find the existing one) and return its id."""
        async with self._connect("add_user") as db:
            await db.execute(
                "INSERT INTO users (email) VALUES (?) ON CONFLICT(email) DO NOTHING", (email,)
            )
            await db.commit()
            cursor = await db.execute("SELECT user_id FROM users WHERE email = ?", (email,))
            row = await cursor.fetchone()
            return int(row["user_id"])

    async def add_calendar(
        self, user_id: int, name: str, url: str, auth: Optional[CalendarAuth] = None
    ) -> int:
        """Register a calendar for a user and return its id."""
        auth = auth or CalendarAuth()
        async with self._connect("add_calendar") as db:
            cursor = await db.execute(
                """
                INSERT INTO calendars (user_id, name, url, auth_type, user_name, password, bearer_token)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    name,
                    url,
                    AuthType(auth.type).value,
                    auth.username,
                    auth.password,
                    auth.bearer_token,
                ),
            )
            await db.commit()
            return int(cursor.lastrowid)

    @staticmethod
    def _row_to_source(row: Any) -> CalendarSource:
        return CalendarSource(
            calendar_id=row["calendar_id"],
            user_id=row["user_id"],
            name=row["name"],
            url=row["url"],
            auth=CalendarAuth(
                type=AuthType(row["auth_type"]),
                username=row["user_name"],
                password=row["password"],
                bearer_token=row["bearer_token"],
            ),
        )

    async def get_calendar_sources(self) -> List[CalendarSource]:
        async with self._connect("get_calendar_sources") as db:
            cursor = await db.execute("SELECT * FROM calendars ORDER BY calendar_id")
            rows = await cursor.fetchall()
            return [self._row_to_source(row) for row in rows]

    async def get_calendar_source(self, calendar_id: int) -> Optional[CalendarSource]:
        async with self._connect("get_calendar_source") as db:
            cursor = await db.execute(
                "SELECT * FROM calendars WHERE calendar_id = ?", (calendar_id,)
            )
            row = await cursor.fetchone()
            return self._row_to_source(row) if row else None

    # Events

    async def get_previous_instances(
        self, calendar_id: int
    ) -> List[Tuple[BaseEvent, List[EventInstance]]]:
        """Load every stored event of a calendar with its stored instances.

        Events whose instances have all passed, or that have none, are still
        returned so that they count as known on the next sync.

        Returns:
            (event, instances) pairs ordered by each event's first stored
            occurrence; events without instances come last
        """
        async with self._connect("get_previous_instances") as db:
            cursor = await db.execute(
                """
                SELECT e.event_id, e.summary, e.description, e.location, e.organizer,
                       e.attendees AS event_attendees, e.recurrence_end,
                       n.timestamp, n.attendees AS instance_attendees
                FROM events AS e
                LEFT JOIN next_dates AS n
                    ON n.calendar_id = e.calendar_id AND n.event_id = e.event_id
                WHERE e.calendar_id = ?
                ORDER BY n.timestamp IS NULL, n.timestamp, e.event_id
                """,
                (calendar_id,),
            )
            rows = await cursor.fetchall()

        grouped: Dict[str, Tuple[BaseEvent, List[EventInstance]]] = {}
        for row in rows:
            uid = row["event_id"]
            if uid not in grouped:
                event = BaseEvent(
                    calendar_id=calendar_id,
                    uid=uid,
                    summary=row["summary"],
                    description=row["description"],
                    location=row["location"],
                    organizer=_load_attendee(row["organizer"]),
                    attendees=_load_attendees(row["event_attendees"]),
                    recurrence_end=RecurrenceEnd(row["recurrence_end"]),
                )
                grouped[uid] = (event, [])

            if row["timestamp"] is None:
                continue
            grouped[uid][1].append(
                EventInstance(
                    uid=uid,
                    occurrence=from_db_timestamp(row["timestamp"]),
                    attendees=_load_attendees(row["instance_attendees"]),
                )
            )

        return list(grouped.values())

    async def upsert_events_and_replace_instances(
        self, calendar_id: int, events: List[BaseEvent], instances: List[EventInstance]
    ) -> None:
        """Upsert base events and replace every stored instance of the calendar.

        Runs in one transaction: either all changes land or none do.
        """
        async with self._connect("upsert_events_and_replace_instances") as db:
            await db.executemany(
                """
                INSERT INTO events (
                    calendar_id, event_id, summary, description, location,
                    organizer, attendees, recurrence_end
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(calendar_id, event_id) DO UPDATE SET
                    summary = excluded.summary,
                    description = excluded.description,
                    location = excluded.location,
                    organizer = excluded.organizer,
                    attendees = excluded.attendees,
                    recurrence_end = excluded.recurrence_end
                """,
                [
                    (
                        calendar_id,
                        event.uid,
                        event.summary,
                        event.description,
                        event.location,
                        _dump_attendee(event.organizer),
                        _dump_attendees(event.attendees),
                        RecurrenceEnd(event.recurrence_end).value,
                    )
                    for event in events
                ],
            )

            await db.execute("DELETE FROM next_dates WHERE calendar_id = ?", (calendar_id,))

            await db.executemany(
                """
                INSERT INTO next_dates (calendar_id, event_id, timestamp, attendees)
                VALUES (?, ?, ?, ?)
                """,
                [
                    (
                        calendar_id,
                        instance.uid,
                        to_db_timestamp(instance.occurrence),
                        _dump_attendees(instance.attendees),
                    )
                    for instance in instances
                ],
            )

            await db.commit()

        logger.debug(
            f"Stored {len(events)} events and {len(instances)} instances "
            f"for calendar {calendar_id}"
        )

    # Reminders

    @staticmethod
    def _row_to_reminder(row: Any) -> Reminder:
        return Reminder(
            reminder_id=row["reminder_id"],
            calendar_id=row["calendar_id"],
            user_id=row["user_id"],
            event_uid=row["event_id"],
            room=row["room"],
            minutes_before=row["minutes_before"],
            template=row["template"],
            attendee_editable=bool(row["attendee_editable"]),
        )

    async def get_reminders_for_event(self, calendar_id: int, event_uid: str) -> List[Reminder]:
        """Reminders visible on an event of a calendar.

        Includes the calendar's own reminders, plus attendee-editable reminders
        other users set on the same event UID when the calendar owner is one
        of the event's attendees.
        """
        async with self._connect("get_reminders_for_event") as db:
            cursor = await db.execute(
                """
                SELECT * FROM reminders
                WHERE calendar_id = ? AND event_id = ?
                ORDER BY reminder_id
                """,
                (calendar_id, event_uid),
            )
            reminders = [self._row_to_reminder(row) for row in await cursor.fetchall()]

            cursor = await db.execute(
                """
                SELECT u.email, e.attendees
                FROM calendars AS c
                INNER JOIN users AS u ON u.user_id = c.user_id
                INNER JOIN events AS e ON e.calendar_id = c.calendar_id
                WHERE c.calendar_id = ? AND e.event_id = ?
                """,
                (calendar_id, event_uid),
            )
            owner = await cursor.fetchone()
            if owner is None:
                return reminders

            attendee_emails = {a.email.lower() for a in _load_attendees(owner["attendees"])}
            if owner["email"].lower() not in attendee_emails:
                return reminders

            cursor = await db.execute(
                """
                SELECT * FROM reminders
                WHERE event_id = ? AND calendar_id != ? AND attendee_editable = 1
                ORDER BY reminder_id
                """,
                (event_uid, calendar_id),
            )
            reminders.extend(self._row_to_reminder(row) for row in await cursor.fetchall())

        return reminders

    async def add_reminder(self, reminder: Reminder) -> int:
        """Insert a reminder and return the id assigned by the store."""
        async with self._connect("add_reminder") as db:
            cursor = await db.execute(
                """
                INSERT INTO reminders (
                    user_id, calendar_id, event_id, room, minutes_before,
                    template, attendee_editable
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    reminder.user_id,
                    reminder.calendar_id,
                    reminder.event_uid,
                    reminder.room,
                    reminder.minutes_before,
                    reminder.template,
                    int(reminder.attendee_editable),
                ),
            )
            await db.commit()
            return int(cursor.lastrowid)

    async def get_all_pending_reminder_joins(self) -> List[Tuple[datetime, PendingReminder]]:
        """Every reminder joined with every stored instance of its event.

        Returns:
            (fire_time, pending reminder) pairs ordered by fire time
        """
        async with self._connect("get_all_pending_reminder_joins") as db:
            cursor = await db.execute(
                """
                SELECT r.reminder_id, r.calendar_id, r.event_id, r.room, r.minutes_before,
                       r.template, e.summary, e.description, e.location,
                       n.timestamp, n.attendees
                FROM reminders AS r
                INNER JOIN events AS e
                    ON e.calendar_id = r.calendar_id AND e.event_id = r.event_id
                INNER JOIN next_dates AS n
                    ON n.calendar_id = r.calendar_id AND n.event_id = r.event_id
                ORDER BY n.timestamp, r.reminder_id
                """
            )
            rows = await cursor.fetchall()

        pending = [
            PendingReminder(
                reminder_id=row["reminder_id"],
                calendar_id=row["calendar_id"],
                event_uid=row["event_id"],
                summary=row["summary"],
                description=row["description"],
                location=row["location"],
                room=row["room"],
                minutes_before=row["minutes_before"],
                template=row["template"],
                occurrence=from_db_timestamp(row["timestamp"]),
                attendees=_load_attendees(row["attendees"]),
            )
            for row in rows
        ]
        joins = [(reminder.fire_time, reminder) for reminder in pending]
        joins.sort(key=lambda join: join[0])
        return joins

    # Identity and availability data maintained by external collaborators

    async def get_user_mappings(self) -> Dict[str, str]:
        async with self._connect("get_user_mappings") as db:
            cursor = await db.execute("SELECT email, matrix_id FROM email_to_matrix_id")
            return {row["email"]: row["matrix_id"] for row in await cursor.fetchall()}

    async def add_user_mapping(self, email: str, matrix_id: str) -> bool:
        """Record an email to Matrix id mapping without overwriting.

        Returns:
            True if the mapping was new
        """
        async with self._connect("add_user_mapping") as db:
            cursor = await db.execute(
                """
                INSERT INTO email_to_matrix_id (email, matrix_id) VALUES (?, ?)
                ON CONFLICT(email) DO NOTHING
                """,
                (email, matrix_id),
            )
            await db.commit()
            return cursor.rowcount > 0

    async def get_out_today_emails(self) -> Set[str]:
        async with self._connect("get_out_today_emails") as db:
            cursor = await db.execute("SELECT email FROM out_today")
            return {row["email"] for row in await cursor.fetchall()}

    async def set_out_today(self, emails: Iterable[str]) -> None:
        """Replace the list of people out of office today."""
        async with self._connect("set_out_today") as db:
            await db.execute("DELETE FROM out_today")
            await db.executemany(
                "INSERT OR IGNORE INTO out_today (email) VALUES (?)",
                [(email,) for email in emails],
            )
            await db.commit()
