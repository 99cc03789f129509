"""Delivery of due reminders into Matrix rooms."""

import logging
from typing import Any, Iterable, Set

from ..caldav.models import Attendee
from .identity import IdentityCache
from .models import PendingReminder
from .templates import render_reminder

logger = logging.getLogger(__name__)


class ReminderDispatcher:
    """Renders a reminder and posts it to its room.

    Attendees who are out of office today are left out of the message, the
    rest are mentioned by Matrix id when known.
    """

    def __init__(self, messaging_client: Any, database: Any, identity_cache: IdentityCache):
        self.messaging_client = messaging_client
        self.database = database
        self.identity_cache = identity_cache

    def format_attendees(self, attendees: Iterable[Attendee], out_today: Set[str]) -> str:
        absent = {email.lower() for email in out_today}
        return ", ".join(
            self.identity_cache.format_attendee(attendee)
            for attendee in attendees
            if attendee.email.lower() not in absent
        )

    async def send(self, reminder: PendingReminder) -> None:
        """Deliver one reminder.

        Raises:
            DispatchError: If the room cannot be joined or the message is rejected
            PersistenceError: If the out-of-office list cannot be read
        """
        room_id = await self.messaging_client.join_room(reminder.room)

        out_today = await self.database.get_out_today_emails()
        body = render_reminder(reminder, self.format_attendees(reminder.attendees, out_today))

        await self.messaging_client.send_message(room_id, body)
        logger.info(
            f"Sent reminder {reminder.reminder_id} for {reminder.event_uid} to {reminder.room}"
        )
