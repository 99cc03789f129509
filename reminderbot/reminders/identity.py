"""Email to Matrix identity lookups used when mentioning attendees."""

import logging
import threading
from typing import Dict, Mapping, Optional

from ..caldav.models import Attendee

logger = logging.getLogger(__name__)

MATRIX_TO_URL = "https://matrix.to/#/"


class IdentityCache:
    """In-memory email to Matrix user id map, replaced wholesale on refresh."""

    def __init__(self, mappings: Optional[Mapping[str, str]] = None) -> None:
        self._lock = threading.Lock()
        self._mappings: Dict[str, str] = self._normalise(mappings or {})

    @staticmethod
    def _normalise(mappings: Mapping[str, str]) -> Dict[str, str]:
        return {email.lower(): matrix_id for email, matrix_id in mappings.items()}

    def replace(self, mappings: Mapping[str, str]) -> None:
        normalised = self._normalise(mappings)
        with self._lock:
            self._mappings = normalised
        logger.debug(f"Identity cache refreshed with {len(normalised)} mappings")

    def get(self, email: str) -> Optional[str]:
        with self._lock:
            return self._mappings.get(email.lower())

    def __len__(self) -> int:
        with self._lock:
            return len(self._mappings)

    def format_attendee(self, attendee: Attendee) -> str:
        """Render an attendee as a Matrix mention link when their id is known."""
        matrix_id = self.get(attendee.email)
        if matrix_id is None:
            return attendee.display_name
        name = attendee.common_name or matrix_id
        return f"[{name}]({MATRIX_TO_URL}{matrix_id})"
