"""Minimal Matrix client-server API client for posting reminders."""

import logging
import uuid
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from .exceptions import DispatchError

logger = logging.getLogger(__name__)


class MatrixClient:
    """Joins rooms and sends text messages as the bot user."""

    def __init__(self, settings: Any):
        """Initialize Matrix client.

        Args:
            settings: Application settings with a ``matrix`` section
        """
        self.settings = settings
        self.homeserver_url = settings.matrix.homeserver_url.rstrip("/")
        self.client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "MatrixClient":
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self._close_client()

    async def _ensure_client(self) -> None:
        if self.client is None or self.client.is_closed:
            self.client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.settings.request_timeout, connect=10.0),
                headers={
                    "User-Agent": f"{self.settings.app_name}/1.0.0 Matrix-Client",
                    "Authorization": f"Bearer {self.settings.matrix.access_token}",
                },
            )

    async def _close_client(self) -> None:
        if self.client and not self.client.is_closed:
            await self.client.aclose()

    async def _request(self, method: str, path: str, payload: Dict[str, Any]) -> httpx.Response:
        await self._ensure_client()
        if self.client is None:
            raise DispatchError("HTTP client not initialized")

        url = f"{self.homeserver_url}{path}"
        try:
            response = await self.client.request(method, url, json=payload)
        except httpx.HTTPError as e:
            raise DispatchError(f"Matrix request to {path} failed: {e}") from e

        if not response.is_success:
            raise DispatchError(
                f"Got non-2xx from {path}: {response.status_code}", response.status_code
            )
        return response

    async def join_room(self, room: str) -> str:
        """Join a room by id or alias.

        Returns:
            The canonical room id
        """
        path = f"/_matrix/client/v3/join/{quote(room, safe='')}"
        response = await self._request("POST", path, {})

        try:
            room_id = response.json()["room_id"]
        except (ValueError, KeyError) as e:
            raise DispatchError(f"Unexpected /join response for {room}") from e
        return str(room_id)

    async def send_message(self, room_id: str, body: str) -> str:
        """Send a plain text message.

        Returns:
            The event id assigned by the homeserver
        """
        txn_id = uuid.uuid4().hex
        path = (
            f"/_matrix/client/v3/rooms/{quote(room_id, safe='')}"
            f"/send/m.room.message/{txn_id}"
        )
        response = await self._request("PUT", path, {"msgtype": "m.text", "body": body})

        try:
            event_id = response.json().get("event_id", "")
        except ValueError:
            event_id = ""
        logger.info(f"Sent message to {room_id} (status {response.status_code})")
        return str(event_id)
