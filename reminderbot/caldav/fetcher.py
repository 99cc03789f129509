"""HTTP client for querying CalDAV calendar collections."""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import defusedxml.ElementTree as ET
import httpx
from defusedxml import DefusedXmlException

from ..utils.helpers import ensure_utc, utc_now
from .exceptions import CalDAVAuthError, CalDAVFetchError, CalDAVNetworkError
from .models import CalendarDocument, CalendarSource

logger = logging.getLogger(__name__)

DAV_NS = "DAV:"
CALDAV_NS = "urn:ietf:params:xml:ns:caldav"

CALENDAR_QUERY_TEMPLATE = (
    '<?xml version="1.0" encoding="utf-8" ?>'
    '<c:calendar-query xmlns:d="DAV:" xmlns:c="urn:ietf:params:xml:ns:caldav">'
    "<d:prop><d:getetag /><c:calendar-data /></d:prop>"
    "<c:filter>"
    '<c:comp-filter name="VCALENDAR">'
    '<c:comp-filter name="VEVENT">'
    '<c:time-range start="{start}" />'
    "</c:comp-filter>"
    "</c:comp-filter>"
    "</c:filter>"
    "</c:calendar-query>"
)


def build_calendar_query(window_start: datetime) -> str:
    """Build the REPORT body selecting events that end after ``window_start``."""
    start = ensure_utc(window_start).strftime("%Y%m%dT%H%M%SZ")
    return CALENDAR_QUERY_TEMPLATE.format(start=start)


def parse_multistatus(content: str) -> List[CalendarDocument]:
    """Extract calendar-data payloads from a multistatus body.

    Raises:
        CalDAVFetchError: If the body is not well-formed XML
    """
    try:
        root = ET.fromstring(content)
    except (ET.ParseError, DefusedXmlException) as e:
        raise CalDAVFetchError(f"Malformed multistatus response: {e}")

    documents = []
    for response in root.iter(f"{{{DAV_NS}}}response"):
        href = response.findtext(f"{{{DAV_NS}}}href")
        etag = None
        for etag_node in response.iter(f"{{{DAV_NS}}}getetag"):
            etag = etag_node.text
            break

        for data_node in response.iter(f"{{{CALDAV_NS}}}calendar-data"):
            if data_node.text and data_node.text.strip():
                documents.append(
                    CalendarDocument(href=href, etag=etag, calendar_data=data_node.text)
                )

    return documents


class CalDAVFetcher:
    """Async HTTP client for calendar-query REPORTs against CalDAV servers."""

    def __init__(self, settings: Any):
        """Initialize CalDAV fetcher.

        Args:
            settings: Application settings
        """
        self.settings = settings
        self.client: Optional[httpx.AsyncClient] = None

        logger.debug("CalDAV fetcher initialized")

    async def __aenter__(self) -> "CalDAVFetcher":
        """Async context manager entry."""
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self._close_client()

    async def _ensure_client(self) -> None:
        """Ensure HTTP client exists."""
        if self.client is None or self.client.is_closed:
            timeout = httpx.Timeout(
                connect=10.0, read=self.settings.request_timeout, write=10.0, pool=30.0
            )

            self.client = httpx.AsyncClient(
                timeout=timeout,
                follow_redirects=True,
                verify=True,
                headers={
                    "User-Agent": f"{self.settings.app_name}/1.0.0 CalDAV-Client",
                    "Accept": "application/xml, text/xml, */*",
                    "Accept-Charset": "utf-8",
                },
            )

    async def _close_client(self) -> None:
        """Close HTTP client."""
        if self.client and not self.client.is_closed:
            await self.client.aclose()

    def default_window_start(self) -> datetime:
        """Start of the fetch look-back window.

        Looking far back keeps the base event of long-running series in the
        response even when only recent overrides changed.
        """
        return utc_now() - timedelta(days=self.settings.fetch_lookback_days)

    async def fetch_calendar_documents(
        self, source: CalendarSource, window_start: Optional[datetime] = None
    ) -> List[CalendarDocument]:
        """Fetch every calendar object with events after the window start.

        Args:
            source: Calendar to query
            window_start: Lower time-range bound, defaults to the configured look-back

        Returns:
            Raw calendar documents, one per calendar object resource

        Raises:
            CalDAVAuthError: Server rejected the credentials (HTTP 401/403)
            CalDAVNetworkError: Connection failed after all retries
            CalDAVFetchError: Any other non-success status or malformed response
        """
        await self._ensure_client()

        if window_start is None:
            window_start = self.default_window_start()

        headers = {
            "Content-Type": "application/xml; charset=utf-8",
            "Depth": "1",
        }
        headers.update(source.auth.get_headers())
        body = build_calendar_query(window_start)

        try:
            logger.debug(f"Querying CalDAV calendar {source.calendar_id} at {source.url}")
            response = await self._make_request_with_retry(source.url, headers, body)

        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(f"HTTP error querying calendar {source.calendar_id}: {status}")

            if status in (401, 403):
                raise CalDAVAuthError("Authentication failed - check credentials", status)
            raise CalDAVFetchError(f"HTTP {status}: {e.response.reason_phrase}", status)

        except httpx.TimeoutException as e:
            logger.error(f"Timeout querying calendar {source.calendar_id}: {e}")
            raise CalDAVNetworkError(f"Request timeout after {self.settings.request_timeout}s")

        except httpx.NetworkError as e:
            logger.error(f"Network error querying calendar {source.calendar_id}: {e}")
            raise CalDAVNetworkError(f"Network error: {e}")

        except httpx.HTTPError as e:
            logger.error(f"Unexpected HTTP error querying calendar {source.calendar_id}: {e}")
            raise CalDAVFetchError(f"Unexpected error: {e}")

        documents = parse_multistatus(response.text)
        logger.debug(
            f"Fetched {len(documents)} calendar documents for calendar {source.calendar_id}"
        )
        return documents

    async def _make_request_with_retry(
        self, url: str, headers: Dict[str, str], body: str
    ) -> httpx.Response:
        """Send the REPORT request with retry logic.

        Args:
            url: Calendar collection URL
            headers: Request headers
            body: calendar-query XML

        Returns:
            HTTP response
        """
        last_exception: Optional[Exception] = None

        for attempt in range(self.settings.max_retries + 1):
            try:
                if self.client is None:
                    raise CalDAVFetchError("HTTP client not initialized")

                response = await self.client.request("REPORT", url, headers=headers, content=body)
                response.raise_for_status()

                logger.debug(f"Successfully queried {url} (attempt {attempt + 1})")
                return response

            except (httpx.TimeoutException, httpx.NetworkError) as e:
                last_exception = e

                if attempt < self.settings.max_retries:
                    backoff_time = self.settings.retry_backoff_factor**attempt
                    logger.warning(
                        f"Request failed (attempt {attempt + 1}/{self.settings.max_retries + 1}), "
                        f"retrying in {backoff_time:.1f}s: {e}"
                    )
                    await asyncio.sleep(backoff_time)
                else:
                    logger.error(f"All retry attempts failed for {url}")
                    raise

        if last_exception:
            raise last_exception
        raise CalDAVFetchError("Maximum retries exceeded")
