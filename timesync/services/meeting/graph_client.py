"""
Microsoft Graph calendar source.
Fetches a user's calendar events and the attendance report of Teams meetings
using an app-only (client credentials) token.
"""

import asyncio
import base64
import re
import time
from datetime import datetime
from typing import Any
from urllib.parse import unquote

import httpx

from timesync.config import Settings, settings as default_settings
from timesync.infrastructure.observability.logging import get_logger
from timesync.models.domain.meeting_domain import format_timestamp

logger = get_logger(__name__)

GRAPH_API_BASE_URL = "https://graph.microsoft.com/v1.0"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"

MAX_RETRIES = 3
BACKOFF_FACTOR = 2
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}
TOKEN_EXPIRY_MARGIN_SECONDS = 60

_THREAD_ID_RE = re.compile(r"19:meeting_([^@]+)@thread\.v2")
_ORGANIZER_RE = re.compile(r'"Oid":"([^"]+)"')


class GraphCalendarError(Exception):
    """Custom exception for Microsoft Graph API errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int | None = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code
        self.recoverable = recoverable


def extract_meeting_info(join_url: str) -> tuple[str | None, str | None]:
    """Pull (thread meeting id, organizer object id) out of a Teams join URL."""
    if not join_url:
        return None, None
    decoded = unquote(join_url)

    meeting_match = _THREAD_ID_RE.search(decoded)
    organizer_match = _ORGANIZER_RE.search(decoded)
    meeting_id = f"19:meeting_{meeting_match.group(1)}@thread.v2" if meeting_match else None
    organizer_id = organizer_match.group(1) if organizer_match else None
    return meeting_id, organizer_id


def online_meeting_id(organizer_id: str, meeting_id: str) -> str:
    """Graph online-meeting id: base64 of '1*{organizer}*0**{thread id}'."""
    return base64.b64encode(f"1*{organizer_id}*0**{meeting_id}".encode()).decode()


class GraphCalendarClient:
    """Calendar and attendance reader for any user in the tenant."""

    def __init__(self, config: Settings | None = None):
        self.config = config or default_settings
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.config.GRAPH_TIMEOUT_SECONDS))
        self._token: str | None = None
        self._token_expires_at = 0.0

    async def close(self) -> None:
        await self._client.aclose()

    def is_configured(self) -> bool:
        return bool(self.config.GRAPH_TENANT_ID and self.config.GRAPH_CLIENT_ID and self.config.GRAPH_CLIENT_SECRET)

    async def _get_token(self) -> str:
        """Client-credentials token, cached until shortly before expiry."""
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        if not self.is_configured():
            raise GraphCalendarError("Microsoft Graph credentials not configured", error_code="not_configured")

        response = await self._client.post(
            self.config.graph_token_url(),
            data={
                "client_id": self.config.GRAPH_CLIENT_ID,
                "client_secret": self.config.GRAPH_CLIENT_SECRET,
                "grant_type": "client_credentials",
                "scope": GRAPH_SCOPE,
            },
        )
        if not response.is_success:
            logger.error("Graph token request failed", status_code=response.status_code)
            raise GraphCalendarError(
                "Failed to get Graph access token",
                error_code="token_failed",
                status_code=response.status_code,
                recoverable=response.status_code in RETRY_STATUS_CODES,
            )

        data = response.json()
        self._token = data["access_token"]
        self._token_expires_at = time.monotonic() + int(data.get("expires_in", 3600)) - TOKEN_EXPIRY_MARGIN_SECONDS
        return self._token

    async def _get_json(self, url: str, params: dict | None = None) -> dict:
        """GET with bearer auth, retrying throttling and server errors."""
        token = await self._get_token()
        headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}

        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = await self._client.get(url, headers=headers, params=params)
            except httpx.RequestError as e:
                if attempt >= MAX_RETRIES:
                    raise GraphCalendarError(f"Graph API unreachable: {e}", error_code="network_error", recoverable=True) from e
                await asyncio.sleep(BACKOFF_FACTOR * (2 ** (attempt - 1)))
                continue

            if response.status_code in RETRY_STATUS_CODES and attempt < MAX_RETRIES:
                backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                logger.debug("Graph API retrying request", attempt=attempt, status_code=response.status_code)
                await asyncio.sleep(backoff)
                continue

            if not response.is_success:
                raise GraphCalendarError(
                    f"Graph API error (HTTP {response.status_code})",
                    error_code=str(response.status_code),
                    status_code=response.status_code,
                    recoverable=response.status_code in RETRY_STATUS_CODES,
                )
            return response.json()

        raise RuntimeError("Graph API retry loop exhausted")

    async def fetch_meetings(self, user_id: str, start: datetime, end: datetime) -> list[dict[str, Any]]:
        """
        Fetch raw calendar events for a user within [start, end).

        Follows @odata.nextLink paging. Raises GraphCalendarError on failure;
        callers decide whether an empty calendar is acceptable.
        """
        url = f"{GRAPH_API_BASE_URL}/users/{user_id}/calendarView"
        params: dict | None = {
            "startDateTime": format_timestamp(start),
            "endDateTime": format_timestamp(end),
            "$top": 100,
            "$orderby": "start/dateTime",
        }

        events: list[dict[str, Any]] = []
        while url:
            data = await self._get_json(url, params=params)
            events.extend(data.get("value") or [])
            url = data.get("@odata.nextLink")
            params = None  # nextLink already carries the query

        logger.info("Calendar events fetched", user_id=user_id, event_count=len(events))
        return events

    async def fetch_attendance(self, user_id: str, join_url: str | None) -> list[dict[str, Any]]:
        """
        Raw attendance records of the first attendance report for a Teams meeting.

        Never raises: any failure yields an empty list, which downstream
        treats as zero attended duration.
        """
        meeting_id, organizer_id = extract_meeting_info(join_url or "")
        if not meeting_id or not organizer_id:
            return []

        try:
            user = await self._get_json(f"{GRAPH_API_BASE_URL}/users/{user_id}")
            target = user.get("id")
            if not target:
                return []

            base = f"{GRAPH_API_BASE_URL}/users/{target}/onlineMeetings/{online_meeting_id(organizer_id, meeting_id)}"
            reports = await self._get_json(f"{base}/attendanceReports")
            if not reports.get("value"):
                return []

            report_id = reports["value"][0]["id"]
            records = await self._get_json(f"{base}/attendanceReports/{report_id}/attendanceRecords")
            return records.get("value") or []

        except (GraphCalendarError, KeyError, ValueError) as e:
            logger.warning("Attendance fetch failed", user_id=user_id, error=str(e))
            return []
