"""
Intervals time-tracking API client.
Reads the task catalog and the acting person, and writes time entries.
Authentication is HTTP Basic with the user's API key and a dummy password.
"""

import asyncio
import base64
from typing import Any

import httpx

from timesync.config import settings
from timesync.infrastructure.observability.logging import get_logger
from timesync.models.domain.ledger_domain import TimeEntry
from timesync.models.domain.task_domain import Task

logger = get_logger(__name__)

# Request timeouts and retry configuration
MAX_RETRIES = 3
BACKOFF_FACTOR = 2
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}
# statuses that guarantee the request was not applied
NOT_APPLIED_STATUS_CODES = {429}

OUTCOME_UNKNOWN = "outcome_unknown"


class TimeTrackingError(Exception):
    """Custom exception for time-tracking API errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int | None = None,
        response_data: dict | None = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code
        self.response_data = response_data or {}
        self.recoverable = recoverable


class IntervalsClient:
    """
    Client for one user's Intervals account.

    Construct one per API key; the client holds an httpx connection pool and
    should be closed with `close()` (or used as an async context manager).
    """

    def __init__(self, api_key: str, base_url: str | None = None, timeout: float | None = None):
        if not api_key:
            raise TimeTrackingError("Intervals API key not configured", error_code="missing_api_key")
        self.base_url = (base_url or settings.INTERVALS_API_URL).rstrip("/")
        self._headers = self._get_auth_headers(api_key)
        self._client = self._create_client(timeout or settings.INTERVALS_TIMEOUT_SECONDS)

    def _create_client(self, timeout: float) -> httpx.AsyncClient:
        limits = httpx.Limits(max_keepalive_connections=10, max_connections=20)
        return httpx.AsyncClient(timeout=httpx.Timeout(timeout), limits=limits)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "IntervalsClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _get_auth_headers(self, api_key: str) -> dict:
        token = base64.b64encode(f"{api_key}:X".encode()).decode()
        return {
            "Authorization": f"Basic {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _request_with_retry(self, method: str, path: str, idempotent: bool = True, **kwargs) -> httpx.Response:
        """
        Execute an HTTP request with retry and backoff.

        Non-idempotent requests are only resent when the server cannot have
        acted on them: a 429 or a failed connection. A timeout or dropped
        connection after sending raises OUTCOME_UNKNOWN instead.
        """
        url = f"{self.base_url}{path}"
        retry_statuses = RETRY_STATUS_CODES if idempotent else NOT_APPLIED_STATUS_CODES
        for attempt in range(1, MAX_RETRIES + 1):
            backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
            try:
                response = await self._client.request(method, url, headers=self._headers, **kwargs)
            except httpx.RequestError as e:
                if not idempotent and not isinstance(e, httpx.ConnectError):
                    raise TimeTrackingError(
                        f"Intervals API did not answer {method} {path}; the write may have been applied: {e}",
                        error_code=OUTCOME_UNKNOWN,
                        recoverable=True,
                    ) from e
                if attempt >= MAX_RETRIES:
                    raise TimeTrackingError(
                        f"Intervals API unreachable: {e}",
                        error_code="network_error",
                        recoverable=True,
                    ) from e
                logger.debug(
                    "Intervals API request error, retrying",
                    path=path,
                    attempt=attempt,
                    error=str(e),
                    backoff_seconds=backoff,
                )
                await asyncio.sleep(backoff)
                continue

            if response.status_code in retry_statuses and attempt < MAX_RETRIES:
                logger.debug(
                    "Intervals API retrying request",
                    path=path,
                    attempt=attempt,
                    status_code=response.status_code,
                    backoff_seconds=backoff,
                )
                await asyncio.sleep(backoff)
                continue
            return response
        raise RuntimeError("Intervals API retry loop exhausted")

    def _handle_api_response(self, response: httpx.Response, operation: str) -> dict:
        """
        Validate an API response and return its JSON body.

        Raises:
            TimeTrackingError: On non-2xx status or a non-JSON body
        """
        if response.is_success:
            try:
                return response.json() if response.text else {}
            except ValueError as e:
                logger.error(f"Failed to parse Intervals {operation} response", error=str(e))
                raise TimeTrackingError(f"Invalid response format: {e}", error_code="invalid_response") from e

        try:
            error_data = response.json() if response.text else {}
        except ValueError:
            error_data = {"raw": response.text[:200] if response.text else ""}

        logger.error(
            f"Intervals {operation} failed",
            status_code=response.status_code,
            response=str(error_data)[:200],
        )
        raise TimeTrackingError(
            self._map_error(response.status_code),
            error_code=str(response.status_code),
            status_code=response.status_code,
            response_data=error_data if isinstance(error_data, dict) else {"raw": error_data},
            recoverable=response.status_code in RETRY_STATUS_CODES,
        )

    def _map_error(self, status_code: int) -> str:
        error_mappings = {
            400: "Invalid time-tracking request.",
            401: "Invalid Intervals API key. Please check your key and try again.",
            403: "Intervals access denied for this API key.",
            404: "Intervals resource not found.",
            429: "Too many Intervals requests. Please try again later.",
        }
        if status_code >= 500:
            return "Intervals service temporarily unavailable."
        return error_mappings.get(status_code, f"Intervals API error (HTTP {status_code})")

    async def fetch_tasks(self) -> list[Task]:
        """
        Fetch the task catalog visible to this API key.

        Raises:
            TimeTrackingError: If the catalog cannot be read
        """
        response = await self._request_with_retry("GET", "/task/")
        data = self._handle_api_response(response, "fetch_tasks")

        raw_tasks = data.get("task")
        if not isinstance(raw_tasks, list):
            logger.warning("No tasks found or invalid response format")
            return []

        tasks = [Task.from_api(t) for t in raw_tasks if isinstance(t, dict) and t.get("id")]
        logger.info("Task catalog fetched", task_count=len(tasks))
        return tasks

    async def get_task(self, task_id: str) -> Task:
        """Fetch full details (project/module ids) for one task."""
        response = await self._request_with_retry("GET", f"/task/{task_id}")
        data = self._handle_api_response(response, "get_task")

        raw = data.get("task")
        if isinstance(raw, list):
            raw = raw[0] if raw else None
        if not raw or data.get("status") != "OK":
            raise TimeTrackingError(
                f"Task {task_id} not found",
                error_code="task_not_found",
                status_code=404,
                response_data=data,
            )
        return Task.from_api(raw)

    async def get_me(self) -> dict[str, Any]:
        """
        Return the person owning the API key.

        Returns:
            dict: {"id", "firstname", "lastname", "email"}
        """
        response = await self._request_with_retry("GET", "/me/")
        data = self._handle_api_response(response, "get_me")

        person = data
        if isinstance(data.get("me"), list) and data["me"]:
            person = data["me"][0]

        person_id = person.get("personid") or person.get("id")
        if not person_id:
            raise TimeTrackingError("Person ID not found in response", error_code="invalid_response")

        return {
            "id": str(person_id),
            "firstname": person.get("firstname", ""),
            "lastname": person.get("lastname", ""),
            "email": person.get("email", ""),
        }

    async def get_project_work_types(self, project_id: str) -> list[dict[str, Any]]:
        """Active work types configured for a project."""
        response = await self._request_with_retry("GET", "/projectworktype/")
        data = self._handle_api_response(response, "get_project_work_types")

        raw = data.get("projectworktype")
        if not isinstance(raw, list):
            raise TimeTrackingError("Invalid work types response format", error_code="invalid_response")

        return [
            {
                "id": str(wt.get("worktypeid")),
                "name": wt.get("worktype", ""),
                "project_id": str(wt.get("projectid")),
                "project_work_type_id": str(wt.get("id")),
            }
            for wt in raw
            if str(wt.get("projectid")) == str(project_id) and wt.get("active") in ("t", True, "true")
        ]

    async def post_time_entry(self, entry: TimeEntry) -> tuple[TimeEntry, dict]:
        """
        Create a time entry.

        Returns:
            (the created entry as echoed by the API, raw response body)

        Raises:
            TimeTrackingError: If the API rejects the entry
        """
        payload = entry.to_payload()
        logger.info(
            "Creating time entry",
            task_id=entry.task_id,
            date=entry.date,
            hours=entry.hours,
        )

        response = await self._request_with_retry("POST", "/time/", idempotent=False, json=payload)
        if response.status_code >= 500:
            logger.error("Time entry POST failed upstream, outcome unknown", status_code=response.status_code)
            raise TimeTrackingError(
                self._map_error(response.status_code),
                error_code=OUTCOME_UNKNOWN,
                status_code=response.status_code,
                recoverable=True,
            )
        data = self._handle_api_response(response, "post_time_entry")

        created = data.get("time")
        if isinstance(created, list):
            created = created[0] if created else None
        if not isinstance(created, dict):
            # The entry exists upstream; keep what we sent so the ledger still has it.
            logger.warning("Time entry response missing 'time' object", response=str(data)[:200])
            return entry, data

        merged = {**payload, **created}
        return TimeEntry.model_validate(merged), data

    async def health_check(self) -> dict[str, Any]:
        """Verify the API key by resolving the acting person."""
        try:
            person = await self.get_me()
            return {"healthy": True, "service": "intervals", "person_id": person["id"]}
        except TimeTrackingError as e:
            return {
                "healthy": False,
                "service": "intervals",
                "error": str(e),
                "status_code": e.status_code,
            }
