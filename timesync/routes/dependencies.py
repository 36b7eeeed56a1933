"""
Shared route dependencies.

The acting user is identified by the X-User-Email header and the user's own
time-tracking key travels in X-Intervals-Api-Key; neither is stored.
"""

from collections.abc import AsyncIterator

from fastapi import Header, HTTPException, Request, status

from timesync.services.container import Services
from timesync.services.time_entry.intervals_client import IntervalsClient, TimeTrackingError


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_user_id(x_user_email: str | None = Header(default=None)) -> str:
    user_id = (x_user_email or "").strip().lower()
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User email header required")
    return user_id


async def optional_intervals_client(
    x_intervals_api_key: str | None = Header(default=None),
) -> AsyncIterator[IntervalsClient | None]:
    """Per-request client for the caller's key, or None when no key was sent."""
    if not x_intervals_api_key:
        yield None
        return

    client = IntervalsClient(x_intervals_api_key)
    try:
        yield client
    finally:
        await client.close()


def require_client(client: IntervalsClient | None) -> IntervalsClient:
    if client is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Intervals API key is required")
    return client


def time_tracking_http_error(error: TimeTrackingError) -> HTTPException:
    """Map an upstream time-tracking failure onto an HTTP error for the caller."""
    if error.status_code in (401, 403):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(error))
