# timesync/models/api/meeting_request.py
"""
Meeting API request models.
Meetings are accepted as raw calendar payloads; the normalizer validates them.
"""

from typing import Any

from pydantic import BaseModel, Field


class MatchMeetingsRequest(BaseModel):
    """Request for batch task matching."""

    meetings: list[dict[str, Any]] = Field(..., description="Raw meetings (subject, startTime, endTime, ...)")
    start_index: int = Field(default=0, ge=0, description="Index of the first meeting in this batch")


class SyncMeetingsRequest(BaseModel):
    """Request for running the full sync pipeline on supplied meetings."""

    meetings: list[dict[str, Any]] = Field(..., description="Raw calendar events with attendance")
