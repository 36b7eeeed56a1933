# timesync/models/api/meeting_response.py
"""
Meeting API response models.
Used by routes for output formatting.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class TaskResponse(BaseModel):
    """Response model for a catalog task."""

    id: str = Field(..., description="Task ID")
    title: str = Field(..., description="Task title")
    project: str = Field(default="", description="Project name")
    module: str = Field(default="", description="Module name")
    status: str = Field(default="", description="Task status")


class MatchResultResponse(BaseModel):
    """One meeting and its best task match."""

    meeting: dict[str, Any] = Field(..., description="Meeting as submitted")
    matched_task: TaskResponse | None = Field(None, description="Best matching task")
    confidence: float = Field(..., description="Match confidence (0-1)")
    reason: str = Field(..., description="Why the task was chosen")


class MatchBucketsResponse(BaseModel):
    high: list[MatchResultResponse] = Field(default_factory=list)
    medium: list[MatchResultResponse] = Field(default_factory=list)
    low: list[MatchResultResponse] = Field(default_factory=list)
    unmatched: list[MatchResultResponse] = Field(default_factory=list)


class MatchMeetingsResponse(BaseModel):
    """Response for batch task matching."""

    matches: MatchBucketsResponse
    processed: int = Field(..., description="Meetings processed in this batch")
    total_meetings: int = Field(..., description="Unique meetings in the request")
    next_batch: int | None = Field(None, description="Start index of the next batch, if any")


class PostedEntryResponse(BaseModel):
    """Response model for a posted time entry."""

    meeting_id: str
    fingerprint: str
    subject: str | None = None
    start_time: str | None = None
    task_id: str | None = None
    hours: float | None = None
    date: str | None = None
    time_entry_id: str | None = None
    posted_at: datetime


class PostedMeetingsResponse(BaseModel):
    """Ledger entries for the acting user."""

    user_id: str
    entries: list[PostedEntryResponse]
    total_count: int
    last_posted_at: datetime | None = None


class SkippedMeetingResponse(BaseModel):
    meeting_id: str
    reason: str


class SyncFailureResponse(BaseModel):
    meeting_id: str | None = None
    stage: str
    code: str
    message: str


class SyncMeetingsResponse(BaseModel):
    """Outcome of one sync run."""

    run_id: str
    posted: list[PostedEntryResponse] = Field(default_factory=list)
    queued_for_review: list[str] = Field(default_factory=list, description="Meeting ids queued for review")
    duplicates: list[str] = Field(default_factory=list, description="Meeting ids already posted")
    skipped: list[SkippedMeetingResponse] = Field(default_factory=list)
    failures: list[SyncFailureResponse] = Field(default_factory=list)
    pending_reconciliation: list[str] = Field(
        default_factory=list, description="Fingerprints whose post was never confirmed"
    )
    summary: dict[str, int] = Field(default_factory=dict)
