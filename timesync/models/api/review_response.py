# timesync/models/api/review_response.py
"""
Review API response models.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class SuggestedTaskResponse(BaseModel):
    id: str
    title: str
    project: str = ""
    module: str = ""
    description: str | None = None
    confidence: float
    reason: str = ""


class ReviewItemResponse(BaseModel):
    """Response model for a review item."""

    id: str = Field(..., description="Meeting ID")
    subject: str
    start_time: str
    end_time: str
    duration_seconds: int = Field(..., description="User's attended seconds")
    participants: list[str] = Field(default_factory=list)
    key_points: list[str] | None = None
    suggested_tasks: list[SuggestedTaskResponse] = Field(default_factory=list)
    status: str
    confidence: float
    reason: str | None = None
    queued_at: datetime


class PendingReviewsResponse(BaseModel):
    user_id: str
    reviews: list[ReviewItemResponse]
    total_count: int


class ReviewStatsResponse(BaseModel):
    total_pending: int
    total_reviewed: int
    approval_rate: float = Field(..., description="Approved share of reviewed items, in percent")
    average_confidence: float


class SubmitReviewResponse(BaseModel):
    meeting_id: str
    status: str
    outcome: str | None = None
    time_entry_id: str | None = None
    ledger_confirmed: bool | None = None
