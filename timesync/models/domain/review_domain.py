"""
Review queue domain models.

A ReviewItem is a meeting waiting for a human to pick a task. A ReviewDecision
is the immutable audit record of every decision submitted against one.
"""

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ReviewStatus = Literal["pending", "approved", "rejected", "no_entry_needed"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"approved", "rejected", "no_entry_needed"})

REASON_NO_MATCH = "No matching tasks found"
REASON_LOW_CONFIDENCE = "Low confidence match"
REASON_MATCH_ERROR = "Error during task matching"
REASON_NOT_ATTENDED = "No attendance recorded for user"


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )


class SuggestedTask(_CamelModel):
    id: str
    title: str
    project: str = ""
    module: str = ""
    description: str | None = None
    confidence: float
    reason: str = ""


class ReviewItem(_CamelModel):
    """A meeting awaiting human task selection."""

    id: str
    user_id: str
    fingerprint: str | None = None
    subject: str
    start_time: str
    end_time: str
    duration_seconds: int = Field(0, alias="duration")
    participants: list[str] = Field(default_factory=list)
    key_points: list[str] | None = None
    suggested_tasks: list[SuggestedTask] = Field(default_factory=list)
    status: ReviewStatus = "pending"
    confidence: float = 0.0
    reason: str | None = None
    queued_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def is_pending(self) -> bool:
        return self.status == "pending"

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class ReviewDecision(_CamelModel):
    """Audit record for a human review decision. Appended, never rewritten."""

    meeting_id: str
    task_id: str | None = None
    status: ReviewStatus
    feedback: str | None = None
    decided_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    decided_by: str
    outcome: str | None = None

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class ReviewStats(_CamelModel):
    total_pending: int
    total_reviewed: int
    approval_rate: float
    average_confidence: float
