# timesync/models/api/review_request.py
"""
Review API request models.
"""

from typing import Literal

from pydantic import BaseModel, Field


class SubmitReviewRequest(BaseModel):
    """A human decision on a pending review item."""

    meeting_id: str = Field(..., min_length=1, description="Review item (meeting) ID")
    status: Literal["approved", "rejected", "no_entry_needed"] = Field(..., description="Decision")
    task_id: str | None = Field(default=None, description="Chosen task; required when approving")
    feedback: str | None = Field(default=None, max_length=2000, description="Optional reviewer feedback")
