"""
Review API Routes
Pending review items, review stats, and decision submission.
"""

from fastapi import APIRouter, Depends, HTTPException

from timesync.infrastructure.observability.logging import get_logger
from timesync.models.api.review_request import SubmitReviewRequest
from timesync.models.api.review_response import (
    PendingReviewsResponse,
    ReviewItemResponse,
    ReviewStatsResponse,
    SubmitReviewResponse,
    SuggestedTaskResponse,
)
from timesync.models.domain.review_domain import ReviewDecision, ReviewItem
from timesync.routes.dependencies import get_services, get_user_id, optional_intervals_client
from timesync.services.container import Services
from timesync.services.review.review_service import ReviewServiceError
from timesync.services.time_entry.intervals_client import IntervalsClient
from timesync.services.time_entry.poster import PostSuccess

logger = get_logger(__name__)

router = APIRouter(prefix="/reviews", tags=["reviews"])


def _review_item(item: ReviewItem) -> ReviewItemResponse:
    return ReviewItemResponse(
        id=item.id,
        subject=item.subject,
        start_time=item.start_time,
        end_time=item.end_time,
        duration_seconds=item.duration_seconds,
        participants=item.participants,
        key_points=item.key_points,
        suggested_tasks=[SuggestedTaskResponse(**s.model_dump()) for s in item.suggested_tasks],
        status=item.status,
        confidence=item.confidence,
        reason=item.reason,
        queued_at=item.queued_at,
    )


@router.get("", response_model=PendingReviewsResponse)
async def list_pending_reviews(
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
):
    """Pending review items for the caller, most recent meeting first."""
    items = services.reviews.pending(user_id)
    return PendingReviewsResponse(
        user_id=user_id,
        reviews=[_review_item(i) for i in items],
        total_count=len(items),
    )


@router.get("/stats", response_model=ReviewStatsResponse)
async def get_review_stats(
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
):
    stats = services.reviews.stats(user_id)
    return ReviewStatsResponse(**stats.model_dump())


@router.post("", response_model=SubmitReviewResponse)
async def submit_review(
    request: SubmitReviewRequest,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
    client: IntervalsClient | None = Depends(optional_intervals_client),
):
    """Approve (and post), reject, or mark a review item as needing no entry."""
    decision = ReviewDecision(
        meeting_id=request.meeting_id,
        task_id=request.task_id,
        status=request.status,
        feedback=request.feedback,
        decided_by=user_id,
    )

    try:
        submission = await services.reviews.submit(decision, client)
    except ReviewServiceError as e:
        logger.warning(
            "Review submission rejected",
            user_id=user_id,
            meeting_id=request.meeting_id,
            error_code=e.error_code,
            error=str(e),
        )
        raise HTTPException(status_code=e.status_code, detail={"code": e.error_code, "message": str(e)})

    post_result = submission.post_result
    posted = post_result if isinstance(post_result, PostSuccess) else None
    return SubmitReviewResponse(
        meeting_id=submission.item.id,
        status=submission.item.status,
        outcome=submission.decision.outcome,
        time_entry_id=posted.time_entry.id if posted else None,
        ledger_confirmed=posted.ledger_confirmed if posted else None,
    )
