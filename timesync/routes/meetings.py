"""
Meeting API Routes
Batch task matching, the sync pipeline, and the caller's posted-entry ledger.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from timesync.infrastructure.observability.logging import get_logger
from timesync.infrastructure.storage.json_store import StorageError
from timesync.models.api.meeting_request import MatchMeetingsRequest, SyncMeetingsRequest
from timesync.models.api.meeting_response import (
    MatchBucketsResponse,
    MatchMeetingsResponse,
    MatchResultResponse,
    PostedEntryResponse,
    PostedMeetingsResponse,
    SkippedMeetingResponse,
    SyncFailureResponse,
    SyncMeetingsResponse,
    TaskResponse,
)
from timesync.models.domain.ledger_domain import LedgerRecord
from timesync.routes.dependencies import (
    get_services,
    get_user_id,
    optional_intervals_client,
    require_client,
    time_tracking_http_error,
)
from timesync.services.container import Services
from timesync.services.matching.batch import BatchMatchItem
from timesync.services.time_entry.intervals_client import IntervalsClient, TimeTrackingError

logger = get_logger(__name__)

router = APIRouter(prefix="/meetings", tags=["meetings"])


def _match_result(item: BatchMatchItem) -> MatchResultResponse:
    task = item.matched_task
    return MatchResultResponse(
        meeting=item.meeting,
        matched_task=(
            TaskResponse(id=task.id, title=task.title, project=task.project, module=task.module, status=task.status)
            if task
            else None
        ),
        confidence=item.confidence,
        reason=item.reason,
    )


def _posted_entry(record: LedgerRecord) -> PostedEntryResponse:
    entry = record.time_entry
    return PostedEntryResponse(
        meeting_id=record.meeting_id,
        fingerprint=record.key,
        subject=record.subject,
        start_time=record.start_time,
        task_id=entry.task_id if entry else None,
        hours=entry.hours if entry else None,
        date=entry.date if entry else None,
        time_entry_id=entry.id if entry else None,
        posted_at=record.posted_at,
    )


@router.post("/match", response_model=MatchMeetingsResponse)
async def match_meetings(
    request: MatchMeetingsRequest,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
    client: IntervalsClient | None = Depends(optional_intervals_client),
):
    """Match a batch of meetings against the caller's task catalog."""
    client = require_client(client)

    try:
        tasks = await client.fetch_tasks()
    except TimeTrackingError as e:
        logger.error("Task catalog fetch failed", user_id=user_id, error=str(e))
        raise time_tracking_http_error(e)

    result = await services.batch_matcher.match_meetings(request.meetings, tasks, user_id, request.start_index)

    return MatchMeetingsResponse(
        matches=MatchBucketsResponse(
            high=[_match_result(i) for i in result.high],
            medium=[_match_result(i) for i in result.medium],
            low=[_match_result(i) for i in result.low],
            unmatched=[_match_result(i) for i in result.unmatched],
        ),
        processed=result.processed,
        total_meetings=result.total_meetings,
        next_batch=result.next_batch,
    )


@router.post("/sync", response_model=SyncMeetingsResponse)
async def sync_meetings(
    request: SyncMeetingsRequest,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
    client: IntervalsClient | None = Depends(optional_intervals_client),
):
    """Run dedup, matching, routing and posting on the supplied meetings."""
    client = require_client(client)

    try:
        result = await services.pipeline.run(user_id, request.meetings, client)
    except StorageError as e:
        logger.error("Sync run failed on storage", user_id=user_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Meeting storage unavailable",
        )

    return SyncMeetingsResponse(
        run_id=result.run_id,
        posted=[_posted_entry(p.record) for p in result.posted],
        queued_for_review=[item.id for item in result.queued_for_review],
        duplicates=result.duplicates,
        skipped=[SkippedMeetingResponse(meeting_id=s.meeting_id, reason=s.reason) for s in result.skipped],
        failures=[
            SyncFailureResponse(meeting_id=f.meeting_id, stage=f.stage, code=f.code, message=f.message)
            for f in result.failures
        ],
        pending_reconciliation=result.pending_reconciliation,
        summary=result.summary(),
    )


@router.get("/posted", response_model=PostedMeetingsResponse)
async def list_posted_meetings(
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
):
    """List the caller's confirmed time entries, newest first."""
    records = services.ledger.list_for_user(user_id)
    return PostedMeetingsResponse(
        user_id=user_id,
        entries=[_posted_entry(r) for r in records],
        total_count=len(records),
        last_posted_at=records[0].posted_at if records else None,
    )
