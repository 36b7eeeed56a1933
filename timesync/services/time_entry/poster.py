"""
Time-Entry Poster.

Turns a matched (meeting, task) pair into a time entry and records it in the
ledger. Precondition failures come back as a PostFailure value so one bad
meeting never aborts a batch.

Write order: a `pending` ledger record reserves the fingerprint, then the
external entry is created, then the record is confirmed with the response.
If the external write is rejected the reservation is removed. If the write
went unanswered (timeout, 5xx) or the confirm fails, the record stays `pending` and is reported by the ledger's reconciliation
sweep; the fingerprint is never posted again automatically.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Literal

from timesync.config import Settings, settings as default_settings
from timesync.infrastructure.observability.logging import get_logger
from timesync.infrastructure.storage.json_store import StorageError
from timesync.models.domain.ledger_domain import LedgerRecord, TimeEntry
from timesync.models.domain.meeting_domain import Meeting, format_timestamp, parse_datetime
from timesync.models.domain.review_domain import ReviewItem
from timesync.models.domain.task_domain import Task
from timesync.services.ledger.posted_entries import PostedEntryLedger
from timesync.services.meeting.fingerprint import generate_fingerprint
from timesync.services.time_entry.intervals_client import OUTCOME_UNKNOWN, IntervalsClient, TimeTrackingError

logger = get_logger(__name__)

FailureCode = Literal[
    "zero_attendance",
    "non_positive_hours",
    "unresolved_task",
    "task_lookup_failed",
    "already_posted",
    "pending_reconciliation",
    "time_entry_rejected",
]


def seconds_to_hours(seconds: int) -> float:
    """Decimal hours rounded to two places."""
    return round(seconds / 3600, 2)


@dataclass(slots=True)
class PostRequest:
    user_id: str
    meeting_id: str
    subject: str
    start: datetime | None
    duration_seconds: int
    task_id: str
    task: Task | None = None
    key: str | None = None

    @property
    def fingerprint(self) -> str:
        return self.key or generate_fingerprint(self.user_id, self.subject, self.start)

    @classmethod
    def from_meeting(cls, meeting: Meeting, user_id: str, task_id: str, task: Task | None = None) -> "PostRequest":
        return cls(
            user_id=user_id,
            meeting_id=meeting.id,
            subject=meeting.subject,
            start=meeting.start,
            duration_seconds=meeting.attended_duration(user_id),
            task_id=task_id,
            task=task,
        )

    @classmethod
    def from_review(cls, item: ReviewItem, task_id: str) -> "PostRequest":
        return cls(
            user_id=item.user_id,
            meeting_id=item.id,
            subject=item.subject,
            start=parse_datetime(item.start_time),
            duration_seconds=item.duration_seconds,
            task_id=task_id,
            key=item.fingerprint,
        )


@dataclass(slots=True)
class PostSuccess:
    meeting_id: str
    time_entry: TimeEntry
    record: LedgerRecord
    ledger_confirmed: bool = True


@dataclass(slots=True)
class PostFailure:
    meeting_id: str
    code: FailureCode
    message: str
    recoverable: bool = False


PostResult = PostSuccess | PostFailure


class TimeEntryPoster:
    def __init__(self, ledger: PostedEntryLedger, config: Settings | None = None):
        self.ledger = ledger
        self.config = config or default_settings

    async def post(self, request: PostRequest, client: IntervalsClient) -> PostResult:
        """Write one time entry and its ledger record, or explain why not."""
        failure = self._check_preconditions(request)
        if failure:
            self._log_failure(request, failure)
            return failure

        task, failure = await self._resolve_task(request, client)
        if failure:
            self._log_failure(request, failure)
            return failure

        try:
            person = await client.get_me()
        except TimeTrackingError as e:
            failure = PostFailure(request.meeting_id, "task_lookup_failed", f"Could not resolve person: {e}", e.recoverable)
            self._log_failure(request, failure)
            return failure

        entry = TimeEntry(
            task_id=task.id,
            project_id=task.project_id,
            module_id=task.module_id,
            worktype_id=self.config.INTERVALS_MEETING_WORKTYPE_ID,
            person_id=person["id"],
            date=request.start.astimezone(UTC).date().isoformat() if request.start else "",
            hours=seconds_to_hours(request.duration_seconds),
            description=request.subject,
            billable=True,
        )
        record = LedgerRecord(
            meeting_id=request.meeting_id,
            fingerprint=request.fingerprint,
            user_id=request.user_id,
            subject=request.subject,
            start_time=format_timestamp(request.start),
            duration_seconds=request.duration_seconds,
            state="pending",
        )

        if not self.ledger.begin_pending(record):
            failure = PostFailure(request.meeting_id, "already_posted", "A ledger record for this meeting already exists")
            self._log_failure(request, failure)
            return failure

        try:
            created, raw_response = await client.post_time_entry(entry)
        except TimeTrackingError as e:
            if e.error_code == OUTCOME_UNKNOWN:
                # the entry may exist upstream; the pending record blocks a second post
                failure = PostFailure(request.meeting_id, "pending_reconciliation", str(e), e.recoverable)
                self._log_failure(request, failure)
                return failure
            self.ledger.discard_pending(request.user_id, request.fingerprint)
            failure = PostFailure(request.meeting_id, "time_entry_rejected", str(e), e.recoverable)
            self._log_failure(request, failure)
            return failure

        try:
            confirmed = self.ledger.confirm(request.user_id, request.fingerprint, created, raw_response)
        except StorageError as e:
            logger.error(
                "Time entry created but ledger confirm failed; record left pending",
                meeting_id=request.meeting_id,
                fingerprint=request.fingerprint,
                time_entry_id=created.id,
                error=str(e),
            )
            return PostSuccess(request.meeting_id, created, record, ledger_confirmed=False)

        logger.info(
            "Time entry posted",
            meeting_id=request.meeting_id,
            user_id=request.user_id,
            task_id=task.id,
            hours=created.hours,
            time_entry_id=created.id,
        )
        return PostSuccess(request.meeting_id, created, confirmed)

    def _check_preconditions(self, request: PostRequest) -> PostFailure | None:
        if request.duration_seconds <= 0:
            return PostFailure(
                request.meeting_id,
                "zero_attendance",
                f"User {request.user_id} has no attended time for this meeting",
            )
        if seconds_to_hours(request.duration_seconds) <= 0:
            return PostFailure(
                request.meeting_id,
                "non_positive_hours",
                f"{request.duration_seconds}s rounds to 0.00 hours",
            )

        existing = self.ledger.find(request.user_id, request.fingerprint)
        if existing is not None:
            if existing.state == "pending":
                return PostFailure(
                    request.meeting_id,
                    "pending_reconciliation",
                    "An earlier post for this meeting was not confirmed; check the time-tracking system",
                )
            return PostFailure(request.meeting_id, "already_posted", "Meeting already has a time entry")
        return None

    async def _resolve_task(self, request: PostRequest, client: IntervalsClient) -> tuple[Task | None, PostFailure | None]:
        task = request.task if request.task and request.task.id == request.task_id else None
        if task is None or not task.is_resolvable():
            try:
                task = await client.get_task(request.task_id)
            except TimeTrackingError as e:
                return None, PostFailure(
                    request.meeting_id, "task_lookup_failed", f"Could not load task {request.task_id}: {e}", e.recoverable
                )

        if not task.is_resolvable():
            return None, PostFailure(
                request.meeting_id,
                "unresolved_task",
                f"Task {request.task_id} is missing its project or module id",
            )
        return task, None

    def _log_failure(self, request: PostRequest, failure: PostFailure) -> None:
        logger.warning(
            "Time entry not posted",
            meeting_id=request.meeting_id,
            user_id=request.user_id,
            code=failure.code,
            message=failure.message,
        )
