"""
Meeting sync pipeline.

Normalize -> fingerprint -> duplicate check -> task matching -> confidence
routing -> post or queue for review. One meeting's failure is recorded in the
run result and never stops the rest of the batch.
"""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import structlog

from timesync.config import Settings, settings as default_settings
from timesync.infrastructure.observability.logging import get_logger, log_pipeline_event
from timesync.models.domain.meeting_domain import Meeting
from timesync.models.domain.review_domain import ReviewItem
from timesync.models.domain.task_domain import MatchOutcome, Task
from timesync.services.dedup.classifier import DuplicateClassifier
from timesync.services.ledger.posted_entries import PostedEntryLedger
from timesync.services.matching.task_matcher import TaskMatcher
from timesync.services.meeting.fingerprint import generate_fingerprint
from timesync.services.meeting.graph_client import GraphCalendarClient, GraphCalendarError
from timesync.services.meeting.meeting_service import MeetingService
from timesync.services.meeting.normalizer import MeetingNormalizationError
from timesync.services.review.confidence_router import ConfidenceRouter
from timesync.services.review.review_service import ReviewQueue
from timesync.services.time_entry.intervals_client import IntervalsClient, TimeTrackingError
from timesync.services.time_entry.poster import PostFailure, PostRequest, PostSuccess, TimeEntryPoster

logger = get_logger(__name__)

CATALOG_UNAVAILABLE = "Task catalog unavailable"
REASON_ALREADY_DECIDED = "Review already decided"


@dataclass(slots=True)
class SkippedMeeting:
    meeting_id: str
    reason: str


@dataclass(slots=True)
class SyncFailure:
    meeting_id: str | None
    stage: str
    code: str
    message: str


@dataclass(slots=True)
class SyncRunResult:
    run_id: str
    user_id: str
    posted: list[PostSuccess] = field(default_factory=list)
    queued_for_review: list[ReviewItem] = field(default_factory=list)
    duplicates: list[str] = field(default_factory=list)
    skipped: list[SkippedMeeting] = field(default_factory=list)
    failures: list[SyncFailure] = field(default_factory=list)
    pending_reconciliation: list[str] = field(default_factory=list)

    def summary(self) -> dict[str, int]:
        return {
            "posted": len(self.posted),
            "queuedForReview": len(self.queued_for_review),
            "duplicates": len(self.duplicates),
            "skipped": len(self.skipped),
            "failures": len(self.failures),
            "pendingReconciliation": len(self.pending_reconciliation),
        }


class MeetingSyncPipeline:
    def __init__(
        self,
        meetings: MeetingService,
        classifier: DuplicateClassifier,
        matcher: TaskMatcher,
        router: ConfidenceRouter,
        reviews: ReviewQueue,
        poster: TimeEntryPoster,
        ledger: PostedEntryLedger,
        calendar: GraphCalendarClient | None = None,
        config: Settings | None = None,
    ):
        self.meetings = meetings
        self.classifier = classifier
        self.matcher = matcher
        self.router = router
        self.reviews = reviews
        self.poster = poster
        self.ledger = ledger
        self.calendar = calendar
        self.config = config or default_settings

    async def run(
        self,
        user_id: str,
        raw_meetings: list[dict],
        client: IntervalsClient,
        tasks: list[Task] | None = None,
    ) -> SyncRunResult:
        """
        Process raw meetings for one user end to end.

        Args:
            user_id: Acting user's email
            raw_meetings: Calendar events (Graph or flattened shape)
            client: Time-tracking client for this user's API key
            tasks: Pre-fetched catalog; fetched from `client` when None
        """
        result = SyncRunResult(run_id=uuid.uuid4().hex[:12], user_id=user_id)

        with structlog.contextvars.bound_contextvars(run_id=result.run_id, user_id=user_id):
            logger.info("Sync run started", meeting_count=len(raw_meetings))

            candidates = await self._prepare(user_id, raw_meetings, result)
            classification = await self.classifier.classify(user_id, candidates)
            for meeting in classification.duplicates:
                result.duplicates.append(meeting.id)
                verdict = classification.verdicts.get(meeting.id)
                log_pipeline_event(
                    meeting.id,
                    "duplicate",
                    confidence=verdict.confidence if verdict else None,
                    reason=verdict.reason if verdict else None,
                )

            catalog_ok = True
            if classification.unique and tasks is None:
                try:
                    tasks = await client.fetch_tasks()
                except TimeTrackingError as e:
                    logger.error("Task catalog fetch failed", error=str(e), status_code=e.status_code)
                    result.failures.append(SyncFailure(None, "catalog", e.error_code or "catalog_error", str(e)))
                    catalog_ok = False
            catalog = {task.id: task for task in tasks or []}

            for meeting in classification.unique:
                try:
                    await self._process_unique(user_id, meeting, catalog, catalog_ok, client, result)
                except Exception as e:
                    logger.exception("Meeting processing failed", meeting_id=meeting.id)
                    result.failures.append(SyncFailure(meeting.id, "process", type(e).__name__, str(e)))
                    log_pipeline_event(meeting.id, "failed", reason=str(e))

            result.pending_reconciliation = [r.key for r in self.ledger.pending(user_id)]

            logger.info("Sync run complete", **result.summary())
        return result

    async def sync_from_calendar(
        self,
        user_id: str,
        client: IntervalsClient,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> SyncRunResult:
        """Fetch the user's recent calendar and run the pipeline on it."""
        if self.calendar is None:
            raise GraphCalendarError("No calendar source configured", error_code="not_configured")

        end = end or datetime.now(UTC)
        start = start or end - timedelta(days=self.config.SYNC_LOOKBACK_DAYS)
        raw_meetings = await self.calendar.fetch_meetings(user_id, start, end)
        return await self.run(user_id, raw_meetings, client)

    async def _prepare(self, user_id: str, raw_meetings: list[dict], result: SyncRunResult) -> list[Meeting]:
        """Normalize meetings and fold repeats of the same instance within this run."""
        prepared: list[Meeting] = []
        seen: set[str] = set()

        for raw in raw_meetings:
            try:
                meeting = await self.meetings.process(raw, user_id)
            except MeetingNormalizationError as e:
                result.failures.append(SyncFailure(e.meeting_id or raw.get("id"), "normalize", "invalid_meeting", str(e)))
                log_pipeline_event(e.meeting_id or str(raw.get("id")), "failed", reason=str(e))
                continue

            fingerprint = generate_fingerprint(user_id, meeting.subject, meeting.start)
            if fingerprint in seen:
                result.duplicates.append(meeting.id)
                log_pipeline_event(meeting.id, "duplicate", reason="Repeated within the same run")
                continue
            seen.add(fingerprint)
            prepared.append(meeting)

        return prepared

    async def _process_unique(
        self,
        user_id: str,
        meeting: Meeting,
        catalog: dict[str, Task],
        catalog_ok: bool,
        client: IntervalsClient,
        result: SyncRunResult,
    ) -> None:
        if catalog_ok or meeting.attended_duration(user_id) <= 0:
            outcome = await self.matcher.match(meeting, list(catalog.values()), user_id)
        else:
            outcome = MatchOutcome(error=CATALOG_UNAVAILABLE)

        decision = self.router.route(outcome)

        if decision.action == "skipped":
            result.skipped.append(SkippedMeeting(meeting.id, decision.reason or "skipped"))
            log_pipeline_event(meeting.id, "skipped", reason=decision.reason)
            return

        if decision.action == "review":
            item = self.reviews.queue_meeting(meeting, user_id, decision, catalog)
            if not item.is_pending():
                result.skipped.append(SkippedMeeting(meeting.id, REASON_ALREADY_DECIDED))
                log_pipeline_event(meeting.id, "skipped", reason=f"{REASON_ALREADY_DECIDED}: {item.status}")
                return
            result.queued_for_review.append(item)
            log_pipeline_event(meeting.id, "review", confidence=decision.confidence, reason=decision.reason)
            return

        candidate = decision.candidate
        request = PostRequest.from_meeting(meeting, user_id, candidate.task_id, catalog.get(candidate.task_id))
        post_result = await self.poster.post(request, client)

        if isinstance(post_result, PostFailure):
            result.failures.append(SyncFailure(meeting.id, "post", post_result.code, post_result.message))
            log_pipeline_event(meeting.id, "failed", confidence=decision.confidence, reason=post_result.message)
            return

        result.posted.append(post_result)
        log_pipeline_event(meeting.id, "posted", confidence=decision.confidence, reason=candidate.reason)
