"""
Review Queue.

Durable pending -> {approved, rejected, no_entry_needed} state machine for
meetings that could not be auto-posted. Every submitted decision is appended
to an audit log; approving posts the time entry before the status changes.
"""

from dataclasses import dataclass
from datetime import UTC, datetime

from pydantic import ValidationError

from timesync.infrastructure.observability.logging import get_logger
from timesync.infrastructure.storage.json_store import JsonDocumentStore
from timesync.models.domain.meeting_domain import Meeting, format_timestamp
from timesync.models.domain.review_domain import (
    ReviewDecision,
    ReviewItem,
    ReviewStats,
    SuggestedTask,
)
from timesync.models.domain.task_domain import Task, TaskCandidate
from timesync.services.meeting.fingerprint import generate_fingerprint
from timesync.services.review.confidence_router import RoutingDecision
from timesync.services.time_entry.intervals_client import IntervalsClient
from timesync.services.time_entry.poster import PostFailure, PostRequest, PostResult, TimeEntryPoster

logger = get_logger(__name__)

REVIEWS = "reviews"
DECISIONS = "decisions"
REQUIRED_FIELDS = ("id", "userId", "subject", "startTime", "endTime")


class ReviewServiceError(Exception):
    """Raised when a review decision cannot be applied."""

    def __init__(
        self,
        message: str,
        error_code: str,
        status_code: int = 400,
        post_failure: PostFailure | None = None,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code
        self.post_failure = post_failure
        self.recoverable = post_failure.recoverable if post_failure else False


@dataclass(slots=True)
class ReviewSubmission:
    item: ReviewItem
    decision: ReviewDecision
    post_result: PostResult | None = None


def _same_user(a: str | None, b: str | None) -> bool:
    return (a or "").strip().lower() == (b or "").strip().lower()


def _has_required_fields(raw: object) -> bool:
    return isinstance(raw, dict) and all(isinstance(raw.get(f), str) and raw.get(f) for f in REQUIRED_FIELDS)


def suggestion_from(candidate: TaskCandidate, catalog: dict[str, Task] | None = None) -> SuggestedTask:
    task = (catalog or {}).get(candidate.task_id)
    return SuggestedTask(
        id=candidate.task_id,
        title=candidate.task_title,
        project=candidate.project or (task.project if task else ""),
        module=candidate.module or (task.module if task else ""),
        description=task.description if task else None,
        confidence=candidate.confidence,
        reason=candidate.reason,
    )


class ReviewQueue:
    def __init__(self, store: JsonDocumentStore, poster: TimeEntryPoster | None = None):
        self.store = store
        self.poster = poster

    def initialize(self) -> None:
        """Reset review files written before reviews were scoped to a user."""
        raw = self.store.load(REVIEWS)
        if raw and any(isinstance(r, dict) and not r.get("userId") for r in raw):
            backup = self.store.backup(REVIEWS, "reviews-backup")
            self.store.save(REVIEWS, [])
            logger.warning("Legacy review file without user ids reset", backup=backup.name, dropped=len(raw))

    # ------------------------------------------------------------------
    # persistence
    # ------------------------------------------------------------------

    def _load(self) -> list[ReviewItem]:
        raw_items = self.store.load(REVIEWS)
        items: list[ReviewItem] = []
        dropped = 0
        for raw in raw_items:
            if not _has_required_fields(raw):
                dropped += 1
                continue
            try:
                items.append(ReviewItem.model_validate(raw))
            except ValidationError as e:
                logger.warning("Dropping invalid review item", review_id=raw.get("id"), error=str(e))
                dropped += 1

        if dropped:
            logger.info("Review queue cleaned on load", dropped=dropped, kept=len(items))
            self._save(items)
        return items

    def _save(self, items: list[ReviewItem]) -> None:
        self.store.save(REVIEWS, [item.to_document() for item in items])

    def _append_decision(self, decision: ReviewDecision) -> None:
        decisions = self.store.load(DECISIONS)
        decisions.append(decision.to_document())
        self.store.save(DECISIONS, decisions)

    # ------------------------------------------------------------------
    # queueing
    # ------------------------------------------------------------------

    def queue(self, item: ReviewItem) -> ReviewItem:
        """
        Upsert a pending review item keyed by (meeting id, user).

        An item that already reached a terminal status is not reopened.
        """
        items = self._load()
        for index, existing in enumerate(items):
            if existing.id == item.id and _same_user(existing.user_id, item.user_id):
                if not existing.is_pending():
                    logger.info(
                        "Review already decided, not re-queuing",
                        meeting_id=item.id,
                        status=existing.status,
                    )
                    return existing
                items[index] = item
                break
        else:
            items.append(item)

        self._save(items)
        logger.info("Meeting queued for review", meeting_id=item.id, subject=item.subject, reason=item.reason)
        return item

    def queue_meeting(
        self,
        meeting: Meeting,
        user_id: str,
        decision: RoutingDecision,
        catalog: dict[str, Task] | None = None,
    ) -> ReviewItem:
        item = ReviewItem(
            id=meeting.id,
            user_id=user_id,
            # approval posts under this key so Tier 1 finds the entry on later runs
            fingerprint=generate_fingerprint(user_id, meeting.subject, meeting.start),
            subject=meeting.subject or "(no subject)",
            start_time=format_timestamp(meeting.start) or "",
            end_time=format_timestamp(meeting.end) or format_timestamp(meeting.start) or "",
            duration_seconds=meeting.attended_duration(user_id),
            participants=meeting.participant_emails(),
            key_points=meeting.analysis.key_points if meeting.analysis else None,
            suggested_tasks=[suggestion_from(c, catalog) for c in decision.suggestions],
            confidence=decision.confidence,
            reason=decision.reason,
        )
        return self.queue(item)

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    def all_for_user(self, user_id: str) -> list[ReviewItem]:
        return [item for item in self._load() if _same_user(item.user_id, user_id)]

    def pending(self, user_id: str) -> list[ReviewItem]:
        """Pending items for a user, most recent meeting first."""
        items = [item for item in self.all_for_user(user_id) if item.is_pending()]
        return sorted(items, key=lambda item: item.start_time, reverse=True)

    def get(self, user_id: str, meeting_id: str) -> ReviewItem | None:
        for item in self.all_for_user(user_id):
            if item.id == meeting_id:
                return item
        return None

    def decisions(self, user_id: str) -> list[ReviewDecision]:
        results = []
        for raw in self.store.load(DECISIONS):
            try:
                decision = ReviewDecision.model_validate(raw)
            except ValidationError:
                continue
            if _same_user(decision.decided_by, user_id):
                results.append(decision)
        return results

    def stats(self, user_id: str) -> ReviewStats:
        items = self.all_for_user(user_id)
        reviewed = [item for item in items if not item.is_pending()]
        approved = [item for item in reviewed if item.status == "approved"]
        return ReviewStats(
            total_pending=len(items) - len(reviewed),
            total_reviewed=len(reviewed),
            approval_rate=(len(approved) / len(reviewed)) * 100 if reviewed else 0.0,
            average_confidence=sum(item.confidence for item in items) / len(items) if items else 0.0,
        )

    # ------------------------------------------------------------------
    # decisions
    # ------------------------------------------------------------------

    async def submit(self, decision: ReviewDecision, client: IntervalsClient | None = None) -> ReviewSubmission:
        """
        Apply a human decision to a pending review item.

        Approval requires a task id and a successful post; if the post fails
        the item stays pending and the failure is raised to the caller.

        Raises:
            ReviewServiceError: On an unknown item, an invalid transition, a
                missing task id, or a failed post
        """
        if decision.status == "pending":
            raise ReviewServiceError("A decision must move the review out of pending", "invalid_status", 400)

        item = self.get(decision.decided_by, decision.meeting_id)
        if item is None:
            raise ReviewServiceError(f"Review {decision.meeting_id} not found", "not_found", 404)

        if not item.is_pending():
            self._append_decision(decision.model_copy(update={"outcome": "ignored_not_pending"}))
            raise ReviewServiceError(f"Review {item.id} is already {item.status}", "already_decided", 409)

        post_result = None
        outcome = "recorded"
        if decision.status == "approved":
            post_result, outcome = await self._post_approval(item, decision, client)

        decided = decision.model_copy(update={"outcome": outcome, "decided_at": datetime.now(UTC)})
        updated = item.model_copy(update={"status": decision.status})

        items = self._load()
        for index, existing in enumerate(items):
            if existing.id == item.id and _same_user(existing.user_id, item.user_id):
                items[index] = updated
        self._save(items)
        self._append_decision(decided)

        logger.info(
            "Review submitted",
            meeting_id=item.id,
            status=decision.status,
            task_id=decision.task_id,
            outcome=outcome,
        )
        return ReviewSubmission(updated, decided, post_result)

    async def _post_approval(
        self, item: ReviewItem, decision: ReviewDecision, client: IntervalsClient | None
    ) -> tuple[PostResult, str]:
        if not decision.task_id:
            raise ReviewServiceError("Approving a review requires a task id", "task_required", 400)
        if self.poster is None or client is None:
            raise ReviewServiceError("Time tracking is not configured for this user", "missing_api_key", 400)

        result = await self.poster.post(PostRequest.from_review(item, decision.task_id), client)
        if isinstance(result, PostFailure):
            if result.code == "already_posted":
                return result, "already_posted"
            self._append_decision(decision.model_copy(update={"outcome": f"post_failed:{result.code}"}))
            raise ReviewServiceError(
                f"Time entry not posted: {result.message}",
                "post_failed",
                409,
                post_failure=result,
            )
        return result, "posted"
