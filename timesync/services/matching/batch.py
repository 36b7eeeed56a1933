"""
Batch meeting matching for the dashboard.

Matches a window of meetings against the catalog and groups the results
into confidence buckets. The caller pages through large inputs with
`next_batch`.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from timesync.config import Settings, settings as default_settings
from timesync.infrastructure.observability.logging import get_logger
from timesync.models.domain.task_domain import Task
from timesync.services.ai.policy import fail_open
from timesync.services.matching.ai_matcher import AITaskMatcher
from timesync.services.matching.keyword_matcher import KeywordMatcher
from timesync.services.meeting.normalizer import MeetingNormalizationError, MeetingNormalizer

logger = get_logger(__name__)

FAILED_REASON = "Failed to process meeting"


@dataclass(slots=True)
class BatchMatchItem:
    meeting: dict
    matched_task: Task | None
    confidence: float
    reason: str


@dataclass(slots=True)
class BatchMatchResult:
    high: list[BatchMatchItem] = field(default_factory=list)
    medium: list[BatchMatchItem] = field(default_factory=list)
    low: list[BatchMatchItem] = field(default_factory=list)
    unmatched: list[BatchMatchItem] = field(default_factory=list)
    processed: int = 0
    total_meetings: int = 0
    next_batch: int | None = None


def deduplicate_meetings(meetings: list[dict]) -> list[dict]:
    """Drop repeated (subject, startTime) pairs, keeping the first."""
    seen: set[str] = set()
    unique = []
    for meeting in meetings:
        key = f"{meeting.get('subject')}_{meeting.get('startTime')}"
        if key in seen:
            continue
        seen.add(key)
        unique.append(meeting)
    return unique


class BatchMatcher:
    def __init__(
        self,
        keyword_matcher: KeywordMatcher,
        ai_matcher: AITaskMatcher | None = None,
        normalizer: MeetingNormalizer | None = None,
        config: Settings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.keyword_matcher = keyword_matcher
        self.ai_matcher = ai_matcher
        self.normalizer = normalizer or MeetingNormalizer()
        self.config = config or default_settings
        self._sleep = sleep

    async def match_meetings(
        self,
        meetings: list[dict],
        tasks: list[Task],
        user_id: str,
        start_index: int = 0,
    ) -> BatchMatchResult:
        unique = deduplicate_meetings(meetings)
        start = max(start_index, 0)
        end = min(start + self.config.MATCH_BATCH_SIZE, len(unique))

        logger.info(
            "Processing meeting batch",
            start=start,
            end=end,
            total_meetings=len(unique),
            task_count=len(tasks),
        )

        items = []
        for raw in unique[start:end]:
            item, used_ai = await self._match_one(raw, tasks, user_id)
            items.append(item)
            if used_ai:
                await self._sleep(self.config.MATCH_DELAY_SECONDS)

        result = self._bucket(items)
        result.total_meetings = len(unique)
        result.next_batch = end if end < len(unique) else None
        return result

    async def _match_one(self, raw: dict, tasks: list[Task], user_id: str) -> tuple[BatchMatchItem, bool]:
        subject = raw.get("subject") or ""
        keyword_hits = self.keyword_matcher.match(subject, tasks)
        if keyword_hits:
            best = keyword_hits[0]
            task = next((t for t in tasks if t.id == best.task_id), None)
            return BatchMatchItem(raw, task, best.confidence, best.reason), False

        if not self.ai_matcher or not self.ai_matcher.available:
            return BatchMatchItem(raw, None, 0.0, "No keyword match and AI matching unavailable"), False

        try:
            meeting = self.normalizer.normalize(raw, user_id=user_id)
        except MeetingNormalizationError as e:
            logger.warning("Failed to process meeting", subject=subject, error=str(e))
            return BatchMatchItem(raw, None, 0.0, FAILED_REASON), False

        candidates = await fail_open(
            self.ai_matcher.match(meeting, tasks, meeting.scheduled_duration_seconds()),
            None,
            event="Failed to process meeting",
            subject=subject,
        )
        if candidates is None:
            return BatchMatchItem(raw, None, 0.0, FAILED_REASON), True
        if not candidates:
            return BatchMatchItem(raw, None, 0.0, "No matching tasks found"), True

        best = candidates[0]
        task = next((t for t in tasks if t.id == best.task_id), None)
        return BatchMatchItem(raw, task, best.confidence, best.reason), True

    def _bucket(self, items: list[BatchMatchItem]) -> BatchMatchResult:
        buckets = self.config.get_confidence_buckets()
        result = BatchMatchResult(processed=len(items))
        for item in items:
            if item.matched_task is None or item.confidence <= 0:
                result.unmatched.append(item)
            elif item.confidence >= buckets["high"]:
                result.high.append(item)
            elif item.confidence >= buckets["medium"]:
                result.medium.append(item)
            else:
                result.low.append(item)
        return result
