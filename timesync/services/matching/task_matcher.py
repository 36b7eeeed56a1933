"""
Task Matcher: keyword tier first, AI tier only when no keyword hit.

Matching never runs for a meeting the acting user did not attend, and AI
failures come back as an outcome with `error` set rather than an exception.
"""

from timesync.infrastructure.observability.logging import get_logger
from timesync.models.domain.meeting_domain import Meeting
from timesync.models.domain.review_domain import REASON_NOT_ATTENDED
from timesync.models.domain.task_domain import MatchOutcome, Task
from timesync.services.ai.policy import fail_open
from timesync.services.matching.ai_matcher import AITaskMatcher
from timesync.services.matching.keyword_matcher import KeywordMatcher

logger = get_logger(__name__)


class TaskMatcher:
    def __init__(self, keyword_matcher: KeywordMatcher, ai_matcher: AITaskMatcher | None = None):
        self.keyword_matcher = keyword_matcher
        self.ai_matcher = ai_matcher

    async def match(self, meeting: Meeting, tasks: list[Task], user_id: str) -> MatchOutcome:
        attended = meeting.attended_duration(user_id)
        if attended <= 0:
            logger.info("User did not attend meeting, skipping task matching", meeting_id=meeting.id, user_id=user_id)
            return MatchOutcome(skipped_reason=REASON_NOT_ATTENDED)

        candidates = self.keyword_matcher.match(meeting.subject, tasks)
        if candidates:
            logger.debug(
                "Keyword match found",
                meeting_id=meeting.id,
                task_id=candidates[0].task_id,
                hits=len(candidates),
            )
            return MatchOutcome(candidates=candidates)

        if not self.ai_matcher or not self.ai_matcher.available:
            return MatchOutcome()

        return await fail_open(
            self._ai_outcome(meeting, tasks, attended),
            MatchOutcome(error="AI task matching failed"),
            event="AI task matching failed, routing to review",
            meeting_id=meeting.id,
        )

    async def _ai_outcome(self, meeting: Meeting, tasks: list[Task], attended: int) -> MatchOutcome:
        return MatchOutcome(candidates=await self.ai_matcher.match(meeting, tasks, attended))
