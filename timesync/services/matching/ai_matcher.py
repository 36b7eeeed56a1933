"""
AI tier of the task matcher.

Sends the meeting (with its analysis when available) and the task catalog to
the language model and parses the ranked candidates it returns. Candidates
missing any required field are dropped individually.
"""

from numbers import Real

from timesync.config import Settings, settings as default_settings
from timesync.infrastructure.observability.logging import get_logger
from timesync.models.domain.meeting_domain import Meeting, format_timestamp
from timesync.models.domain.task_domain import Task, TaskCandidate
from timesync.services.ai.client import AIClient
from timesync.services.ai.json_extract import extract_json_object
from timesync.services.ai.prompts import build_task_matching_prompt

logger = get_logger(__name__)

_MEETING_DETAIL_FIELDS = ("subject", "startTime", "endTime")


def _is_number(value: object) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def is_valid_task_match(match: object) -> bool:
    """Whether a model-returned candidate carries every required field."""
    if not isinstance(match, dict):
        return False
    if not isinstance(match.get("taskId"), (str, int)) or isinstance(match.get("taskId"), bool):
        return False
    if not isinstance(match.get("taskTitle"), str) or not isinstance(match.get("reason"), str):
        return False
    if not _is_number(match.get("confidence")):
        return False

    details = match.get("meetingDetails")
    if not isinstance(details, dict):
        return False
    if not all(isinstance(details.get(key), str) for key in _MEETING_DETAIL_FIELDS):
        return False
    return _is_number(details.get("actualDuration"))


def parse_matching_result(response: str, catalog: dict[str, Task] | None = None) -> list[TaskCandidate]:
    """
    Parse model output into candidates sorted by confidence, best first.

    Raises:
        ValueError: If the response holds no JSON object at all
    """
    parsed = extract_json_object(response)
    if parsed is None:
        raise ValueError("No JSON object in task matching response")

    raw_matches = parsed.get("matchedTasks")
    if not isinstance(raw_matches, list):
        return []

    catalog = catalog or {}
    candidates = []
    for match in raw_matches:
        if not is_valid_task_match(match):
            logger.debug("Dropping invalid task match", match=str(match)[:200])
            continue
        task_id = str(match["taskId"])
        task = catalog.get(task_id)
        candidates.append(
            TaskCandidate(
                task_id=task_id,
                task_title=match["taskTitle"],
                confidence=min(max(float(match["confidence"]), 0.0), 1.0),
                reason=match["reason"],
                source="ai",
                project=task.project if task else "",
                module=task.module if task else "",
            )
        )

    candidates.sort(key=lambda c: c.confidence, reverse=True)
    return candidates


def meeting_context(meeting: Meeting, attended_seconds: int) -> dict:
    """Meeting as presented to the language model."""
    analysis = meeting.analysis
    return {
        "subject": meeting.subject,
        "startTime": format_timestamp(meeting.start),
        "endTime": format_timestamp(meeting.end),
        "duration": attended_seconds,
        "analysis": {
            "keyPoints": analysis.key_points if analysis else [],
            "suggestedCategories": analysis.suggested_categories if analysis else [],
            "confidence": analysis.confidence if analysis else 0,
            "context": {"patterns": analysis.patterns if analysis else []},
        },
        "attendance": {
            "records": [r.to_dict() for r in meeting.attendance_records],
            "summary": meeting.attendance_summary.to_dict(),
        },
    }


class AITaskMatcher:
    def __init__(self, ai_client: AIClient, config: Settings | None = None):
        self.ai_client = ai_client
        self.config = config or default_settings

    @property
    def available(self) -> bool:
        return self.ai_client is not None and self.ai_client.configured

    async def match(self, meeting: Meeting, tasks: list[Task], attended_seconds: int) -> list[TaskCandidate]:
        """
        Ask the model for ranked candidates.

        Raises:
            AIClientError: If the completion fails
            ValueError: If the response contains no JSON
        """
        if not tasks:
            return []

        prompt = build_task_matching_prompt(
            meeting_context(meeting, attended_seconds),
            [task.matching_context() for task in tasks],
        )
        response = await self.ai_client.complete(
            prompt,
            temperature=self.config.MATCH_AI_TEMPERATURE,
            max_tokens=self.config.MATCH_AI_MAX_TOKENS,
        )
        candidates = parse_matching_result(response, {task.id: task for task in tasks})

        logger.info(
            "AI task matching complete",
            meeting_id=meeting.id,
            candidates=len(candidates),
            best_confidence=candidates[0].confidence if candidates else 0.0,
        )
        return candidates
