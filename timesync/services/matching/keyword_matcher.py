"""
Keyword tier of the task matcher.

Token overlap between the meeting subject and a task's title, project and
module, plus the common-pattern table. Any hit is a match with the fixed
keyword confidence.
"""

import re
from dataclasses import dataclass

from timesync.config import Settings, settings as default_settings
from timesync.models.domain.task_domain import Task, TaskCandidate
from timesync.services.matching.patterns import COMMON_PATTERNS, MatchingPattern

_TOKEN_SPLIT_RE = re.compile(r"[\s\-_]+")


def tokenize(text: str | None) -> list[str]:
    """Lowercased tokens split on whitespace, hyphen and underscore; length > 1."""
    return [token for token in _TOKEN_SPLIT_RE.split((text or "").lower()) if len(token) > 1]


@dataclass(slots=True)
class KeywordHit:
    task: Task
    matched_keywords: list[str]
    reason: str
    pattern: MatchingPattern | None = None


def find_keyword_match(
    meeting_title: str,
    task: Task,
    patterns: tuple[MatchingPattern, ...] = COMMON_PATTERNS,
) -> KeywordHit | None:
    """Match one meeting title against one task, or None."""
    title = (meeting_title or "").lower()
    task_title = (task.title or "").lower()
    project = (task.project or "").lower()
    module = (task.module or "").lower()

    meeting_tokens = tokenize(title)
    task_tokens = tokenize(task_title) + tokenize(project) + tokenize(module)

    matched = [mk for mk in meeting_tokens if any(tk in mk or mk in tk for tk in task_tokens)]
    if matched:
        return KeywordHit(
            task=task,
            matched_keywords=matched,
            reason=(
                f"Found keyword matches: {', '.join(matched)} between meeting "
                f'"{title}" and task "{task_title}" ({project})'
            ),
        )

    for pattern in patterns:
        meeting_has = any(m in title for m in pattern.meeting)
        task_has = any(t in task_title or t in project or t in module for t in pattern.task)
        if meeting_has and task_has:
            return KeywordHit(
                task=task,
                matched_keywords=[],
                reason=(
                    f'Matched common pattern "{pattern.meeting[0]}" between meeting '
                    f'"{title}" and task "{task_title}" ({project})'
                ),
                pattern=pattern,
            )
    return None


class KeywordMatcher:
    def __init__(self, config: Settings | None = None, patterns: tuple[MatchingPattern, ...] = COMMON_PATTERNS):
        self.config = config or default_settings
        self.patterns = patterns

    def match(self, meeting_title: str, tasks: list[Task]) -> list[TaskCandidate]:
        """
        All keyword hits for a meeting, best first.

        Every hit carries the same fixed confidence; ranking is by number of
        matched keywords, then by the more specific (longer) reason.
        """
        hits = [
            hit
            for hit in (find_keyword_match(meeting_title, task, self.patterns) for task in tasks)
            if hit is not None
        ]
        hits.sort(key=lambda h: (len(h.matched_keywords), len(h.reason)), reverse=True)

        return [
            TaskCandidate(
                task_id=hit.task.id,
                task_title=hit.task.title,
                confidence=self.config.KEYWORD_MATCH_CONFIDENCE,
                reason=hit.reason,
                source="keyword",
                project=hit.task.project,
                module=hit.task.module,
            )
            for hit in hits
        ]
