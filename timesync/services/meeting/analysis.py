"""
Meeting analysis: an optional language-model summary of a meeting used as
extra context for AI task matching. The model answers in fixed sections;
missing sections fall back to neutral defaults.
"""

import re

from timesync.infrastructure.observability.logging import get_logger
from timesync.models.domain.meeting_domain import Meeting, MeetingAnalysis, format_timestamp
from timesync.services.ai.client import AIClient
from timesync.services.ai.prompts import build_analysis_prompt

logger = get_logger(__name__)

ANALYSIS_TEMPERATURE = 0.3
ANALYSIS_MAX_TOKENS = 1500

_NUMBER_RE = re.compile(r"(\d*\.?\d+)")
_BULLET_RE = re.compile(r"^[-*]\s*")


def extract_sections(text: str) -> dict[str, str]:
    """Split 'Header:' delimited text into {lowercased header: content}."""
    sections: dict[str, str] = {}
    current = ""
    content: list[str] = []

    for line in text.splitlines():
        stripped = line.strip()
        if stripped.endswith(":"):
            if current:
                sections[current.lower()] = "\n".join(content).strip()
                content = []
            current = stripped[:-1].strip()
        elif current and stripped:
            content.append(stripped)

    if current:
        sections[current.lower()] = "\n".join(content).strip()
    return sections


def _bullets(section: str | None) -> list[str]:
    return [
        item
        for item in (_BULLET_RE.sub("", line).strip() for line in (section or "").splitlines())
        if item
    ]


def _score(section: str | None, default: float = 0.5) -> float:
    match = _NUMBER_RE.search(section or "")
    if not match:
        return default
    return min(max(float(match.group(1)), 0.0), 1.0)


def parse_analysis(text: str) -> MeetingAnalysis:
    sections = extract_sections(text)
    return MeetingAnalysis(
        key_points=_bullets(sections.get("key points")),
        suggested_categories=_bullets(sections.get("categories")),
        relevance_score=_score(sections.get("relevance")),
        confidence=_score(sections.get("confidence")),
        patterns=_bullets(sections.get("context")),
    )


def describe_meeting(meeting: Meeting) -> str:
    """Plain-text meeting summary sent to the model."""
    attendees = ", ".join(meeting.participant_emails()) or "None"
    return "\n".join(
        [
            f"Meeting Subject: {meeting.subject}",
            f"Date: {format_timestamp(meeting.start)} to {format_timestamp(meeting.end)}",
            f"Organizer: {meeting.organizer or 'Unknown'}",
            f"Attendees: {attendees}",
            f"Preview: {meeting.body_preview or 'No preview available'}",
        ]
    )


class MeetingAnalyzer:
    def __init__(self, ai_client: AIClient):
        self.ai_client = ai_client

    async def analyze(self, meeting: Meeting) -> MeetingAnalysis:
        """Ask the model for an analysis; raises AIClientError on failure."""
        response = await self.ai_client.complete(
            build_analysis_prompt(describe_meeting(meeting)),
            temperature=ANALYSIS_TEMPERATURE,
            max_tokens=ANALYSIS_MAX_TOKENS,
        )
        analysis = parse_analysis(response)
        logger.debug(
            "Meeting analyzed",
            meeting_id=meeting.id,
            key_points=len(analysis.key_points),
            relevance=analysis.relevance_score,
        )
        return analysis
