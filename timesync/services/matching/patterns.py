"""
Phrase pairs known to correlate between meeting titles and task names.
Checked after raw token overlap; any hit counts as a keyword match.
"""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class MatchingPattern:
    meeting: tuple[str, ...]
    task: tuple[str, ...]
    description: str


COMMON_PATTERNS: tuple[MatchingPattern, ...] = (
    MatchingPattern(
        meeting=("sprint", "planning", "backlog", "grooming", "refinement"),
        task=("sprint", "scrum", "agile", "planning"),
        description="Sprint ceremonies log against sprint or scrum tasks",
    ),
    MatchingPattern(
        meeting=("standup", "stand-up", "daily sync", "daily scrum"),
        task=("standup", "scrum", "daily", "team meeting"),
        description="Daily stand-ups",
    ),
    MatchingPattern(
        meeting=("retro", "retrospective", "lessons learned"),
        task=("retro", "scrum", "agile", "process improvement"),
        description="Retrospectives",
    ),
    MatchingPattern(
        meeting=("demo", "showcase", "sprint review"),
        task=("demo", "review", "release"),
        description="Demos and sprint reviews",
    ),
    MatchingPattern(
        meeting=("1:1", "one on one", "1-on-1", "check-in"),
        task=("management", "people", "internal meeting"),
        description="One-to-one meetings count as management time",
    ),
    MatchingPattern(
        meeting=("interview", "hiring", "candidate"),
        task=("recruit", "hiring", "interview"),
        description="Recruiting",
    ),
    MatchingPattern(
        meeting=("training", "workshop", "onboarding", "lunch and learn"),
        task=("training", "learning", "onboarding", "education"),
        description="Training and onboarding",
    ),
    MatchingPattern(
        meeting=("support", "incident", "outage", "postmortem", "escalation"),
        task=("support", "maintenance", "incident", "operations"),
        description="Support and incident work",
    ),
)
