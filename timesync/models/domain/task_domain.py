"""
Task Domain Models
Tasks come from the external time-tracking catalog and are read-only here.
Candidates and outcomes are what the task matcher hands to the confidence router.
"""

from dataclasses import dataclass, field
from typing import Any, Literal

MatchSource = Literal["keyword", "ai"]


def _name_of(value: Any) -> str:
    """Catalog payloads carry either a plain name or a {"name": ...} object."""
    if isinstance(value, dict):
        return str(value.get("name") or "")
    return str(value or "")


@dataclass(slots=True)
class Task:
    """A work task from the time-tracking catalog."""

    id: str
    title: str
    project: str = ""
    project_id: str | None = None
    module: str = ""
    module_id: str | None = None
    status: str = ""
    description: str = ""
    priority: str | None = None
    client: str = ""

    @classmethod
    def from_api(cls, data: dict) -> "Task":
        """Build from an Intervals task payload."""
        return cls(
            id=str(data.get("id", "")),
            title=data.get("title") or "",
            project=_name_of(data.get("project")),
            project_id=str(data["projectid"]) if data.get("projectid") else None,
            module=_name_of(data.get("module")),
            module_id=str(data["moduleid"]) if data.get("moduleid") else None,
            status=_name_of(data.get("status")) or "Unknown",
            description=data.get("summary") or data.get("description") or "",
            priority=_name_of(data.get("priority")) or None,
            client=_name_of(data.get("client")),
        )

    def is_active(self) -> bool:
        return "active" in (self.status or "").lower()

    def is_resolvable(self) -> bool:
        """Whether a time entry can be written against this task."""
        return bool(self.project_id and self.module_id)

    def matching_context(self) -> dict:
        """Task as presented to the language model, with matching flags."""
        return {
            "id": self.id,
            "title": self.title,
            "project": self.project,
            "module": self.module,
            "status": self.status,
            "description": self.description,
            "priority": self.priority,
            "matchingContext": {
                "isActive": self.is_active(),
                "hasPriority": bool(self.priority),
                "hasDescription": bool(self.description),
                "projectContext": self.project,
            },
        }


@dataclass(slots=True)
class TaskCandidate:
    """A ranked task suggestion for a meeting."""

    task_id: str
    task_title: str
    confidence: float
    reason: str
    source: MatchSource = "keyword"
    project: str = ""
    module: str = ""

    def to_dict(self) -> dict:
        return {
            "taskId": self.task_id,
            "taskTitle": self.task_title,
            "confidence": self.confidence,
            "reason": self.reason,
            "source": self.source,
            "project": self.project,
            "module": self.module,
        }


@dataclass(slots=True)
class MatchOutcome:
    """
    Result of matching one meeting against the catalog.

    `candidates` is sorted by confidence, highest first. `error` is set when the
    matcher failed and fell back to no candidates; `skipped_reason` is set when
    matching never ran (for example the user did not attend).
    """

    candidates: list[TaskCandidate] = field(default_factory=list)
    error: str | None = None
    skipped_reason: str | None = None

    @property
    def best(self) -> TaskCandidate | None:
        return self.candidates[0] if self.candidates else None

    @property
    def best_confidence(self) -> float:
        return self.best.confidence if self.best else 0.0
