"""
Confidence Router.

Fixed-threshold policy from a match outcome to exactly one action:
auto-post, queue for review, or skip (matching never ran because the user
did not attend). Every outcome routes somewhere.
"""

from dataclasses import dataclass, field
from typing import Literal

from timesync.config import Settings, settings as default_settings
from timesync.models.domain.review_domain import (
    REASON_LOW_CONFIDENCE,
    REASON_MATCH_ERROR,
    REASON_NO_MATCH,
)
from timesync.models.domain.task_domain import MatchOutcome, TaskCandidate

RouteAction = Literal["auto_post", "review", "skipped"]


@dataclass(slots=True)
class RoutingDecision:
    action: RouteAction
    confidence: float
    reason: str | None = None
    candidate: TaskCandidate | None = None
    suggestions: list[TaskCandidate] = field(default_factory=list)


class ConfidenceRouter:
    def __init__(self, config: Settings | None = None):
        self.config = config or default_settings

    @property
    def threshold(self) -> float:
        return self.config.REVIEW_CONFIDENCE_THRESHOLD

    def should_review(self, confidence: float) -> bool:
        return confidence < self.threshold

    def route(self, outcome: MatchOutcome) -> RoutingDecision:
        if outcome.skipped_reason:
            if self.config.QUEUE_ZERO_ATTENDANCE_FOR_REVIEW:
                return RoutingDecision(action="review", confidence=0.0, reason=outcome.skipped_reason)
            return RoutingDecision(action="skipped", confidence=0.0, reason=outcome.skipped_reason)

        if outcome.error:
            return RoutingDecision(
                action="review",
                confidence=0.0,
                reason=REASON_MATCH_ERROR,
                suggestions=list(outcome.candidates),
            )

        best = outcome.best
        if best is None:
            return RoutingDecision(action="review", confidence=0.0, reason=REASON_NO_MATCH)

        if self.should_review(best.confidence):
            return RoutingDecision(
                action="review",
                confidence=best.confidence,
                reason=REASON_LOW_CONFIDENCE,
                suggestions=list(outcome.candidates),
            )

        return RoutingDecision(
            action="auto_post",
            confidence=best.confidence,
            candidate=best,
            suggestions=list(outcome.candidates),
        )
