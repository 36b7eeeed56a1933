"""
Duplicate Classifier.

Decides, per user, which candidate meetings were already posted in an
earlier run.

Tier 1 is deterministic and authoritative: same fingerprint, a ledger record
with a time entry, and attended durations within the tolerance.
Tier 2 sends the meetings Tier 1 could not resolve to the language model in
small batches, comparing them against nearby posted meetings. Any Tier 2
failure leaves the meetings unique.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Literal

from timesync.config import Settings, settings as default_settings
from timesync.infrastructure.observability.logging import get_logger
from timesync.models.domain.ledger_domain import LedgerRecord
from timesync.models.domain.meeting_domain import Meeting, format_timestamp, parse_datetime
from timesync.services.ai.client import AIClient
from timesync.services.ai.json_extract import extract_json_object
from timesync.services.ai.policy import fail_open
from timesync.services.ai.prompts import build_comparison_prompt
from timesync.services.ledger.posted_entries import PostedEntryLedger
from timesync.services.meeting.fingerprint import generate_fingerprint

logger = get_logger(__name__)

DecisionTier = Literal["deterministic", "ai"]

COMPARISON_WINDOW = timedelta(days=1)


@dataclass(slots=True)
class DuplicateVerdict:
    meeting_id: str
    is_duplicate: bool
    confidence: float
    reason: str
    tier: DecisionTier
    matching_criteria: dict[str, bool] = field(default_factory=dict)


@dataclass(slots=True)
class DuplicateClassification:
    """Partition of candidate meetings into duplicates and unique meetings."""

    duplicates: list[Meeting] = field(default_factory=list)
    unique: list[Meeting] = field(default_factory=list)
    verdicts: dict[str, DuplicateVerdict] = field(default_factory=dict)


def _record_date(record: LedgerRecord) -> date | None:
    start = parse_datetime(record.start_time)
    if start:
        return start.date()
    if record.time_entry and record.time_entry.date:
        parsed = parse_datetime(f"{record.time_entry.date}T00:00:00")
        return parsed.date() if parsed else None
    return None


class DuplicateClassifier:
    def __init__(
        self,
        ledger: PostedEntryLedger,
        ai_client: AIClient | None = None,
        config: Settings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.ledger = ledger
        self.ai_client = ai_client
        self.config = config or default_settings
        self._sleep = sleep

    async def classify(self, user_id: str, meetings: list[Meeting]) -> DuplicateClassification:
        """Split meetings into duplicates and unique ones for one user."""
        result = DuplicateClassification()
        posted = self.ledger.list_for_user(user_id)
        by_key = {record.key: record for record in posted}

        unresolved: list[Meeting] = []
        for meeting in meetings:
            verdict = self._deterministic(user_id, meeting, by_key)
            if verdict:
                result.duplicates.append(meeting)
                result.verdicts[meeting.id] = verdict
            else:
                unresolved.append(meeting)

        if unresolved:
            duplicates, unique = await self._semantic(user_id, unresolved, posted, result.verdicts)
            result.duplicates.extend(duplicates)
            result.unique.extend(unique)

        logger.info(
            "Duplicate classification complete",
            user_id=user_id,
            candidates=len(meetings),
            duplicates=len(result.duplicates),
            unique=len(result.unique),
        )
        return result

    def _deterministic(
        self, user_id: str, meeting: Meeting, by_key: dict[str, LedgerRecord]
    ) -> DuplicateVerdict | None:
        fingerprint = generate_fingerprint(user_id, meeting.subject, meeting.start)
        record = by_key.get(fingerprint)
        if record is None or not record.has_time_entry():
            return None

        recorded = record.recorded_duration_seconds() or 0
        difference = abs(recorded - meeting.attended_duration(user_id))
        if difference >= self.config.DUPLICATE_DURATION_TOLERANCE_SECONDS:
            logger.debug(
                "Fingerprint matches but duration differs",
                meeting_id=meeting.id,
                difference_seconds=difference,
            )
            return None

        return DuplicateVerdict(
            meeting_id=meeting.id,
            is_duplicate=True,
            confidence=1.0,
            reason=f"Already posted as time entry {record.time_entry.id or '(unknown id)'}",
            tier="deterministic",
            matching_criteria={"titleMatch": True, "dateMatch": True, "durationMatch": True},
        )

    async def _semantic(
        self,
        user_id: str,
        meetings: list[Meeting],
        posted: list[LedgerRecord],
        verdicts: dict[str, DuplicateVerdict],
    ) -> tuple[list[Meeting], list[Meeting]]:
        if not self.ai_client or not self.ai_client.configured or not posted:
            return [], list(meetings)

        duplicates: list[Meeting] = []
        unique: list[Meeting] = []
        batch_size = max(self.config.DUPLICATE_BATCH_SIZE, 1)
        called_ai = False

        for offset in range(0, len(meetings), batch_size):
            batch = meetings[offset:offset + batch_size]
            targets = self._comparison_targets(batch, posted)
            if not targets:
                unique.extend(batch)
                continue

            if called_ai:
                logger.debug("Waiting before next comparison batch", delay=self.config.DUPLICATE_BATCH_DELAY_SECONDS)
                await self._sleep(self.config.DUPLICATE_BATCH_DELAY_SECONDS)

            batch_verdicts = await fail_open(
                self._compare_batch(user_id, batch, targets),
                {},
                event="Semantic duplicate check failed, treating batch as unique",
                user_id=user_id,
                meeting_ids=[m.id for m in batch],
            )
            called_ai = True

            for meeting in batch:
                verdict = batch_verdicts.get(meeting.id)
                if (
                    verdict
                    and verdict.is_duplicate
                    and verdict.confidence >= self.config.DUPLICATE_AI_MIN_CONFIDENCE
                ):
                    duplicates.append(meeting)
                    verdicts[meeting.id] = verdict
                else:
                    unique.append(meeting)
                    if verdict:
                        verdicts[meeting.id] = verdict

        return duplicates, unique

    def _comparison_targets(self, batch: list[Meeting], posted: list[LedgerRecord]) -> list[LedgerRecord]:
        """Posted records within a day of any meeting in the batch."""
        days = {m.start.date() for m in batch if m.start}
        targets = []
        for record in posted:
            record_day = _record_date(record)
            if record_day and any(abs(record_day - day) <= COMPARISON_WINDOW for day in days):
                targets.append(record)
        return targets

    async def _compare_batch(
        self, user_id: str, batch: list[Meeting], targets: list[LedgerRecord]
    ) -> dict[str, DuplicateVerdict]:
        prompt = build_comparison_prompt(
            [self._describe_meeting(user_id, m) for m in batch],
            [self._describe_record(r) for r in targets],
        )
        response = await self.ai_client.complete(
            prompt,
            temperature=self.config.DUPLICATE_AI_TEMPERATURE,
            max_tokens=self.config.DUPLICATE_AI_MAX_TOKENS,
        )

        parsed = extract_json_object(response)
        if parsed is None:
            raise ValueError("No JSON object in comparison response")

        batch_ids = {m.id for m in batch}
        verdicts: dict[str, DuplicateVerdict] = {}
        for item in parsed.get("results") or []:
            verdict = self._parse_verdict(item, batch_ids)
            if verdict:
                verdicts[verdict.meeting_id] = verdict
        return verdicts

    def _parse_verdict(self, item: object, batch_ids: set[str]) -> DuplicateVerdict | None:
        if not isinstance(item, dict):
            return None
        meeting_id = item.get("meetingId")
        is_duplicate = item.get("isDuplicate")
        confidence = item.get("confidence")
        if meeting_id not in batch_ids or not isinstance(is_duplicate, bool):
            return None
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
            return None

        criteria = item.get("matchingCriteria") if isinstance(item.get("matchingCriteria"), dict) else {}
        return DuplicateVerdict(
            meeting_id=meeting_id,
            is_duplicate=is_duplicate,
            confidence=min(max(float(confidence), 0.0), 1.0),
            reason=str(item.get("reason") or ""),
            tier="ai",
            matching_criteria={k: bool(v) for k, v in criteria.items()},
        )

    def _describe_meeting(self, user_id: str, meeting: Meeting) -> dict:
        return {
            "id": meeting.id,
            "subject": meeting.subject,
            "startTime": format_timestamp(meeting.start),
            "endTime": format_timestamp(meeting.end),
            "actualDuration": meeting.attended_duration(user_id),
            "description": meeting.body_preview,
            "attendees": meeting.participant_emails(),
        }

    def _describe_record(self, record: LedgerRecord) -> dict:
        entry = record.time_entry
        return {
            "id": record.meeting_id,
            "subject": record.subject or (entry.description if entry else ""),
            "startTime": record.start_time or (entry.date if entry else ""),
            "actualDuration": record.recorded_duration_seconds() or 0,
        }
