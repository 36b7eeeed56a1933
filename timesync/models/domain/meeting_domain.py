# timesync/models/domain/meeting_domain.py
"""
Meeting Domain Models
Canonical meeting record with attendance folded in.
Used by the dedup, matching and posting services.
"""

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

_FRACTION_RE = re.compile(r"(\.\d+)")


def parse_datetime(value: Any) -> datetime | None:
    """Parse an ISO timestamp (Graph style, optional 'Z' / 7-digit fraction) into an aware datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, dict):
        value = value.get("dateTime")
        if not value:
            return None

    text = str(value).strip()
    if not text:
        return None
    text = text.replace("Z", "+00:00")

    # Graph returns 7 fractional digits; datetime accepts at most 6
    text = _FRACTION_RE.sub(lambda m: m.group(1)[:7], text)

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def format_timestamp(value: datetime | None) -> str | None:
    """Render a datetime as a UTC ISO string with a 'Z' suffix."""
    if value is None:
        return None
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(slots=True)
class AttendanceInterval:
    join_time: datetime | None
    leave_time: datetime | None
    duration_seconds: int

    def to_dict(self) -> dict:
        return {
            "joinDateTime": format_timestamp(self.join_time),
            "leaveDateTime": format_timestamp(self.leave_time),
            "durationInSeconds": self.duration_seconds,
        }


@dataclass(slots=True)
class AttendanceRecord:
    """One attendee's presence in a meeting, as reported by the calendar provider."""

    name: str
    email: str
    duration_seconds: int
    role: str | None = None
    intervals: list[AttendanceInterval] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "email": self.email,
            "duration": self.duration_seconds,
            "role": self.role,
            "intervals": [i.to_dict() for i in self.intervals],
        }


@dataclass(slots=True)
class AttendanceSummary:
    """Aggregate attendance across all participants. Analytics only, never billing."""

    total_duration: int = 0
    average_duration: float = 0.0
    participant_count: int = 0

    def to_dict(self) -> dict:
        return {
            "totalDuration": self.total_duration,
            "averageDuration": self.average_duration,
            "participantCount": self.participant_count,
        }


@dataclass(slots=True)
class Attendee:
    email: str
    name: str = ""
    role: str | None = None


@dataclass(slots=True)
class MeetingAnalysis:
    """Optional language-model analysis of a meeting used as matching context."""

    key_points: list[str] = field(default_factory=list)
    suggested_categories: list[str] = field(default_factory=list)
    relevance_score: float = 0.5
    confidence: float = 0.5
    patterns: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "keyPoints": self.key_points,
            "suggestedCategories": self.suggested_categories,
            "relevanceScore": self.relevance_score,
            "confidence": self.confidence,
            "context": {"patterns": self.patterns},
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "MeetingAnalysis | None":
        if not data:
            return None
        return cls(
            key_points=list(data.get("keyPoints") or []),
            suggested_categories=list(data.get("suggestedCategories") or []),
            relevance_score=float(data.get("relevanceScore", 0.5)),
            confidence=float(data.get("confidence", 0.5)),
            patterns=list((data.get("context") or {}).get("patterns") or []),
        )


@dataclass(slots=True)
class Meeting:
    """Canonical meeting record."""

    id: str
    subject: str
    start: datetime | None
    end: datetime | None
    organizer: str = ""
    attendees: list[Attendee] = field(default_factory=list)
    body_preview: str = ""
    is_online: bool = False
    join_url: str | None = None
    attendance_records: list[AttendanceRecord] = field(default_factory=list)
    attendance_summary: AttendanceSummary = field(default_factory=AttendanceSummary)
    analysis: MeetingAnalysis | None = None
    user_id: str | None = None
    last_processed: datetime | None = None

    def attendance_for(self, email: str | None) -> AttendanceRecord | None:
        """Find the attendance record of a user by case-insensitive email match."""
        if not email:
            return None
        wanted = email.strip().lower()
        for record in self.attendance_records:
            if record.email and record.email.strip().lower() == wanted:
                return record
        return None

    def attended_duration(self, email: str | None) -> int:
        """Seconds the given user attended; 0 when no matching record exists."""
        record = self.attendance_for(email)
        if record is None:
            return 0
        return max(int(record.duration_seconds or 0), 0)

    def scheduled_duration_seconds(self) -> int:
        if not self.start or not self.end:
            return 0
        return int((self.end - self.start).total_seconds())

    def participant_emails(self) -> list[str]:
        return [a.email for a in self.attendees if a.email]

    def to_dict(self) -> dict:
        """Convert to the stored/processed-meeting document shape."""
        return {
            "id": self.id,
            "subject": self.subject,
            "start": format_timestamp(self.start),
            "end": format_timestamp(self.end),
            "organizer": self.organizer,
            "attendees": [{"email": a.email, "name": a.name, "type": a.role} for a in self.attendees],
            "bodyPreview": self.body_preview,
            "isOnline": self.is_online,
            "joinUrl": self.join_url,
            "attendance": {
                "records": [r.to_dict() for r in self.attendance_records],
                "summary": self.attendance_summary.to_dict(),
            },
            "analysis": self.analysis.to_dict() if self.analysis else None,
            "userId": self.user_id,
            "lastProcessed": format_timestamp(self.last_processed),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Meeting":
        """Rebuild a meeting from its stored document shape."""
        attendance = data.get("attendance") or {}
        records = [
            AttendanceRecord(
                name=r.get("name", ""),
                email=r.get("email", ""),
                duration_seconds=int(r.get("duration") or 0),
                role=r.get("role"),
                intervals=[
                    AttendanceInterval(
                        join_time=parse_datetime(i.get("joinDateTime")),
                        leave_time=parse_datetime(i.get("leaveDateTime")),
                        duration_seconds=int(i.get("durationInSeconds") or 0),
                    )
                    for i in r.get("intervals") or []
                ],
            )
            for r in attendance.get("records") or []
        ]
        summary = attendance.get("summary") or {}
        return cls(
            id=data["id"],
            subject=data.get("subject", ""),
            start=parse_datetime(data.get("start")),
            end=parse_datetime(data.get("end")),
            organizer=data.get("organizer", ""),
            attendees=[
                Attendee(email=a.get("email", ""), name=a.get("name", ""), role=a.get("type"))
                for a in data.get("attendees") or []
            ],
            body_preview=data.get("bodyPreview", ""),
            is_online=bool(data.get("isOnline", False)),
            join_url=data.get("joinUrl"),
            attendance_records=records,
            attendance_summary=AttendanceSummary(
                total_duration=int(summary.get("totalDuration") or 0),
                average_duration=float(summary.get("averageDuration") or 0.0),
                participant_count=int(summary.get("participantCount") or 0),
            ),
            analysis=MeetingAnalysis.from_dict(data.get("analysis")),
            user_id=data.get("userId"),
            last_processed=parse_datetime(data.get("lastProcessed")),
        )
