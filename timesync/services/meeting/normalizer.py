"""
Meeting Normalizer
Converts raw calendar events and attendance reports into canonical Meeting records.
Accepts Microsoft Graph payloads as well as the flattened shape the dashboard posts.
"""

from datetime import UTC, datetime
from typing import Any

from timesync.infrastructure.observability.logging import get_logger
from timesync.models.domain.meeting_domain import (
    AttendanceInterval,
    AttendanceRecord,
    AttendanceSummary,
    Attendee,
    Meeting,
    parse_datetime,
)

logger = get_logger(__name__)


class MeetingNormalizationError(Exception):
    """Raised when a raw meeting violates the canonical invariants."""

    def __init__(self, message: str, meeting_id: str | None = None):
        super().__init__(message)
        self.meeting_id = meeting_id


def _email_of(value: Any) -> str:
    if isinstance(value, dict):
        nested = value.get("emailAddress")
        if isinstance(nested, dict):
            return nested.get("address") or ""
        if isinstance(nested, str):
            return nested
        return value.get("email") or value.get("address") or ""
    return str(value or "")


def _name_of(value: Any) -> str:
    if isinstance(value, dict):
        nested = value.get("emailAddress")
        if isinstance(nested, dict) and nested.get("name"):
            return nested["name"]
        identity = value.get("identity")
        if isinstance(identity, dict) and identity.get("displayName"):
            return identity["displayName"]
        return value.get("name") or ""
    return ""


def normalize_attendance_record(raw: dict) -> AttendanceRecord:
    """Map one raw attendance entry to {name, email, duration, role, intervals}."""
    duration = raw.get("totalAttendanceInSeconds")
    if duration is None:
        duration = raw.get("duration", raw.get("totalDurationSeconds", 0))

    intervals = [
        AttendanceInterval(
            join_time=parse_datetime(i.get("joinDateTime")),
            leave_time=parse_datetime(i.get("leaveDateTime")),
            duration_seconds=int(i.get("durationInSeconds") or 0),
        )
        for i in raw.get("attendanceIntervals") or raw.get("intervals") or []
    ]

    return AttendanceRecord(
        name=_name_of(raw) or "Unknown",
        email=_email_of(raw),
        duration_seconds=max(int(duration or 0), 0),
        role=raw.get("role"),
        intervals=intervals,
    )


def summarize_attendance(records: list[AttendanceRecord]) -> AttendanceSummary:
    """Aggregate totals across all attendees."""
    if not records:
        return AttendanceSummary()
    total = sum(r.duration_seconds for r in records)
    return AttendanceSummary(
        total_duration=total,
        average_duration=total / len(records),
        participant_count=len(records),
    )


class MeetingNormalizer:
    """Builds canonical meetings; never fails because attendance data is missing."""

    def normalize(
        self,
        raw_meeting: dict,
        raw_attendance: list[dict] | None = None,
        user_id: str | None = None,
    ) -> Meeting:
        """
        Convert a raw meeting plus optional attendance report into a Meeting.

        Args:
            raw_meeting: Graph event or flattened meeting dict
            raw_attendance: Attendance records; when None, records embedded in
                the meeting (``attendanceRecords`` / ``attendance.records``) are used
            user_id: Acting user's email

        Raises:
            MeetingNormalizationError: If the meeting has no id or ends before it starts
        """
        meeting_id = raw_meeting.get("id") or (raw_meeting.get("meetingInfo") or {}).get("meetingId")
        subject = raw_meeting.get("subject") or ""
        start = parse_datetime(raw_meeting.get("start") or raw_meeting.get("startTime"))
        end = parse_datetime(raw_meeting.get("end") or raw_meeting.get("endTime"))

        if not meeting_id:
            # Flattened payloads from the dashboard may omit ids; subject + start is unique enough
            if not start:
                raise MeetingNormalizationError("Meeting has neither id nor start time")
            meeting_id = f"{subject}_{start.isoformat()}"

        if start and end and end <= start:
            raise MeetingNormalizationError(
                f"Meeting ends before it starts ({start.isoformat()} -> {end.isoformat()})",
                meeting_id=meeting_id,
            )

        records = self._attendance_from(raw_meeting, raw_attendance)
        online = raw_meeting.get("onlineMeeting") or {}

        meeting = Meeting(
            id=str(meeting_id),
            subject=subject,
            start=start,
            end=end,
            organizer=_email_of(raw_meeting.get("organizer")),
            attendees=[
                Attendee(email=_email_of(a), name=_name_of(a), role=a.get("type") or a.get("role"))
                for a in raw_meeting.get("attendees") or []
                if isinstance(a, dict)
            ],
            body_preview=raw_meeting.get("bodyPreview") or raw_meeting.get("description") or "",
            is_online=bool(
                raw_meeting.get("isOnlineMeeting")
                or raw_meeting.get("isTeamsMeeting")
                or raw_meeting.get("isOnline")
                or online.get("joinUrl")
            ),
            join_url=online.get("joinUrl") or raw_meeting.get("joinUrl"),
            attendance_records=records,
            attendance_summary=summarize_attendance(records),
            user_id=user_id,
            last_processed=datetime.now(UTC),
        )

        logger.debug(
            "Meeting normalized",
            meeting_id=meeting.id,
            attendance_records=len(records),
            attended_seconds=meeting.attended_duration(user_id),
        )
        return meeting

    def _attendance_from(self, raw_meeting: dict, raw_attendance: list[dict] | None) -> list[AttendanceRecord]:
        if raw_attendance is None:
            raw_attendance = raw_meeting.get("attendanceRecords")
        if raw_attendance is None:
            raw_attendance = (raw_meeting.get("attendance") or {}).get("records")

        records = []
        for raw in raw_attendance or []:
            if not isinstance(raw, dict):
                continue
            try:
                records.append(normalize_attendance_record(raw))
            except (TypeError, ValueError) as e:
                logger.warning("Dropping malformed attendance record", error=str(e))
        return records
