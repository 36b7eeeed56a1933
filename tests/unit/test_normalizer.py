from datetime import UTC, datetime

import pytest

from timesync.models.domain.meeting_domain import Meeting, parse_datetime
from timesync.services.meeting.normalizer import MeetingNormalizationError, MeetingNormalizer

GRAPH_EVENT = {
    "id": "AAMkAGI2",
    "subject": "Design Review",
    "bodyPreview": "Walk through the new API",
    "start": {"dateTime": "2024-01-15T10:00:00.0000000", "timeZone": "UTC"},
    "end": {"dateTime": "2024-01-15T11:00:00.0000000", "timeZone": "UTC"},
    "organizer": {"emailAddress": {"address": "lead@example.com", "name": "Lead"}},
    "attendees": [
        {"emailAddress": {"address": "User@Example.com", "name": "User"}, "type": "required"},
        {"emailAddress": {"address": "peer@example.com", "name": "Peer"}, "type": "optional"},
    ],
    "isOnlineMeeting": True,
    "onlineMeeting": {"joinUrl": "https://teams.microsoft.com/l/meetup-join/abc"},
}

GRAPH_ATTENDANCE = [
    {
        "emailAddress": "user@example.com",
        "totalAttendanceInSeconds": 1800,
        "role": "Attendee",
        "identity": {"displayName": "User"},
        "attendanceIntervals": [
            {
                "joinDateTime": "2024-01-15T10:05:00Z",
                "leaveDateTime": "2024-01-15T10:35:00Z",
                "durationInSeconds": 1800,
            }
        ],
    },
    {"emailAddress": "peer@example.com", "totalAttendanceInSeconds": 3600, "role": "Organizer"},
]


def test_normalize_graph_event_with_attendance():
    meeting = MeetingNormalizer().normalize(GRAPH_EVENT, GRAPH_ATTENDANCE, user_id="user@example.com")

    assert meeting.id == "AAMkAGI2"
    assert meeting.start == datetime(2024, 1, 15, 10, 0, tzinfo=UTC)
    assert meeting.organizer == "lead@example.com"
    assert meeting.is_online is True
    assert meeting.join_url == "https://teams.microsoft.com/l/meetup-join/abc"
    assert meeting.participant_emails() == ["User@Example.com", "peer@example.com"]
    assert meeting.attended_duration("USER@example.com") == 1800
    assert meeting.attendance_records[0].name == "User"
    assert len(meeting.attendance_records[0].intervals) == 1
    assert meeting.attendance_summary.total_duration == 5400
    assert meeting.attendance_summary.participant_count == 2


def test_missing_attendance_means_zero_duration():
    meeting = MeetingNormalizer().normalize(GRAPH_EVENT, user_id="user@example.com")

    assert meeting.attendance_records == []
    assert meeting.attended_duration("user@example.com") == 0
    assert meeting.attendance_summary.participant_count == 0


def test_attendance_from_other_users_only_means_zero_duration():
    meeting = MeetingNormalizer().normalize(GRAPH_EVENT, GRAPH_ATTENDANCE[1:], user_id="user@example.com")

    assert meeting.attended_duration("user@example.com") == 0


def test_embedded_flattened_attendance_is_used():
    raw = {
        "id": "m-1",
        "subject": "Standup",
        "startTime": "2024-01-15T09:00:00Z",
        "endTime": "2024-01-15T09:15:00Z",
        "attendance": {"records": [{"email": "user@example.com", "duration": 900}]},
    }

    meeting = MeetingNormalizer().normalize(raw, user_id="user@example.com")

    assert meeting.attended_duration("user@example.com") == 900
    assert meeting.scheduled_duration_seconds() == 900


def test_negative_durations_are_clamped():
    raw = {"id": "m-1", "subject": "x", "startTime": "2024-01-15T09:00:00Z"}

    meeting = MeetingNormalizer().normalize(raw, [{"email": "user@example.com", "duration": -30}])

    assert meeting.attended_duration("user@example.com") == 0


def test_meeting_ending_before_start_is_rejected():
    raw = {"id": "m-1", "subject": "x", "startTime": "2024-01-15T10:00:00Z", "endTime": "2024-01-15T09:00:00Z"}

    with pytest.raises(MeetingNormalizationError) as exc:
        MeetingNormalizer().normalize(raw)

    assert exc.value.meeting_id == "m-1"


def test_missing_id_falls_back_to_subject_and_start():
    raw = {"subject": "Standup", "startTime": "2024-01-15T10:00:00Z"}

    meeting = MeetingNormalizer().normalize(raw)

    assert meeting.id == "Standup_2024-01-15T10:00:00+00:00"


def test_missing_id_and_start_is_rejected():
    with pytest.raises(MeetingNormalizationError):
        MeetingNormalizer().normalize({"subject": "Standup"})


def test_processed_meeting_document_round_trip():
    meeting = MeetingNormalizer().normalize(GRAPH_EVENT, GRAPH_ATTENDANCE, user_id="user@example.com")

    restored = Meeting.from_dict(meeting.to_dict())

    assert restored.id == meeting.id
    assert restored.start == meeting.start
    assert restored.user_id == "user@example.com"
    assert restored.attended_duration("user@example.com") == 1800


def test_parse_datetime_accepts_graph_fraction_and_naive_values():
    assert parse_datetime("2024-01-15T10:00:00.1234567Z") == datetime(2024, 1, 15, 10, 0, 0, 123456, tzinfo=UTC)
    assert parse_datetime("2024-01-15T10:00:00") == datetime(2024, 1, 15, 10, 0, tzinfo=UTC)
    assert parse_datetime("garbage") is None
    assert parse_datetime({"dateTime": None}) is None
