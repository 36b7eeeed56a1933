import pytest

from tests.fakes import USER, FakeAIClient, make_raw_meeting
from timesync.services.ai.client import AIClientError
from timesync.services.meeting.analysis import MeetingAnalyzer, extract_sections, parse_analysis
from timesync.services.meeting.meeting_service import MeetingService
from timesync.services.meeting.normalizer import MeetingNormalizer

ANALYSIS = """Key Points:
- Reviewed sprint backlog
* Agreed on scope

Categories:
- Planning

Relevance:
Score 0.8

Confidence:
1.7

Context:
- Recurring ceremony
"""


def test_extract_sections_lowercases_headers():
    sections = extract_sections("Key Points:\n- a\n\nRelevance:\n0.4")

    assert sections == {"key points": "- a", "relevance": "0.4"}


def test_parse_analysis_reads_every_section():
    analysis = parse_analysis(ANALYSIS)

    assert analysis.key_points == ["Reviewed sprint backlog", "Agreed on scope"]
    assert analysis.suggested_categories == ["Planning"]
    assert analysis.relevance_score == 0.8
    assert analysis.confidence == 1.0
    assert analysis.patterns == ["Recurring ceremony"]


def test_parse_analysis_defaults_missing_sections():
    analysis = parse_analysis("nothing structured")

    assert analysis.key_points == []
    assert analysis.relevance_score == 0.5
    assert analysis.confidence == 0.5


@pytest.mark.asyncio
async def test_service_attaches_analysis_and_caches(store):
    ai = FakeAIClient([ANALYSIS])
    service = MeetingService(store, MeetingNormalizer(), analyzer=MeetingAnalyzer(ai))

    meeting = await service.process(make_raw_meeting(), USER)

    assert meeting.analysis.key_points[0] == "Reviewed sprint backlog"
    assert "Meeting Subject: Sprint Planning" in ai.prompts[0]

    again = await service.process(make_raw_meeting(), USER)
    assert again.analysis.key_points == meeting.analysis.key_points
    assert len(ai.prompts) == 1
    assert [m.id for m in service.list_processed(USER)] == ["m-1"]


@pytest.mark.asyncio
async def test_analysis_failure_leaves_meeting_usable(store):
    service = MeetingService(store, MeetingNormalizer(), analyzer=MeetingAnalyzer(FakeAIClient([AIClientError("down")])))

    meeting = await service.process(make_raw_meeting(), USER)

    assert meeting.analysis is None
    assert meeting.attended_duration(USER) == 3000


@pytest.mark.asyncio
async def test_attendance_fetched_from_calendar_when_missing(store):
    class Calendar:
        async def fetch_attendance(self, user_id, join_url):
            return [{"emailAddress": USER, "totalAttendanceInSeconds": 1800}]

    raw = make_raw_meeting(attended={})
    raw["onlineMeeting"] = {"joinUrl": "https://teams.example/join/1"}
    service = MeetingService(store, MeetingNormalizer(), calendar=Calendar())

    meeting = await service.process(raw, USER)

    assert meeting.attended_duration(USER) == 1800


@pytest.mark.asyncio
async def test_payload_attendance_refreshes_cached_meeting(store):
    service = MeetingService(store, MeetingNormalizer())
    await service.process(make_raw_meeting(attended={USER: 600}), USER)

    updated = await service.process(make_raw_meeting(subject="Acme weekly", attended={USER: 3000}), USER)

    assert updated.subject == "Acme weekly"
    assert updated.attended_duration(USER) == 3000
    assert service.get_processed("m-1").attended_duration(USER) == 3000


@pytest.mark.asyncio
async def test_cached_attendance_used_when_payload_has_none(store):
    service = MeetingService(store, MeetingNormalizer())
    await service.process(make_raw_meeting(attended={USER: 1200}), USER)

    again = await service.process(make_raw_meeting(attended={}), USER)

    assert again.attended_duration(USER) == 1200
