"""
Meeting processing: normalize, attach attendance, optionally analyze, and
cache the processed record so repeated runs reuse it.
"""

from timesync.infrastructure.observability.logging import get_logger
from timesync.infrastructure.storage.json_store import JsonDocumentStore
from timesync.models.domain.meeting_domain import Meeting
from timesync.services.ai.policy import fail_open
from timesync.services.meeting.analysis import MeetingAnalyzer
from timesync.services.meeting.graph_client import GraphCalendarClient
from timesync.services.meeting.normalizer import MeetingNormalizer

logger = get_logger(__name__)

COLLECTION = "meetings"


class MeetingService:
    """Builds processed meetings and keeps the processed-meeting cache."""

    def __init__(
        self,
        store: JsonDocumentStore,
        normalizer: MeetingNormalizer | None = None,
        calendar: GraphCalendarClient | None = None,
        analyzer: MeetingAnalyzer | None = None,
    ):
        self.store = store
        self.normalizer = normalizer or MeetingNormalizer()
        self.calendar = calendar
        self.analyzer = analyzer

    async def process(
        self,
        raw_meeting: dict,
        user_id: str,
        raw_attendance: list[dict] | None = None,
    ) -> Meeting:
        """
        Turn a raw meeting into a processed Meeting.

        Attendance comes from `raw_attendance` or the raw payload when either
        carries any; the payload is then authoritative and refreshes the cache.
        Otherwise a cached record for the same subject and start is reused,
        and only without one is the calendar source asked. A cached analysis
        is kept while the subject is unchanged; analysis failures leave
        `analysis` unset.

        Raises:
            MeetingNormalizationError: If the raw meeting is invalid
        """
        meeting = self.normalizer.normalize(raw_meeting, raw_attendance, user_id=user_id)

        cached = self.get_processed(meeting.id)
        if cached is not None and cached.user_id != user_id:
            cached = None
        same_instance = cached is not None and cached.subject == meeting.subject and cached.start == meeting.start

        if not meeting.attendance_records:
            if same_instance and cached.attendance_records:
                logger.debug("Meeting already processed, returning cached result", meeting_id=meeting.id)
                return cached
            if self.calendar and meeting.join_url:
                fetched = await self.calendar.fetch_attendance(user_id, meeting.join_url)
                if fetched:
                    meeting = self.normalizer.normalize(raw_meeting, fetched, user_id=user_id)

        if self.analyzer:
            if cached is not None and cached.analysis and cached.subject == meeting.subject:
                meeting.analysis = cached.analysis
            else:
                meeting.analysis = await fail_open(
                    self.analyzer.analyze(meeting),
                    None,
                    event="Meeting analysis failed, continuing without it",
                    meeting_id=meeting.id,
                )

        self.save(meeting)
        return meeting

    def save(self, meeting: Meeting) -> None:
        """Upsert a processed meeting by id."""
        document = self.store.load(COLLECTION)
        meetings = [m for m in document.get("meetings", []) if m.get("id") != meeting.id]
        meetings.append(meeting.to_dict())
        document["meetings"] = meetings
        self.store.save(COLLECTION, document)

    def get_processed(self, meeting_id: str) -> Meeting | None:
        for raw in self.store.load(COLLECTION).get("meetings", []):
            if raw.get("id") == meeting_id:
                try:
                    return Meeting.from_dict(raw)
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning("Dropping unreadable cached meeting", meeting_id=meeting_id, error=str(e))
                    return None
        return None

    def list_processed(self, user_id: str) -> list[Meeting]:
        wanted = user_id.strip().lower()
        meetings = []
        for raw in self.store.load(COLLECTION).get("meetings", []):
            if (raw.get("userId") or "").lower() != wanted:
                continue
            try:
                meetings.append(Meeting.from_dict(raw))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping unreadable cached meeting", meeting_id=raw.get("id"), error=str(e))
        return meetings
