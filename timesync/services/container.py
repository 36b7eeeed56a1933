"""
Explicit wiring of the pipeline services.

Everything is constructed here and handed to the caller (FastAPI app state,
worker job, tests); no service holds a module-level instance.
"""

from dataclasses import dataclass

from timesync.config import Settings, settings as default_settings
from timesync.infrastructure.storage.json_store import JsonDocumentStore
from timesync.services.ai.client import AIClient
from timesync.services.dedup.classifier import DuplicateClassifier
from timesync.services.ledger.migration import migrate_legacy_keys
from timesync.services.ledger.posted_entries import PostedEntryLedger
from timesync.services.matching.ai_matcher import AITaskMatcher
from timesync.services.matching.batch import BatchMatcher
from timesync.services.matching.keyword_matcher import KeywordMatcher
from timesync.services.matching.task_matcher import TaskMatcher
from timesync.services.meeting.analysis import MeetingAnalyzer
from timesync.services.meeting.graph_client import GraphCalendarClient
from timesync.services.meeting.meeting_service import MeetingService
from timesync.services.meeting.normalizer import MeetingNormalizer
from timesync.services.pipeline.sync_pipeline import MeetingSyncPipeline
from timesync.services.review.confidence_router import ConfidenceRouter
from timesync.services.review.review_service import ReviewQueue
from timesync.services.time_entry.poster import TimeEntryPoster


@dataclass(slots=True)
class Services:
    config: Settings
    store: JsonDocumentStore
    ai_client: AIClient
    ledger: PostedEntryLedger
    meetings: MeetingService
    classifier: DuplicateClassifier
    matcher: TaskMatcher
    batch_matcher: BatchMatcher
    router: ConfidenceRouter
    reviews: ReviewQueue
    poster: TimeEntryPoster
    pipeline: MeetingSyncPipeline
    calendar: GraphCalendarClient | None = None

    async def close(self) -> None:
        if self.calendar is not None:
            await self.calendar.close()


def build_services(
    config: Settings | None = None,
    store: JsonDocumentStore | None = None,
    ai_client: AIClient | None = None,
    calendar: GraphCalendarClient | None = None,
    analyze_meetings: bool = False,
) -> Services:
    """
    Construct the full service graph.

    Args:
        config: Settings (defaults to the module settings)
        store: JSON store (defaults to STORAGE_DIR)
        ai_client: Language-model client (built from settings when None)
        calendar: Graph client; built only when Graph credentials are configured
        analyze_meetings: Run the optional meeting analysis before matching
    """
    config = config or default_settings
    store = store or JsonDocumentStore(config.STORAGE_DIR)
    ai_client = ai_client or AIClient(config)

    if calendar is None and config.GRAPH_TENANT_ID and config.GRAPH_CLIENT_ID and config.GRAPH_CLIENT_SECRET:
        calendar = GraphCalendarClient(config)

    ledger = PostedEntryLedger(store)
    normalizer = MeetingNormalizer()
    keyword_matcher = KeywordMatcher(config)
    ai_matcher = AITaskMatcher(ai_client, config)

    meetings = MeetingService(
        store,
        normalizer,
        calendar=calendar,
        analyzer=MeetingAnalyzer(ai_client) if analyze_meetings and ai_client.configured else None,
    )
    classifier = DuplicateClassifier(ledger, ai_client, config)
    matcher = TaskMatcher(keyword_matcher, ai_matcher)
    router = ConfidenceRouter(config)
    poster = TimeEntryPoster(ledger, config)
    reviews = ReviewQueue(store, poster)

    return Services(
        config=config,
        store=store,
        ai_client=ai_client,
        ledger=ledger,
        meetings=meetings,
        classifier=classifier,
        matcher=matcher,
        batch_matcher=BatchMatcher(keyword_matcher, ai_matcher, normalizer, config),
        router=router,
        reviews=reviews,
        poster=poster,
        pipeline=MeetingSyncPipeline(
            meetings, classifier, matcher, router, reviews, poster, ledger, calendar=calendar, config=config
        ),
        calendar=calendar,
    )


def prepare_storage(services: Services) -> int:
    """
    Startup steps shared by the API and the worker: create the collections,
    reset legacy review files and rewrite legacy ledger keys.

    Returns:
        int: Number of ledger records whose key was rewritten
    """
    services.store.initialize()
    services.reviews.initialize()
    return migrate_legacy_keys(services.ledger)
