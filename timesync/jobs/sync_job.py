"""
Calendar sync job.

Pulls the configured mailbox's recent calendar from Graph and runs the full
pipeline once. Meant to be scheduled externally (cron, a container job).
"""

from timesync.config import Settings, settings as default_settings
from timesync.infrastructure.observability.logging import get_logger
from timesync.services.container import Services, build_services, prepare_storage
from timesync.services.time_entry.intervals_client import IntervalsClient

logger = get_logger(__name__)


async def run_meeting_sync(config: Settings | None = None, services: Services | None = None) -> dict[str, int]:
    """
    Run one sync for SYNC_USER_EMAIL using SYNC_INTERVALS_API_KEY.

    Returns:
        The run summary counts

    Raises:
        RuntimeError: If the sync user, API key or calendar source is missing
    """
    config = config or default_settings
    if not config.SYNC_USER_EMAIL or not config.SYNC_INTERVALS_API_KEY:
        raise RuntimeError("SYNC_USER_EMAIL and SYNC_INTERVALS_API_KEY must be set for the sync job")

    owns_services = services is None
    services = services or build_services(config)
    if services.calendar is None:
        if owns_services:
            await services.close()
        raise RuntimeError("Graph credentials are required for the sync job")

    user_id = config.SYNC_USER_EMAIL.strip().lower()
    try:
        prepare_storage(services)

        async with IntervalsClient(config.SYNC_INTERVALS_API_KEY) as client:
            result = await services.pipeline.sync_from_calendar(user_id, client)

        summary = result.summary()
        logger.info("Meeting sync job complete", user_id=user_id, run_id=result.run_id, **summary)
        return summary
    finally:
        if owns_services:
            await services.close()
