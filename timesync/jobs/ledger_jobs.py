"""
Ledger maintenance jobs.
"""

from datetime import timedelta

from timesync.config import Settings, settings as default_settings
from timesync.infrastructure.observability.logging import get_logger
from timesync.infrastructure.storage.json_store import JsonDocumentStore
from timesync.services.ledger.migration import migrate_legacy_keys
from timesync.services.ledger.posted_entries import PostedEntryLedger

logger = get_logger(__name__)


def _ledger(config: Settings, store: JsonDocumentStore | None) -> PostedEntryLedger:
    store = store or JsonDocumentStore(config.STORAGE_DIR)
    store.initialize()
    return PostedEntryLedger(store)


async def run_ledger_migration(config: Settings | None = None, store: JsonDocumentStore | None = None) -> int:
    """Rewrite legacy ledger keys to the canonical fingerprint form."""
    config = config or default_settings
    ledger = _ledger(config, store)

    backup = ledger.store.backup("ledger", "ledger-premigration")
    rewritten = migrate_legacy_keys(ledger)
    logger.info("Ledger migration job complete", rewritten=rewritten, backup=str(backup))
    return rewritten


async def run_pending_reconciliation(
    config: Settings | None = None, store: JsonDocumentStore | None = None
) -> list[str]:
    """
    Report time entries whose post was started but never confirmed.

    Such records block reposting of their meeting; an operator checks the
    time-tracking system and either deletes the record or confirms it.
    """
    config = config or default_settings
    ledger = _ledger(config, store)

    stale = ledger.pending(older_than=timedelta(minutes=config.PENDING_RECONCILIATION_AGE_MINUTES))
    for record in stale:
        logger.warning(
            "Unconfirmed time entry needs reconciliation",
            user_id=record.user_id,
            meeting_id=record.meeting_id,
            fingerprint=record.key,
            subject=record.subject,
            started_at=record.posted_at.isoformat(),
        )

    logger.info("Pending reconciliation job complete", stale_count=len(stale))
    return [record.key for record in stale]
