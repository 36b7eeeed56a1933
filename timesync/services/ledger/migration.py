"""
Startup migration of legacy ledger keys to the canonical fingerprint.

Two legacy shapes exist:
  - doubled-subject keys written without lowercasing the subject or
    normalizing the start time
  - records keyed only by the raw calendar id, which still carry the
    subject and start time they were posted for
"""

from timesync.infrastructure.observability.logging import get_logger
from timesync.models.domain.ledger_domain import LedgerRecord
from timesync.services.ledger.posted_entries import PostedEntryLedger
from timesync.services.meeting.fingerprint import canonicalize_key, generate_fingerprint

logger = get_logger(__name__)


def canonical_fingerprint(record: LedgerRecord) -> str | None:
    """The canonical key for a record, or None if it cannot be derived."""
    canonical = canonicalize_key(record.key, record.user_id)
    if canonical:
        return canonical
    if record.subject is not None and record.start_time:
        return generate_fingerprint(record.user_id, record.subject, record.start_time)
    return None


def migrate_legacy_keys(ledger: PostedEntryLedger) -> int:
    """
    Rewrite legacy ledger keys in place.

    Idempotent: canonical keys map to themselves. When two records collapse
    onto the same key the earliest posting is kept.

    Returns:
        int: Number of records whose key was rewritten
    """
    records = ledger.load()
    rewritten = 0
    migrated: list[LedgerRecord] = []
    seen: dict[tuple[str, str], int] = {}

    for record in sorted(records, key=lambda r: r.posted_at):
        canonical = canonical_fingerprint(record)
        if canonical and canonical != record.fingerprint:
            record = record.model_copy(update={"fingerprint": canonical})
            rewritten += 1

        identity = (record.user_id.strip().lower(), record.key)
        if identity in seen:
            logger.warning(
                "Duplicate ledger record after key migration, keeping earliest",
                fingerprint=record.key,
                meeting_id=record.meeting_id,
            )
            continue
        seen[identity] = len(migrated)
        migrated.append(record)

    if rewritten or len(migrated) != len(records):
        ledger.save(migrated)

    logger.info(
        "Ledger key migration complete",
        records=len(records),
        rewritten=rewritten,
        collapsed=len(records) - len(migrated),
    )
    return rewritten
