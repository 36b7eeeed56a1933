"""
Posted-Entry Ledger.

Durable record of time entries already written for (user, fingerprint)
pairs; the source of truth for "already handled". Records are inserted once
and never rewritten, with one exception: a `pending` record written before
the external post is confirmed (or discarded) once the post settles.
"""

from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import ValidationError

from timesync.infrastructure.observability.logging import get_logger
from timesync.infrastructure.storage.json_store import JsonDocumentStore, StorageError
from timesync.models.domain.ledger_domain import LedgerRecord, TimeEntry

logger = get_logger(__name__)

COLLECTION = "ledger"


def _same_user(a: str | None, b: str | None) -> bool:
    return (a or "").strip().lower() == (b or "").strip().lower()


class PostedEntryLedger:
    def __init__(self, store: JsonDocumentStore):
        self.store = store

    # ------------------------------------------------------------------
    # persistence
    # ------------------------------------------------------------------

    def load(self) -> list[LedgerRecord]:
        """
        Load every ledger record.

        Unreadable records and confirmed records without a time entry are
        dropped; if anything was dropped the cleaned ledger is written back.
        """
        document = self.store.load(COLLECTION)
        raw_records = document.get("meetings") or []

        records: list[LedgerRecord] = []
        dropped = 0
        for raw in raw_records:
            try:
                record = LedgerRecord.model_validate(raw)
            except ValidationError as e:
                logger.warning("Dropping invalid ledger record", meeting_id=raw.get("meetingId"), error=str(e))
                dropped += 1
                continue
            if record.state == "confirmed" and record.time_entry is None:
                dropped += 1
                continue
            records.append(record)

        if dropped:
            logger.info("Ledger cleaned on load", dropped=dropped, kept=len(records))
            self.save(records)
        return records

    def save(self, records: list[LedgerRecord]) -> None:
        self.store.save(COLLECTION, {"meetings": [r.to_document() for r in records]})

    def _index_of(self, records: list[LedgerRecord], user_id: str, fingerprint: str) -> int | None:
        for i, record in enumerate(records):
            if record.key == fingerprint and _same_user(record.user_id, user_id):
                return i
        return None

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    def find(self, user_id: str, fingerprint: str) -> LedgerRecord | None:
        records = self.load()
        index = self._index_of(records, user_id, fingerprint)
        return records[index] if index is not None else None

    def is_posted(self, user_id: str, fingerprint: str) -> bool:
        record = self.find(user_id, fingerprint)
        return record is not None and record.has_time_entry()

    def list_for_user(self, user_id: str) -> list[LedgerRecord]:
        """Confirmed records for a user, most recently posted first."""
        records = [r for r in self.load() if _same_user(r.user_id, user_id) and r.has_time_entry()]
        return sorted(records, key=lambda r: r.posted_at, reverse=True)

    def last_posted_at(self, user_id: str) -> datetime | None:
        records = self.list_for_user(user_id)
        return records[0].posted_at if records else None

    def filter_unposted(self, user_id: str, fingerprints: list[str]) -> list[str]:
        posted = {r.key for r in self.list_for_user(user_id)}
        return [fp for fp in fingerprints if fp not in posted]

    def pending(self, user_id: str | None = None, older_than: timedelta | None = None) -> list[LedgerRecord]:
        """
        Reconciliation sweep: records stuck in `pending`.

        A pending record means the external post may or may not have happened;
        it needs a human to check the time-tracking system before it is
        discarded or confirmed.
        """
        cutoff = datetime.now(UTC) - older_than if older_than else None
        stale = [
            r
            for r in self.load()
            if r.state == "pending"
            and (user_id is None or _same_user(r.user_id, user_id))
            and (cutoff is None or r.posted_at <= cutoff)
        ]
        if stale:
            logger.warning(
                "Pending ledger records need reconciliation",
                count=len(stale),
                fingerprints=[r.key for r in stale],
            )
        return stale

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------

    def add(self, record: LedgerRecord) -> bool:
        """
        Idempotent insert keyed by (user, fingerprint).

        Returns:
            bool: False when a record for the key already exists (no-op)
        """
        records = self.load()
        if self._index_of(records, record.user_id, record.key) is not None:
            logger.debug("Ledger record already exists", fingerprint=record.key, user_id=record.user_id)
            return False

        records.append(record)
        self.save(records)
        logger.info("Ledger record added", fingerprint=record.key, user_id=record.user_id, state=record.state)
        return True

    def begin_pending(self, record: LedgerRecord) -> bool:
        """Reserve the key before the external write. False if the key is taken."""
        return self.add(record.model_copy(update={"state": "pending", "time_entry": None}))

    def confirm(self, user_id: str, fingerprint: str, time_entry: TimeEntry, raw_response: Any) -> LedgerRecord:
        """
        Attach the created time entry to a pending record.

        Raises:
            StorageError: If there is no pending record or the write fails
        """
        records = self.load()
        index = self._index_of(records, user_id, fingerprint)
        if index is None or records[index].state != "pending":
            raise StorageError(f"No pending ledger record for {fingerprint}", collection=COLLECTION)

        confirmed = records[index].model_copy(
            update={
                "state": "confirmed",
                "time_entry": time_entry,
                "raw_response": raw_response,
                "posted_at": datetime.now(UTC),
            }
        )
        records[index] = confirmed
        self.save(records)
        logger.info("Ledger record confirmed", fingerprint=fingerprint, user_id=user_id, time_entry_id=time_entry.id)
        return confirmed

    def discard_pending(self, user_id: str, fingerprint: str) -> bool:
        """Remove a pending record after the external write failed."""
        records = self.load()
        index = self._index_of(records, user_id, fingerprint)
        if index is None or records[index].state != "pending":
            return False
        del records[index]
        self.save(records)
        logger.info("Pending ledger record discarded", fingerprint=fingerprint, user_id=user_id)
        return True

    def clear_user(self, user_id: str) -> int:
        records = self.load()
        kept = [r for r in records if not _same_user(r.user_id, user_id)]
        removed = len(records) - len(kept)
        if removed:
            self.save(kept)
            logger.info("Ledger cleared for user", user_id=user_id, removed=removed)
        return removed
