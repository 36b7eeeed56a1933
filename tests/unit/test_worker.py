from datetime import UTC, datetime, timedelta

import pytest

from tests.fakes import USER, FakeIntervalsClient, make_raw_meeting, make_task
from timesync.jobs import ledger_jobs, sync_job, worker
from timesync.models.domain.ledger_domain import LedgerRecord, TimeEntry
from timesync.services.container import build_services
from timesync.services.ledger.posted_entries import PostedEntryLedger


class FakeCalendar:
    def __init__(self, meetings):
        self.meetings = meetings
        self.closed = False

    async def fetch_meetings(self, user_id, start, end):
        return list(self.meetings)

    async def fetch_attendance(self, user_id, join_url):
        return []

    async def close(self):
        self.closed = True


@pytest.mark.asyncio
async def test_run_worker_runs_job(monkeypatch):
    called = {"ok": False}

    async def dummy_job():
        called["ok"] = True

    monkeypatch.setitem(worker.JOB_REGISTRY, "dummy", dummy_job)

    await worker.run_worker("Dummy ")

    assert called["ok"] is True


@pytest.mark.asyncio
async def test_run_worker_unknown_job():
    with pytest.raises(ValueError, match="sync_meetings"):
        await worker.run_worker("missing")


def test_job_name_defaults_to_sync(monkeypatch):
    monkeypatch.setattr(worker.sys, "argv", ["worker"])
    monkeypatch.delenv("WORKER_JOB", raising=False)

    assert worker._resolve_job_name() == "sync_meetings"


def test_job_name_from_env_and_argv(monkeypatch):
    monkeypatch.setattr(worker.sys, "argv", ["worker"])
    monkeypatch.setenv("WORKER_JOB", "RECONCILE_LEDGER")
    assert worker._resolve_job_name() == "reconcile_ledger"

    monkeypatch.setattr(worker.sys, "argv", ["worker", "migrate_ledger"])
    assert worker._resolve_job_name() == "migrate_ledger"


@pytest.mark.asyncio
async def test_sync_job_requires_user_and_key(test_settings):
    with pytest.raises(RuntimeError):
        await sync_job.run_meeting_sync(test_settings)


@pytest.mark.asyncio
async def test_sync_job_requires_calendar(test_settings, store, fake_ai):
    config = test_settings.model_copy(update={"SYNC_USER_EMAIL": USER, "SYNC_INTERVALS_API_KEY": "key"})
    services = build_services(config, store, ai_client=fake_ai)

    with pytest.raises(RuntimeError, match="Graph"):
        await sync_job.run_meeting_sync(config, services)


@pytest.mark.asyncio
async def test_sync_job_runs_pipeline_for_configured_user(test_settings, store, fake_ai, monkeypatch):
    config = test_settings.model_copy(update={"SYNC_USER_EMAIL": "User@Example.com", "SYNC_INTERVALS_API_KEY": "key"})
    calendar = FakeCalendar([make_raw_meeting()])
    services = build_services(config, store, ai_client=fake_ai, calendar=calendar)
    intervals = FakeIntervalsClient(tasks=[make_task()])
    api_keys = []

    def fake_client(api_key):
        api_keys.append(api_key)
        return intervals

    monkeypatch.setattr(sync_job, "IntervalsClient", fake_client)

    summary = await sync_job.run_meeting_sync(config, services)

    assert summary["posted"] == 1
    assert api_keys == ["key"]
    assert intervals.posted[0].description == "Sprint Planning"
    assert calendar.closed is False


@pytest.mark.asyncio
async def test_migration_job_backs_up_and_rewrites(test_settings, store):
    ledger = PostedEntryLedger(store)
    ledger.add(
        LedgerRecord(
            meeting_id="m-1",
            fingerprint="user@example.com_Sprint Planning_Sprint Planning_2024-01-15T10:00:00.000Z",
            user_id=USER,
            subject="Sprint Planning",
            start_time="2024-01-15T10:00:00Z",
            time_entry=TimeEntry(id="te-1", task_id="101", date="2024-01-15", hours=0.83),
        )
    )

    rewritten = await ledger_jobs.run_ledger_migration(test_settings, store)

    assert rewritten == 1
    assert list(store.base_dir.glob("ledger-premigration-*.json"))


@pytest.mark.asyncio
async def test_reconciliation_job_reports_stale_pending_records(test_settings, store):
    ledger = PostedEntryLedger(store)
    old = datetime.now(UTC) - timedelta(hours=2)
    ledger.add(LedgerRecord(meeting_id="m-old", fingerprint="fp-old", user_id=USER, state="pending", posted_at=old))
    ledger.add(LedgerRecord(meeting_id="m-new", fingerprint="fp-new", user_id=USER, state="pending"))

    stale = await ledger_jobs.run_pending_reconciliation(test_settings, store)

    assert stale == ["fp-old"]
    assert {r.key for r in ledger.pending()} == {"fp-old", "fp-new"}


@pytest.mark.asyncio
async def test_sync_job_migrates_legacy_keys_before_syncing(test_settings, store, fake_ai, monkeypatch):
    PostedEntryLedger(store).add(
        LedgerRecord(
            meeting_id="m-1",
            fingerprint="user@example.com_Sprint Planning_Sprint Planning_2024-01-15T10:00:00.000Z",
            user_id=USER,
            subject="Sprint Planning",
            start_time="2024-01-15T10:00:00Z",
            duration_seconds=3000,
            time_entry=TimeEntry(id="te-1", task_id="101", date="2024-01-15", hours=0.83),
        )
    )
    config = test_settings.model_copy(update={"SYNC_USER_EMAIL": USER, "SYNC_INTERVALS_API_KEY": "key"})
    services = build_services(config, store, ai_client=fake_ai, calendar=FakeCalendar([make_raw_meeting()]))
    intervals = FakeIntervalsClient(tasks=[make_task()])
    monkeypatch.setattr(sync_job, "IntervalsClient", lambda api_key: intervals)

    summary = await sync_job.run_meeting_sync(config, services)

    assert summary["duplicates"] == 1
    assert summary["posted"] == 0
    assert intervals.posted == []
    assert [r.key for r in services.ledger.load()] == [
        "user@example.com_sprint planning_sprint planning_2024-01-15T10:00:00Z"
    ]
