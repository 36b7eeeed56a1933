"""
One-shot job runner for scheduled maintenance and sync.

    timesync-worker [job]        # or WORKER_JOB=<job>

Jobs:
    sync_meetings     pull the configured calendar and run the pipeline (default)
    migrate_ledger    back up the ledger and rewrite legacy keys
    reconcile_ledger  report pending ledger records that were never confirmed
"""

import asyncio
import os
import sys
import time
from collections.abc import Awaitable, Callable
from typing import Any

from timesync.config import settings
from timesync.infrastructure.observability.logging import get_logger, setup_logging
from timesync.jobs.ledger_jobs import run_ledger_migration, run_pending_reconciliation
from timesync.jobs.sync_job import run_meeting_sync

logger = get_logger(__name__)

DEFAULT_JOB = "sync_meetings"

JOB_REGISTRY: dict[str, Callable[[], Awaitable[Any]]] = {
    "sync_meetings": run_meeting_sync,
    "migrate_ledger": run_ledger_migration,
    "reconcile_ledger": run_pending_reconciliation,
}


def _resolve_job_name() -> str:
    """First CLI argument wins over WORKER_JOB."""
    requested = sys.argv[1] if len(sys.argv) > 1 else os.getenv("WORKER_JOB", DEFAULT_JOB)
    return requested.strip().lower()


async def run_worker(job_name: str | None = None) -> Any:
    """
    Run one registered job to completion and return whatever it returns.

    Raises:
        ValueError: If the job name is not registered
    """
    name = (job_name or _resolve_job_name()).strip().lower()
    job = JOB_REGISTRY.get(name)
    if job is None:
        known = ", ".join(sorted(JOB_REGISTRY))
        raise ValueError(f"Unknown worker job '{name}'. Available jobs: {known}")

    started = time.monotonic()
    logger.info("Worker job started", job=name)
    result = await job()
    logger.info("Worker job finished", job=name, duration_s=round(time.monotonic() - started, 2))
    return result


def main() -> None:
    setup_logging(log_level=settings.LOG_LEVEL)
    try:
        asyncio.run(run_worker(_resolve_job_name()))
    except (ValueError, RuntimeError) as e:
        logger.error("Worker job failed", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
