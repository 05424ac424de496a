"""APScheduler-based interval scheduling of the reference set sync."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from apscheduler.events import EVENT_JOB_ERROR
from apscheduler.schedulers.blocking import BlockingScheduler

from scripts.refsync.config import SyncConfig
from scripts.refsync.errors import EXIT_OK

logger = logging.getLogger("refsync.scheduler")

JOB_ID = "reference_set_sync"


def _sync_job(config: SyncConfig) -> None:
    """Run one sync pass; failures are logged and retried on the next tick."""
    from scripts.refsync.cli import run_sync

    code = run_sync(config)
    if code != EXIT_OK:
        logger.warning("Scheduled sync exited with code %d", code)


def _on_job_error(event) -> None:
    """Log job execution errors."""
    logger.error(
        "Job %s raised an exception: %s",
        event.job_id,
        event.exception,
    )


def build_scheduler(config: SyncConfig) -> BlockingScheduler:
    scheduler = BlockingScheduler()
    scheduler.add_listener(_on_job_error, EVENT_JOB_ERROR)
    scheduler.add_job(
        _sync_job,
        "interval",
        minutes=config.interval_min,
        args=[config],
        id=JOB_ID,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=300,
        next_run_time=datetime.now(timezone.utc),
    )
    return scheduler


def start_scheduler(config: SyncConfig) -> None:
    """Start the blocking scheduler; the first sync runs immediately."""
    scheduler = build_scheduler(config)
    logger.info(
        "Starting scheduler, syncing every %d minutes", config.interval_min
    )
    scheduler.start()
