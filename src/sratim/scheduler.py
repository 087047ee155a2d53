"""Scheduled jobs: showtime sync and sync-queue processing."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from sratim import config

logger = logging.getLogger(__name__)


def _process_queue_once() -> dict:
    from sratim.db.models import get_session_factory
    from sratim.search.index import SearchIndex
    from sratim.search.queue import process_sync_queue

    index = SearchIndex.from_config()
    with get_session_factory()() as session:
        return process_sync_queue(session, index, limit=config.QUEUE_BATCH_SIZE).to_dict()


async def showtime_sync_job() -> None:
    """Job callback: pull the CountIt feed into ``movieshows``."""
    from sratim.showtimes.sync import SyncAlreadyRunning, run_showtime_sync

    try:
        result = await asyncio.to_thread(run_showtime_sync)
        logger.info(
            "Scheduled showtime sync done: %d inserted, %d existing, %d failed",
            result.success, result.existing, result.failed,
        )
    except SyncAlreadyRunning:
        logger.info("Skipping scheduled showtime sync, another sync is running")
    except Exception:
        logger.exception("Scheduled showtime sync failed")


async def sync_queue_job() -> None:
    """Job callback: push pending catalog changes to Meilisearch."""
    try:
        report = await asyncio.to_thread(_process_queue_once)
        if report["fetched"]:
            logger.info("Sync queue run: %s", report)
    except Exception:
        logger.exception("Sync queue job failed")


def build_scheduler() -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone=timezone.utc)
    now = datetime.now(timezone.utc)

    scheduler.add_job(
        showtime_sync_job,
        "interval",
        seconds=config.SHOWTIME_SYNC_INTERVAL,
        next_run_time=now + timedelta(seconds=30),
        id="showtime_sync",
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        sync_queue_job,
        "interval",
        seconds=config.QUEUE_SYNC_INTERVAL,
        next_run_time=now + timedelta(seconds=5),
        id="sync_queue",
        max_instances=1,
        coalesce=True,
    )
    return scheduler
