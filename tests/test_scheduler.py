import asyncio
import logging

from sratim import config, scheduler
from sratim.showtimes import sync as sync_module
from sratim.showtimes.sync import SyncAlreadyRunning, SyncResult


def test_build_scheduler_registers_both_jobs():
    jobs = {job.id: job for job in scheduler.build_scheduler().get_jobs()}

    assert set(jobs) == {"showtime_sync", "sync_queue"}
    assert jobs["showtime_sync"].trigger.interval.total_seconds() == config.SHOWTIME_SYNC_INTERVAL
    assert jobs["sync_queue"].trigger.interval.total_seconds() == config.QUEUE_SYNC_INTERVAL
    assert all(job.max_instances == 1 for job in jobs.values())
    assert all(job.coalesce for job in jobs.values())


def test_default_intervals():
    assert config.SHOWTIME_SYNC_INTERVAL == 21600
    assert config.QUEUE_SYNC_INTERVAL == 60


def test_queue_job_logs_failure(monkeypatch, caplog):
    def broken():
        raise RuntimeError("meilisearch unreachable")

    monkeypatch.setattr(scheduler, "_process_queue_once", broken)

    with caplog.at_level(logging.ERROR, logger="sratim.scheduler"):
        asyncio.run(scheduler.sync_queue_job())

    assert "Sync queue job failed" in caplog.text


def test_showtime_job_logs_failure(monkeypatch, caplog):
    def broken():
        raise RuntimeError("feed is down")

    monkeypatch.setattr(sync_module, "run_showtime_sync", broken)

    with caplog.at_level(logging.ERROR, logger="sratim.scheduler"):
        asyncio.run(scheduler.showtime_sync_job())

    assert "Scheduled showtime sync failed" in caplog.text


def test_showtime_job_skips_when_sync_running(monkeypatch, caplog):
    def busy():
        raise SyncAlreadyRunning("A showtime sync is already running")

    monkeypatch.setattr(sync_module, "run_showtime_sync", busy)

    with caplog.at_level(logging.INFO, logger="sratim.scheduler"):
        asyncio.run(scheduler.showtime_sync_job())

    assert "another sync is running" in caplog.text
    assert not [r for r in caplog.records if r.levelno >= logging.ERROR]


def test_showtime_job_runs_sync(monkeypatch, caplog):
    monkeypatch.setattr(
        sync_module, "run_showtime_sync",
        lambda: SyncResult(trace_id="sync-1-abc", total=2, success=2),
    )

    with caplog.at_level(logging.INFO, logger="sratim.scheduler"):
        asyncio.run(scheduler.showtime_sync_job())

    assert "2 inserted" in caplog.text
