import threading

from sratim.showtimes.jobs import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    SyncJobRegistry,
)
from sratim.showtimes.sync import SyncResult


def test_completed_run_reports_results():
    registry = SyncJobRegistry()

    trace_id = registry.start(lambda tid: SyncResult(trace_id=tid, total=3, success=3))
    registry.wait(trace_id, timeout=5)

    status = registry.status(trace_id)
    assert status["traceId"] == trace_id
    assert status["status"] == STATUS_COMPLETED
    assert status["results"]["success"] == 3
    assert status["error"] is None
    assert status["startedAt"] and status["finishedAt"]


def test_failed_run_keeps_error():
    registry = SyncJobRegistry()

    def boom(trace_id):
        raise RuntimeError("feed is down")

    trace_id = registry.start(boom)
    registry.wait(trace_id, timeout=5)

    status = registry.status(trace_id)
    assert status["status"] == STATUS_FAILED
    assert status["error"] == "feed is down"
    assert status["results"] is None


def test_unknown_trace_id():
    assert SyncJobRegistry().status("sync-0-missing") is None


def test_oldest_runs_are_forgotten():
    registry = SyncJobRegistry(max_runs=2)

    ids = []
    for _ in range(3):
        trace_id = registry.start(lambda tid: SyncResult(trace_id=tid))
        registry.wait(trace_id, timeout=5)
        ids.append(trace_id)

    assert registry.status(ids[0]) is None
    assert registry.status(ids[2])["status"] == STATUS_COMPLETED


def test_start_while_running_returns_active_run():
    registry = SyncJobRegistry()
    release = threading.Event()

    def slow(trace_id):
        release.wait(5)
        return SyncResult(trace_id=trace_id)

    first = registry.start(slow)
    try:
        assert registry.start(slow) == first
    finally:
        release.set()
    registry.wait(first, timeout=5)

    second = registry.start(lambda tid: SyncResult(trace_id=tid))
    registry.wait(second, timeout=5)
    assert second != first
