"""Background showtime sync runs, tracked by trace id."""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from sratim.showtimes.sync import SyncResult, new_trace_id

logger = logging.getLogger(__name__)

STATUS_QUEUED = "QUEUED"
STATUS_IN_PROGRESS = "IN_PROGRESS"
STATUS_COMPLETED = "COMPLETED"
STATUS_FAILED = "FAILED"

_MAX_RUNS = 50


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class SyncRun:
    trace_id: str
    status: str = STATUS_QUEUED
    started_at: str = ""
    finished_at: str = ""
    results: dict | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "traceId": self.trace_id,
            "status": self.status,
            "startedAt": self.started_at,
            "finishedAt": self.finished_at,
            "results": self.results,
            "error": self.error,
        }


class SyncJobRegistry:
    """Starts sync runs on worker threads and remembers the latest ones."""

    def __init__(self, max_runs: int = _MAX_RUNS) -> None:
        self._runs: OrderedDict[str, SyncRun] = OrderedDict()
        self._threads: dict[str, threading.Thread] = {}
        self._lock = threading.Lock()
        self._max_runs = max_runs

    def start(self, runner: Callable[[str], SyncResult]) -> str:
        """Run ``runner(trace_id)`` in the background; return the trace id.

        While a run is queued or in progress its trace id is returned and no
        new run is started.
        """
        with self._lock:
            for active in self._runs.values():
                if active.status in (STATUS_QUEUED, STATUS_IN_PROGRESS):
                    logger.info("Sync already running [%s]", active.trace_id)
                    return active.trace_id

            trace_id = new_trace_id()
            run = SyncRun(trace_id=trace_id)
            self._runs[trace_id] = run
            while len(self._runs) > self._max_runs:
                old_id, _ = self._runs.popitem(last=False)
                self._threads.pop(old_id, None)

        thread = threading.Thread(
            target=self._execute, args=(run, runner), name=trace_id, daemon=True
        )
        with self._lock:
            self._threads[trace_id] = thread
        thread.start()
        logger.info("Background sync started [%s]", trace_id)
        return trace_id

    def _execute(self, run: SyncRun, runner: Callable[[str], SyncResult]) -> None:
        run.status = STATUS_IN_PROGRESS
        run.started_at = _now_iso()
        try:
            result = runner(run.trace_id)
            run.results = result.to_dict()
            run.status = STATUS_COMPLETED
        except Exception as e:
            logger.exception("Background sync failed [%s]", run.trace_id)
            run.error = str(e)
            run.status = STATUS_FAILED
        finally:
            run.finished_at = _now_iso()

    def status(self, trace_id: str) -> dict | None:
        with self._lock:
            run = self._runs.get(trace_id)
        return run.to_dict() if run else None

    def wait(self, trace_id: str, timeout: float | None = None) -> None:
        """Block until the run's worker thread exits."""
        with self._lock:
            thread = self._threads.get(trace_id)
        if thread is not None:
            thread.join(timeout)
