"""Showtime sync: CountIt feed into the ``movieshows`` table.

Single pass: fetch the feed, drop rows that are already stored or whose
MoviePID has no catalog movie, insert the rest in batches, then store the
run summary as an operation log.  Each row succeeds or fails on its own;
there is no transaction spanning the whole run.
"""

from __future__ import annotations

import logging
import random
import string
import threading
import time
from dataclasses import dataclass, field
from functools import partial
from typing import Callable, Iterable

from sqlalchemy import insert, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from sratim.db.models import Movie, MovieShow
from sratim.oplog import log_event, save_operation_log
from sratim.showtimes.countit import InvalidShowtime, ShowtimeRecord

logger = logging.getLogger(__name__)

OPERATION_NAME = "movieshows_sync"

BATCH_SIZE = 500

# Bound on the number of values sent in a single IN (...) clause
_LOOKUP_CHUNK = 1000

FAILURE_INVALID_ROW = "INVALID_ROW"
FAILURE_MISSING_MOVIE = "MISSING_MOVIE"
FAILURE_INSERT_ERROR = "INSERT_ERROR"

_PROGRESS_STEP = 10  # percent

# Held while a sync runs in this process
_sync_lock = threading.Lock()


class SyncAlreadyRunning(RuntimeError):
    pass


def new_trace_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=7))
    return f"sync-{int(time.time() * 1000)}-{suffix}"


@dataclass
class FailedMovie:
    """A movie whose showtimes could not be stored."""

    moviepid: int | None
    movie_name: str
    failure_type: str
    reason: str
    showtime_count: int = 1

    def to_dict(self) -> dict:
        return {
            "moviepid": self.moviepid,
            "movie_name": self.movie_name,
            "failureType": self.failure_type,
            "failureReason": self.reason,
            "showtimeCount": self.showtime_count,
        }


@dataclass
class SyncResult:
    trace_id: str
    total: int = 0
    success: int = 0
    existing: int = 0
    missing_movie: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    failed_movies: list[FailedMovie] = field(default_factory=list)
    fetch_ms: float = 0.0
    process_ms: float = 0.0

    @property
    def skipped(self) -> int:
        return self.existing + self.missing_movie

    def to_dict(self) -> dict:
        return {
            "traceId": self.trace_id,
            "total": self.total,
            "success": self.success,
            "existing": self.existing,
            "missingMovie": self.missing_movie,
            "failed": self.failed,
            "errors": self.errors,
            "failedMovies": [m.to_dict() for m in self.failed_movies],
            "fetchTimeMs": round(self.fetch_ms, 1),
            "processingTimeMs": round(self.process_ms, 1),
        }


# ------------------------------------------------------------------
# Lookups
# ------------------------------------------------------------------


def _row_name(item) -> str:
    if isinstance(item, dict):
        return str(item.get("MOVIE_Name") or "Unknown")
    return "Unknown"


def _chunks(items: list, size: int) -> Iterable[list]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


def existing_showtime_pids(session: Session, pids: list[int]) -> set[int]:
    """Return the subset of ``pids`` already present in ``movieshows``."""
    found: set[int] = set()
    for chunk in _chunks(pids, _LOOKUP_CHUNK):
        stmt = select(MovieShow.showtime_pid).where(MovieShow.showtime_pid.in_(chunk))
        found.update(session.scalars(stmt))
    return found


def known_movie_pids(session: Session) -> set[int]:
    """CountIt MoviePIDs that have a catalog movie."""
    stmt = select(Movie.countit_pid).where(Movie.countit_pid.is_not(None))
    known: set[int] = set()
    for value in session.scalars(stmt):
        try:
            known.add(int(str(value).strip()))
        except ValueError:
            logger.warning("Ignoring non-numeric countit_pid %r", value)
    return known


# ------------------------------------------------------------------
# Sync
# ------------------------------------------------------------------


def _insert_batches(
    session: Session,
    records: list[ShowtimeRecord],
    batch_size: int,
    result: SyncResult,
) -> None:
    """Insert in batches; a failing batch is retried row by row."""
    total = len(records)
    done = 0
    next_step = _PROGRESS_STEP
    for batch in _chunks(records, batch_size):
        try:
            session.execute(insert(MovieShow), [r.to_row() for r in batch])
            session.commit()
            result.success += len(batch)
        except SQLAlchemyError as e:
            session.rollback()
            logger.warning(
                "Batch insert of %d rows failed (%s), retrying row by row",
                len(batch), e.__class__.__name__,
            )
            for record in batch:
                _insert_one(session, record, result)

        done += len(batch)
        percent = done * 100 // total
        if percent >= next_step or done == total:
            logger.info(
                "Sync progress [%s]: %d/%d inserted rows processed (%d%%)",
                result.trace_id, done, total, percent,
            )
            next_step = (percent // _PROGRESS_STEP + 1) * _PROGRESS_STEP


def _insert_one(session: Session, record: ShowtimeRecord, result: SyncResult) -> None:
    try:
        session.execute(insert(MovieShow), [record.to_row()])
        session.commit()
        result.success += 1
    except SQLAlchemyError as e:
        session.rollback()
        # Another run stored the same showtime after our existing-row lookup
        if isinstance(e, IntegrityError) and existing_showtime_pids(
            session, [record.showtime_pid]
        ):
            logger.info("Showtime %s was stored concurrently", record.showtime_pid)
            result.existing += 1
            return
        message = str(e.orig) if getattr(e, "orig", None) else str(e)
        logger.error("Insert of showtime %s failed: %s", record.showtime_pid, message)
        result.failed += 1
        result.errors.append(f"Error inserting {record.showtime_pid}: {message}")
        result.failed_movies.append(FailedMovie(
            moviepid=record.moviepid,
            movie_name=record.movie_name,
            failure_type=FAILURE_INSERT_ERROR,
            reason=message,
        ))


def sync_showtimes(
    session_factory: sessionmaker,
    fetch: Callable[[], list[dict]],
    trace_id: str | None = None,
    batch_size: int = BATCH_SIZE,
) -> SyncResult:
    """Run one showtime sync and return its summary.

    ``fetch`` returns the raw CountIt rows; fetch errors propagate to the
    caller after being recorded in the ``logs`` table.  Raises
    ``SyncAlreadyRunning`` if another sync is in progress.
    """
    if not _sync_lock.acquire(blocking=False):
        raise SyncAlreadyRunning("A showtime sync is already running")
    try:
        return _sync(session_factory, fetch, trace_id, batch_size)
    finally:
        _sync_lock.release()


def _sync(
    session_factory: sessionmaker,
    fetch: Callable[[], list[dict]],
    trace_id: str | None,
    batch_size: int,
) -> SyncResult:
    result = SyncResult(trace_id=trace_id or new_trace_id())
    logger.info("Starting showtime sync [%s]", result.trace_id)

    started = time.perf_counter()
    try:
        rows = fetch()
    except Exception as e:
        logger.exception("Showtime fetch failed [%s]", result.trace_id)
        with session_factory() as session:
            log_event(session, "error", f"Operation failed: {OPERATION_NAME}", {
                "traceId": result.trace_id,
                "error": str(e),
            })
        raise
    result.fetch_ms = (time.perf_counter() - started) * 1000
    result.total = len(rows)
    logger.info(
        "Fetched %d rows in %.0f ms [%s]", result.total, result.fetch_ms, result.trace_id
    )

    started = time.perf_counter()
    records: list[ShowtimeRecord] = []
    seen: set[int] = set()
    for index, item in enumerate(rows):
        try:
            record = ShowtimeRecord.from_api(item)
        except InvalidShowtime as e:
            result.failed += 1
            result.errors.append(f"Error processing row {index}: {e}")
            result.failed_movies.append(FailedMovie(
                moviepid=None,
                movie_name=_row_name(item),
                failure_type=FAILURE_INVALID_ROW,
                reason=str(e),
            ))
            continue
        if record.showtime_pid in seen:
            result.existing += 1
            continue
        seen.add(record.showtime_pid)
        records.append(record)

    with session_factory() as session:
        stored = existing_showtime_pids(session, [r.showtime_pid for r in records])
        known = known_movie_pids(session)

        missing: dict[int, FailedMovie] = {}
        to_insert: list[ShowtimeRecord] = []
        for record in records:
            if record.showtime_pid in stored:
                result.existing += 1
            elif record.moviepid not in known:
                result.missing_movie += 1
                entry = missing.get(record.moviepid)
                if entry:
                    entry.showtime_count += 1
                else:
                    missing[record.moviepid] = FailedMovie(
                        moviepid=record.moviepid,
                        movie_name=record.movie_name,
                        failure_type=FAILURE_MISSING_MOVIE,
                        reason="No movie with a matching countit_pid",
                    )
            else:
                to_insert.append(record)

        logger.info(
            "Sync plan [%s]: %d to insert, %d existing, %d without movie, %d invalid",
            result.trace_id, len(to_insert), result.existing,
            result.missing_movie, result.failed,
        )
        if missing:
            logger.warning(
                "%d movies have no catalog entry: %s",
                len(missing),
                ", ".join(f"{m.movie_name} ({pid})" for pid, m in list(missing.items())[:10]),
            )

        if to_insert:
            _insert_batches(session, to_insert, batch_size, result)

        result.failed_movies.extend(missing.values())
        result.process_ms = (time.perf_counter() - started) * 1000

        logger.info(
            "Showtime sync complete [%s]: total=%d success=%d existing=%d "
            "missing_movie=%d failed=%d (%.0f ms)",
            result.trace_id, result.total, result.success, result.existing,
            result.missing_movie, result.failed, result.process_ms,
        )
        save_operation_log(session, OPERATION_NAME, result.to_dict())

    return result


def run_showtime_sync(trace_id: str | None = None) -> SyncResult:
    """Sync using ``DATABASE_URL`` and ``SHOWTIMES_API_KEY`` from the environment."""
    from sratim import config
    from sratim.db.models import get_session_factory
    from sratim.showtimes.countit import fetch_showtimes

    fetch = partial(
        fetch_showtimes, config.require("SHOWTIMES_API_KEY"), config.SHOWTIMES_API_URL
    )
    return sync_showtimes(get_session_factory(), fetch, trace_id=trace_id)
