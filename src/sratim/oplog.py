"""Logging setup and operation logs.

Console logging uses the standard ``logging`` module.  Sync runs also
append JSON lines to ``logs/movieshows.log`` and store their final result
in the ``logs`` table so the status endpoint and the failed-movies report
can read them back.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from sratim.db.models import LogEntry

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
OPERATION_PREFIX = "Operation completed: "


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, action, data, error."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "action": record.getMessage(),
        }
        data = getattr(record, "data", None)
        if data is not None:
            entry["data"] = data
        if record.exc_info and record.exc_info[1] is not None:
            entry["error"] = str(record.exc_info[1])
        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(level: int = logging.INFO, log_dir: str | None = None) -> None:
    """Configure console logging and, if ``log_dir`` is set, the JSON file log."""
    logging.basicConfig(format=LOG_FORMAT, level=level)

    if not log_dir:
        return

    path = Path(log_dir)
    path.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path / "movieshows.log", encoding="utf-8")
    handler.setFormatter(JsonLineFormatter())
    # Only the sync packages write to the file log
    for name in ("sratim.showtimes", "sratim.search"):
        logging.getLogger(name).addHandler(handler)


# ------------------------------------------------------------------
# logs table
# ------------------------------------------------------------------


def log_event(
    session: Session, level: str, message: str, metadata: dict | None = None
) -> None:
    """Write a row to the ``logs`` table.

    Failures are reported on the console only; a broken log table must
    not break the job that is logging.
    """
    try:
        session.add(LogEntry(level=level, message=message, meta=metadata or {}))
        session.commit()
    except Exception:
        session.rollback()
        logger.exception("Failed to save log to database")


def save_operation_log(session: Session, operation: str, result: dict) -> None:
    """Persist the final result of an operation (e.g. ``movieshows_sync``)."""
    log_event(session, "info", f"{OPERATION_PREFIX}{operation}", result)


def recent_operation_logs(
    session: Session, operation: str, limit: int = 10
) -> list[LogEntry]:
    """Latest operation logs for ``operation``, newest first."""
    stmt = (
        select(LogEntry)
        .where(LogEntry.message == f"{OPERATION_PREFIX}{operation}")
        .order_by(LogEntry.created_at.desc(), LogEntry.id.desc())
        .limit(limit)
    )
    return list(session.scalars(stmt))
