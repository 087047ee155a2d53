"""Sync queue processor.

Database triggers append ``(type, entity_id, action)`` rows to
``sync_queue`` whenever a movie or actor changes.  Each run drains the
oldest rows into Meilisearch and deletes a row only after its change has
been applied, so a failed row is retried on the next run.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from sratim.db.models import Actor, Movie, SyncQueueItem
from sratim.search.documents import (
    ACTORS_INDEX,
    MOVIES_INDEX,
    actor_documents,
    document_ids,
    movie_documents,
)
from sratim.search.index import SearchIndex

logger = logging.getLogger(__name__)

BATCH_LIMIT = 50

ACTION_SYNC = "sync"
ACTION_DELETE = "delete"


class EntityNotFound(LookupError):
    pass


@dataclass
class QueueReport:
    fetched: int = 0
    processed: int = 0
    failed: int = 0
    skipped: int = 0
    errors: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "fetched": self.fetched,
            "processed": self.processed,
            "failed": self.failed,
            "skipped": self.skipped,
            "errors": self.errors,
        }


# ------------------------------------------------------------------
# Per-entity handlers
# ------------------------------------------------------------------


def sync_movie(session: Session, index: SearchIndex, movie_id: str) -> int:
    movie = session.get(Movie, movie_id)
    if movie is None:
        raise EntityNotFound(f"Movie {movie_id} not found")

    documents = movie_documents(movie)
    if not documents:
        logger.warning("No translations found for movie %s", movie_id)
        return 0

    index.add_documents(MOVIES_INDEX, documents)
    logger.info("Synced movie %s with %d translations", movie_id, len(documents))
    return len(documents)


def sync_actor(session: Session, index: SearchIndex, actor_id: str) -> int:
    actor = session.get(Actor, actor_id)
    if actor is None:
        raise EntityNotFound(f"Actor {actor_id} not found")

    documents = actor_documents(actor)
    if not documents:
        logger.warning("No translations found for actor %s", actor_id)
        return 0

    index.add_documents(ACTORS_INDEX, documents)
    logger.info("Synced actor %s with %d translations", actor_id, len(documents))
    return len(documents)


def delete_entity(index: SearchIndex, index_name: str, entity_id: str) -> None:
    # The entity row is usually gone by now, so ids come from the locale pair
    index.delete_documents(index_name, document_ids(entity_id))
    logger.info("Deleted %s from %s index", entity_id, index_name)


_SYNC_HANDLERS = {
    "movie": sync_movie,
    "actor": sync_actor,
}

_INDEX_FOR_TYPE = {
    "movie": MOVIES_INDEX,
    "actor": ACTORS_INDEX,
}


def process_item(session: Session, index: SearchIndex, item: SyncQueueItem) -> bool:
    """Apply one queue row. Returns False if the row type is unknown."""
    if item.type not in _SYNC_HANDLERS:
        logger.warning("Unknown item type %r on queue item %s", item.type, item.id)
        return False

    if item.action == ACTION_DELETE:
        delete_entity(index, _INDEX_FOR_TYPE[item.type], item.entity_id)
    else:
        _SYNC_HANDLERS[item.type](session, index, item.entity_id)
    return True


# ------------------------------------------------------------------
# Queue
# ------------------------------------------------------------------


def process_sync_queue(
    session: Session, index: SearchIndex, limit: int = BATCH_LIMIT
) -> QueueReport:
    """Drain up to ``limit`` of the oldest queue rows."""
    stmt = select(SyncQueueItem).order_by(SyncQueueItem.created_at).limit(limit)
    items = list(session.scalars(stmt))
    report = QueueReport(fetched=len(items))

    if not items:
        logger.info("No items in the sync queue")
        return report

    logger.info("Processing %d sync queue items", len(items))
    for item in items:
        item_id = item.id
        logger.info("Processing item %s (%s %s %s)", item_id, item.type, item.action, item.entity_id)
        try:
            handled = process_item(session, index, item)
        except Exception as e:
            session.rollback()
            logger.exception("Error processing queue item %s", item_id)
            report.failed += 1
            report.errors[item_id] = str(e)
            continue

        try:
            session.execute(delete(SyncQueueItem).where(SyncQueueItem.id == item_id))
            session.commit()
        except Exception as e:
            session.rollback()
            logger.exception("Error deleting queue item %s", item_id)
            report.failed += 1
            report.errors[item_id] = f"delete failed: {e}"
            continue

        if handled:
            report.processed += 1
        else:
            report.skipped += 1

    logger.info(
        "Finished processing sync queue: %d processed, %d failed, %d skipped",
        report.processed, report.failed, report.skipped,
    )
    return report


def inspect_queue(session: Session, sample: int = 5) -> dict:
    """Row count, per type/action breakdown and the oldest rows."""
    total = session.scalar(select(func.count()).select_from(SyncQueueItem)) or 0
    pairs = session.execute(select(SyncQueueItem.type, SyncQueueItem.action)).all()
    breakdown = Counter(f"{t}:{a}" for t, a in pairs)
    oldest = session.scalars(
        select(SyncQueueItem).order_by(SyncQueueItem.created_at).limit(sample)
    )
    return {
        "count": total,
        "breakdown": dict(breakdown),
        "sample": [item.to_dict() for item in oldest],
    }
