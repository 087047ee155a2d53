"""Meilisearch indexes for movies and actors.

Both indexes hold one document per entity per locale, keyed by
``search_id``.  Writes wait for their Meilisearch task so callers only
treat a change as done once the engine has applied it.
"""

from __future__ import annotations

import copy
import logging
from typing import Any

import meilisearch
from sqlalchemy import select
from sqlalchemy.orm import Session

from sratim.db.models import Actor, Movie
from sratim.search.documents import (
    ACTORS_INDEX,
    MOVIES_INDEX,
    PRIMARY_KEY,
    actor_documents,
    movie_documents,
)

logger = logging.getLogger(__name__)

INDEXES = (MOVIES_INDEX, ACTORS_INDEX)

_TASK_TIMEOUT_MS = 60_000
_TASK_INTERVAL_MS = 1_000
_SEARCH_LIMIT = 10

COMMON_SEARCH_SETTINGS: dict[str, Any] = {
    "typoTolerance": {
        "enabled": True,
        "minWordSizeForTypos": {"oneTypo": 4, "twoTypos": 8},
    },
    "rankingRules": [
        "words",
        "typo",
        "proximity",
        "attribute",
        "sort",
        "exactness",
    ],
    "searchableAttributes": ["title", "synopsis", "name", "biography"],
    "filterableAttributes": [
        "language_code",
        "release_date",
        "rating",
        "birth_date",
        "type",
    ],
    "displayedAttributes": [
        PRIMARY_KEY,
        "movie_id",
        "actor_id",
        "slug",
        "title",
        "synopsis",
        "poster_url",
        "trailer_url",
        "release_date",
        "rating",
        "name",
        "biography",
        "photo_url",
        "birth_date",
        "birth_place",
        "language_code",
        "type",
    ],
    "pagination": {"maxTotalHits": 100},
    "distinctAttribute": PRIMARY_KEY,
}

SORTABLE_ATTRIBUTES: dict[str, list[str]] = {
    MOVIES_INDEX: ["release_date", "rating"],
    ACTORS_INDEX: ["birth_date"],
}


class SearchTaskError(RuntimeError):
    """A Meilisearch task finished with status ``failed``."""

    def __init__(self, task_uid: int, message: str, code: str = "") -> None:
        super().__init__(f"Task {task_uid} failed: {message}")
        self.task_uid = task_uid
        self.code = code


def index_settings(name: str) -> dict[str, Any]:
    settings = copy.deepcopy(COMMON_SEARCH_SETTINGS)
    settings["sortableAttributes"] = list(SORTABLE_ATTRIBUTES[name])
    return settings


class SearchIndex:
    """Thin wrapper over a ``meilisearch.Client``."""

    def __init__(self, client: meilisearch.Client) -> None:
        self.client = client

    @classmethod
    def from_config(cls, admin: bool = True) -> SearchIndex:
        from sratim import config

        key = config.require("MEILISEARCH_ADMIN_KEY" if admin else "MEILISEARCH_SEARCH_KEY")
        return cls(meilisearch.Client(config.meilisearch_url(), key))

    # -- tasks -------------------------------------------------------------

    def wait(self, task_info: Any) -> Any:
        """Wait for a task and raise ``SearchTaskError`` if it failed."""
        uid = task_info.task_uid
        task = self.client.wait_for_task(
            uid, timeout_in_ms=_TASK_TIMEOUT_MS, interval_in_ms=_TASK_INTERVAL_MS
        )
        if task.status == "failed":
            error = task.error or {}
            raise SearchTaskError(uid, error.get("message", "unknown error"), error.get("code", ""))
        return task

    # -- index management --------------------------------------------------

    def delete_index(self, name: str) -> None:
        logger.info("Deleting index %s", name)
        try:
            self.wait(self.client.delete_index(name))
        except SearchTaskError as e:
            if e.code != "index_not_found":
                raise
            logger.info("Index %s does not exist", name)
            return
        logger.info("Deleted index %s", name)

    def configure(self, recreate: bool = False) -> None:
        """Create both indexes (if needed) and apply their settings."""
        for name in INDEXES:
            if recreate:
                self.delete_index(name)
            try:
                self.wait(self.client.create_index(name, {"primaryKey": PRIMARY_KEY}))
                logger.info("Created index %s", name)
            except SearchTaskError as e:
                if e.code != "index_already_exists":
                    raise
                logger.info("Index %s already exists", name)

            self.wait(self.client.index(name).update_settings(index_settings(name)))
            logger.info("Updated settings for index %s", name)

    # -- documents ---------------------------------------------------------

    def add_documents(self, name: str, documents: list[dict]) -> None:
        if not documents:
            return
        self.wait(self.client.index(name).add_documents(documents, primary_key=PRIMARY_KEY))

    def delete_documents(self, name: str, ids: list[str]) -> None:
        if not ids:
            return
        self.wait(self.client.index(name).delete_documents(ids))

    def search(
        self, query: str, language_code: str, name: str = MOVIES_INDEX, limit: int = _SEARCH_LIMIT
    ) -> dict:
        return self.client.index(name).search(
            query, {"filter": [f"language_code = {language_code}"], "limit": limit}
        )

    def stats(self) -> dict[str, int]:
        return {
            name: self.client.index(name).get_stats().number_of_documents
            for name in INDEXES
        }

    # -- full rebuild ------------------------------------------------------

    def reindex_all(self, session: Session) -> dict[str, int]:
        """Push every movie and actor translation to the indexes."""
        movie_docs = [
            doc for movie in session.scalars(select(Movie)) for doc in movie_documents(movie)
        ]
        actor_docs = [
            doc for actor in session.scalars(select(Actor)) for doc in actor_documents(actor)
        ]

        logger.info("Adding %d movie documents", len(movie_docs))
        self.add_documents(MOVIES_INDEX, movie_docs)
        logger.info("Adding %d actor documents", len(actor_docs))
        self.add_documents(ACTORS_INDEX, actor_docs)

        return {MOVIES_INDEX: len(movie_docs), ACTORS_INDEX: len(actor_docs)}
