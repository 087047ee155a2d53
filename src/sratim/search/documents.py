"""Search documents: one per entity per translation."""

from __future__ import annotations

from datetime import date

from sratim.db.models import Actor, Movie
from sratim.locales import LOCALES

MOVIES_INDEX = "movies"
ACTORS_INDEX = "actors"
PRIMARY_KEY = "search_id"


def search_id(entity_id: str, language_code: str) -> str:
    return f"{entity_id}_{language_code}"


def document_ids(entity_id: str) -> list[str]:
    """Every document id an entity can own, one per supported locale."""
    return [search_id(entity_id, code) for code in LOCALES]


def _iso(value: date | None) -> str | None:
    return value.isoformat() if value else None


def movie_documents(movie: Movie) -> list[dict]:
    return [
        {
            PRIMARY_KEY: search_id(movie.id, t.language_code),
            "movie_id": movie.id,
            "slug": movie.slug,
            "release_date": _iso(movie.release_date),
            "rating": movie.rating,
            "title": t.title,
            "synopsis": t.synopsis,
            "poster_url": t.poster_url,
            "trailer_url": t.trailer_url,
            "language_code": t.language_code,
            "type": "movie",
        }
        for t in movie.translations
    ]


def actor_documents(actor: Actor) -> list[dict]:
    return [
        {
            PRIMARY_KEY: search_id(actor.id, t.language_code),
            "actor_id": actor.id,
            "slug": actor.slug,
            "birth_date": _iso(actor.birth_date),
            "birth_place": actor.birth_place,
            "photo_url": actor.photo_url,
            "name": t.name,
            "biography": t.biography,
            "language_code": t.language_code,
            "type": "actor",
        }
        for t in actor.translations
    ]
