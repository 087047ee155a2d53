"""Showtime lookups used by the booking flow and the search box."""

from __future__ import annotations

import logging
import time as _time
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from sratim.db.models import MovieShow

logger = logging.getLogger(__name__)

_CACHE_TTL = 300  # 5 minutes
_SUGGESTION_ROWS = 20
_SUGGESTIONS_PER_KIND = 5

_cache: dict[str, tuple[float, Any]] = {}


def _cache_get(key: str) -> Any:
    hit = _cache.get(key)
    if hit and (_time.time() - hit[0]) < _CACHE_TTL:
        return hit[1]
    return None


def _cache_set(key: str, value: Any) -> None:
    _cache[key] = (_time.time(), value)


def clear_cache() -> None:
    _cache.clear()
    logger.info("Showtime query cache cleared")


def shows_for_movie(
    session: Session, moviepid: int, city: str | None = None
) -> list[MovieShow]:
    stmt = select(MovieShow).where(MovieShow.moviepid == moviepid)
    if city:
        stmt = stmt.where(MovieShow.city == city)
    stmt = stmt.order_by(MovieShow.day, MovieShow.time)
    return list(session.scalars(stmt))


def cities_for_movie(session: Session, moviepid: int) -> list[str]:
    stmt = (
        select(MovieShow.city)
        .where(MovieShow.moviepid == moviepid, MovieShow.city.is_not(None))
        .distinct()
    )
    return sorted(c for c in session.scalars(stmt) if c)


def popular_cities(session: Session) -> list[str]:
    """Cities ordered by number of showtimes, then alphabetically."""
    cached = _cache_get("unique_cities")
    if cached is not None:
        return cached

    count = func.count(MovieShow.id)
    stmt = (
        select(MovieShow.city, count)
        .where(MovieShow.city.is_not(None), MovieShow.city != "")
        .group_by(MovieShow.city)
    )
    rows = session.execute(stmt).all()
    ranked = sorted(rows, key=lambda r: (-r[1], r[0]))
    if ranked:
        logger.debug(
            "Top cities: %s", ", ".join(f"{c}: {n}" for c, n in ranked[:5])
        )
    cities = [r[0] for r in ranked]
    _cache_set("unique_cities", cities)
    return cities


def search_suggestions(session: Session, query: str) -> list[dict]:
    """Movie and cinema names containing ``query`` (case-insensitive)."""
    if len(query) < 2:
        return []

    needle = query.lower()
    key = f"search_suggestions_{needle}"
    cached = _cache_get(key)
    if cached is not None:
        return cached

    stmt = (
        select(MovieShow.movie_name, MovieShow.cinema)
        .where(or_(
            func.lower(MovieShow.movie_name).contains(needle, autoescape=True),
            func.lower(MovieShow.cinema).contains(needle, autoescape=True),
        ))
        .limit(_SUGGESTION_ROWS)
    )

    # dicts keep first-seen order
    movies: dict[str, None] = {}
    cinemas: dict[str, None] = {}
    for movie_name, cinema in session.execute(stmt):
        if movie_name and needle in movie_name.lower():
            movies.setdefault(movie_name)
        if cinema and needle in cinema.lower():
            cinemas.setdefault(cinema)

    suggestions = [
        {"type": "movie", "id": name, "name": name, "subtitle": "Movie"}
        for name in list(movies)[:_SUGGESTIONS_PER_KIND]
    ] + [
        {"type": "theater", "id": name, "name": name, "subtitle": "Theater"}
        for name in list(cinemas)[:_SUGGESTIONS_PER_KIND]
    ]
    _cache_set(key, suggestions)
    return suggestions
