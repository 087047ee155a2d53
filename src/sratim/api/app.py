"""FastAPI endpoints for showtimes, sync runs and search.

JSON only.  The sync endpoint answers 202 immediately and keeps working
on a background thread; progress is polled through the status endpoint.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Iterator, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from sratim.locales import DEFAULT_LOCALE, is_supported
from sratim.search.documents import ACTORS_INDEX, MOVIES_INDEX
from sratim.search.index import SearchIndex
from sratim.showtimes import queries
from sratim.showtimes.failed_movies import recent_failures
from sratim.showtimes.jobs import SyncJobRegistry
from sratim.showtimes.sync import SyncResult

logger = logging.getLogger(__name__)

app = FastAPI(title="sratim API")

registry = SyncJobRegistry()


# ------------------------------------------------------------------
# Dependencies (overridden in tests)
# ------------------------------------------------------------------


def get_session() -> Iterator[Session]:
    from sratim.db.models import get_session_factory

    with get_session_factory()() as session:
        yield session


def get_sync_runner() -> Callable[[str], SyncResult]:
    from sratim.showtimes.sync import run_showtime_sync

    return run_showtime_sync


def get_search_index() -> SearchIndex:
    return SearchIndex.from_config(admin=False)


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status)


@app.exception_handler(Exception)
async def server_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        {"error": "Server error", "details": str(exc) or exc.__class__.__name__},
        status_code=500,
    )


# ------------------------------------------------------------------
# Showtimes
# ------------------------------------------------------------------


@app.get("/api/movieshows")
def movieshows(
    moviepid: Optional[str] = Query(None),
    city: Optional[str] = Query(None),
    session: Session = Depends(get_session),
):
    """Shows of one movie in one city, or the cities it plays in."""
    if not moviepid:
        return _error(400, "Missing moviepid parameter")
    try:
        pid = int(moviepid)
    except ValueError:
        return _error(400, "Invalid moviepid parameter")

    if city:
        data = [s.to_dict() for s in queries.shows_for_movie(session, pid, city)]
    else:
        data = queries.cities_for_movie(session, pid)
    return {"success": True, "data": data, "count": len(data)}


@app.api_route("/api/movieshows/sync", methods=["GET", "POST"], status_code=202)
def start_sync(runner: Callable[[str], SyncResult] = Depends(get_sync_runner)):
    trace_id = registry.start(runner)
    return {
        "success": True,
        "message": "Background sync started successfully",
        "traceId": trace_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/api/movieshows/status")
def sync_status(
    trace_id: Optional[str] = Query(None, alias="traceId"),
    include_failed_movies: bool = Query(False, alias="includeFailedMovies"),
    limit: int = Query(10, ge=1, le=100),
    session: Session = Depends(get_session),
):
    if not trace_id:
        return _error(400, "Missing traceId parameter")

    status = registry.status(trace_id)
    if status is None:
        return _error(404, f"Unknown traceId: {trace_id}")

    body = {"success": True, **status}
    if include_failed_movies:
        body["failedMoviesLogs"] = recent_failures(session, limit)
    return body


# ------------------------------------------------------------------
# Search
# ------------------------------------------------------------------


@app.get("/api/search")
def search_lookup(
    type: Optional[str] = Query(None),
    query: Optional[str] = Query(None),
    clear_cache: bool = Query(False, alias="clearCache"),
    session: Session = Depends(get_session),
):
    if clear_cache:
        queries.clear_cache()

    if type == "cities":
        return {"cities": queries.popular_cities(session)}
    if type == "suggestions":
        if not query:
            return _error(400, "Query parameter required for suggestions")
        return {"suggestions": queries.search_suggestions(session, query)}
    return _error(400, "Invalid type parameter")


@app.get("/api/search/{kind}")
def search_catalog(
    kind: str,
    q: str = Query(""),
    locale: str = Query(DEFAULT_LOCALE),
    index: SearchIndex = Depends(get_search_index),
):
    if kind not in (MOVIES_INDEX, ACTORS_INDEX):
        return _error(400, f"Unknown search kind: {kind}")
    if not is_supported(locale):
        return _error(400, f"Unsupported locale: {locale}")

    results = index.search(q, locale, kind)
    return {
        "hits": results.get("hits", []),
        "query": q,
        "locale": locale,
        "estimatedTotalHits": results.get("estimatedTotalHits", 0),
    }
