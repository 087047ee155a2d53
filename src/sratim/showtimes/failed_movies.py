"""Failed-movies report.

Groups the CountIt feed by movie so unmatched titles can be added to the
catalog (by setting ``movies.countit_pid``), and reads back the movies
that recent sync runs could not store.
"""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass, field
from pathlib import Path

from sqlalchemy.orm import Session

from sratim.oplog import recent_operation_logs
from sratim.showtimes.sync import OPERATION_NAME, known_movie_pids

logger = logging.getLogger(__name__)

CSV_FIELDS = [
    "moviePID",
    "movieName",
    "movieEnglish",
    "genres",
    "imdbid",
    "showtimeCount",
    "totalAvailableSeats",
    "cities",
    "cinemas",
    "chains",
    "days",
    "banner",
    "deepLink",
]


@dataclass
class FeedMovie:
    """One movie aggregated over all of its feed rows."""

    movie_pid: int | None
    movie_name: str
    movie_english: str = ""
    genres: str = ""
    banner: str = ""
    imdbid: str = ""
    showtime_count: int = 0
    total_available_seats: int = 0
    cities: set[str] = field(default_factory=set)
    cinemas: set[str] = field(default_factory=set)
    chains: set[str] = field(default_factory=set)
    days: set[str] = field(default_factory=set)
    deep_links: list[str] = field(default_factory=list)

    def add(self, row: dict) -> None:
        self.showtime_count += 1
        try:
            self.total_available_seats += int(row.get("AvailableSEATS") or 0)
        except (TypeError, ValueError):
            pass
        for target, key in (
            (self.cities, "CITY"),
            (self.cinemas, "CINEMA"),
            (self.chains, "CHAIN"),
            (self.days, "DAY"),
        ):
            value = row.get(key)
            if value:
                target.add(str(value))
        link = row.get("DeepLink")
        if link and link not in self.deep_links:
            self.deep_links.append(link)

    def to_csv_row(self) -> dict:
        return {
            "moviePID": self.movie_pid if self.movie_pid is not None else "",
            "movieName": self.movie_name,
            "movieEnglish": self.movie_english,
            "genres": self.genres,
            "imdbid": self.imdbid,
            "showtimeCount": self.showtime_count,
            "totalAvailableSeats": self.total_available_seats,
            "cities": "; ".join(sorted(self.cities)),
            "cinemas": "; ".join(sorted(self.cinemas)),
            "chains": "; ".join(sorted(self.chains)),
            "days": "; ".join(sorted(self.days)),
            "banner": self.banner,
            "deepLink": self.deep_links[0] if self.deep_links else "",
        }


def _pid(value) -> int | None:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def unique_movies(rows: list[dict]) -> list[FeedMovie]:
    """Aggregate feed rows by MoviePID, most screened first."""
    movies: dict[int | None, FeedMovie] = {}
    for row in rows:
        pid = _pid(row.get("MoviePID"))
        movie = movies.get(pid)
        if movie is None:
            movie = FeedMovie(
                movie_pid=pid,
                movie_name=str(row.get("MOVIE_Name") or "Unknown"),
                movie_english=str(row.get("MOVIE_English") or ""),
                genres=str(row.get("GENRES") or ""),
                banner=str(row.get("BANNER") or ""),
                imdbid=str(row.get("IMDBID") or ""),
            )
            movies[pid] = movie
        movie.add(row)
    return sorted(movies.values(), key=lambda m: -m.showtime_count)


def unmatched_movies(session: Session, rows: list[dict]) -> list[FeedMovie]:
    """Feed movies that have no catalog entry."""
    known = known_movie_pids(session)
    return [m for m in unique_movies(rows) if m.movie_pid not in known]


def write_csv(movies: list[FeedMovie], path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8-sig") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_FIELDS)
        writer.writeheader()
        for movie in movies:
            writer.writerow(movie.to_csv_row())
    logger.info("Wrote %d movies to %s", len(movies), path)
    return path


def recent_failures(session: Session, limit: int = 10) -> list[dict]:
    """Failed movies from the latest ``limit`` sync runs, newest first."""
    failures = []
    for entry in recent_operation_logs(session, OPERATION_NAME, limit):
        meta = entry.meta or {}
        failures.append({
            "traceId": meta.get("traceId"),
            "timestamp": entry.created_at.isoformat() if entry.created_at else None,
            "failedMovies": meta.get("failedMovies", []),
        })
    return failures
