"""CountIt showtimes API client."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any

import requests

from sratim.config import SHOWTIMES_API_URL

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("SHOWTIME_PID", "MOVIE_Name", "MoviePID")

_TIMEOUT = 60

# Formats seen in the feed besides ISO 8601
_DAY_FORMATS = ("%d/%m/%Y", "%d/%m/%Y %H:%M:%S", "%Y%m%d")


class CountItError(RuntimeError):
    """The CountIt feed could not be fetched or has an unexpected shape."""


class InvalidShowtime(ValueError):
    """A feed row is missing or has malformed key fields."""


def fetch_showtimes(
    api_key: str,
    url: str = SHOWTIMES_API_URL,
    session: requests.Session | None = None,
) -> list[dict]:
    """Fetch the raw showtime rows from CountIt.

    Returns the ``data`` array of the response.  Raises ``CountItError`` on
    HTTP errors or when the payload does not look like a showtimes feed.
    """
    if not api_key:
        raise CountItError("SHOWTIMES_API_KEY is not set")

    http = session or requests
    logger.info("Fetching showtimes from %s", url)
    resp = http.get(url, params={"key": api_key}, timeout=_TIMEOUT)
    logger.info("CountIt response status %s", resp.status_code)

    if not resp.ok:
        raise CountItError(
            f"API responded with status: {resp.status_code}, body: {resp.text[:500]}"
        )

    try:
        payload = resp.json()
    except ValueError as e:
        raise CountItError("API returned invalid response format") from e

    if not isinstance(payload, dict):
        raise CountItError("API returned invalid response format")

    data = payload.get("data")
    if not isinstance(data, list):
        raise CountItError(f"API data is not an array: {type(data).__name__}")

    if data:
        missing = [f for f in REQUIRED_FIELDS if f not in data[0]]
        if missing:
            raise CountItError(
                f"API response missing required fields: {', '.join(missing)}"
            )

    logger.info("Fetched %d showtimes", len(data))
    return data


def parse_day(value: Any) -> datetime:
    """Parse the feed's DAY field to an aware UTC datetime."""
    if not value or not isinstance(value, str):
        raise InvalidShowtime(f"invalid DAY: {value!r}")

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        for fmt in _DAY_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
        else:
            raise InvalidShowtime(f"invalid DAY: {value!r}")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _to_int(value: Any, name: str) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        raise InvalidShowtime(f"invalid {name}: {value!r}") from None


def _optional_int(value: Any) -> int | None:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    return str(value)


@dataclass
class ShowtimeRecord:
    """A CountIt row mapped to ``movieshows`` columns."""

    moviepid: int
    showtime_pid: int
    movie_name: str
    day: datetime
    time: str = ""
    movie_english: str | None = None
    banner: str | None = None
    genres: str | None = None
    cinema: str | None = None
    city: str | None = None
    chain: str | None = None
    available_seats: int | None = None
    deep_link: str | None = None
    imdbid: str | None = None

    @classmethod
    def from_api(cls, item: dict) -> ShowtimeRecord:
        if not isinstance(item, dict):
            raise InvalidShowtime(f"row is not an object: {type(item).__name__}")
        return cls(
            moviepid=_to_int(item.get("MoviePID"), "MoviePID"),
            showtime_pid=_to_int(item.get("SHOWTIME_PID"), "SHOWTIME_PID"),
            movie_name=str(item.get("MOVIE_Name") or ""),
            day=parse_day(item.get("DAY")),
            time=str(item.get("TIME") or ""),
            movie_english=_optional_str(item.get("MOVIE_English")),
            banner=_optional_str(item.get("BANNER")),
            # stored as text, not an array
            genres=_optional_str(item.get("GENRES")),
            cinema=_optional_str(item.get("CINEMA")),
            city=_optional_str(item.get("CITY")),
            chain=_optional_str(item.get("CHAIN")),
            available_seats=_optional_int(item.get("AvailableSEATS")),
            deep_link=_optional_str(item.get("DeepLink")),
            imdbid=_optional_str(item.get("IMDBID")),
        )

    def to_row(self) -> dict:
        return asdict(self)
