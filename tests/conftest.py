from datetime import date, datetime, timezone
from types import SimpleNamespace

import pytest

from sratim.db.models import (
    Actor,
    ActorTranslation,
    Movie,
    MovieShow,
    MovieTranslation,
    create_session_factory,
)
from sratim.showtimes import queries


@pytest.fixture(autouse=True)
def _clear_query_cache():
    queries.clear_cache()
    yield
    queries.clear_cache()


@pytest.fixture
def session_factory():
    return create_session_factory("sqlite://", create_schema=True)


@pytest.fixture
def session(session_factory):
    with session_factory() as s:
        yield s


@pytest.fixture
def add_movie(session):
    def _add(movie_id, slug=None, countit_pid=None, titles=None, rating=7.5):
        movie = Movie(
            id=movie_id,
            slug=slug or f"movie-{movie_id}",
            release_date=date(2024, 3, 1),
            rating=rating,
            countit_pid=countit_pid,
        )
        for code, title in (titles or {}).items():
            movie.translations.append(MovieTranslation(
                language_code=code,
                title=title,
                synopsis=f"{title} synopsis",
                poster_url=f"https://img.example/{movie_id}-{code}.jpg",
            ))
        session.add(movie)
        session.commit()
        return movie

    return _add


@pytest.fixture
def add_actor(session):
    def _add(actor_id, names=None):
        actor = Actor(
            id=actor_id,
            slug=f"actor-{actor_id}",
            birth_date=date(1980, 5, 17),
            birth_place="Haifa",
        )
        for code, name in (names or {}).items():
            actor.translations.append(ActorTranslation(
                language_code=code, name=name, biography=f"About {name}",
            ))
        session.add(actor)
        session.commit()
        return actor

    return _add


@pytest.fixture
def add_show(session):
    def _add(showtime_pid, moviepid=100, city="Tel Aviv", cinema="Cinema City Glilot",
             movie_name="Footnote", day=None, time="20:30"):
        show = MovieShow(
            moviepid=moviepid,
            showtime_pid=showtime_pid,
            movie_name=movie_name,
            day=day or datetime(2024, 6, 1, tzinfo=timezone.utc),
            time=time,
            cinema=cinema,
            city=city,
            chain="Cinema City",
        )
        session.add(show)
        session.commit()
        return show

    return _add


def feed_row(showtime_pid, moviepid=100, name="הערת שוליים", **extra):
    row = {
        "SHOWTIME_PID": showtime_pid,
        "MoviePID": moviepid,
        "MOVIE_Name": name,
        "MOVIE_English": "Footnote",
        "BANNER": "https://img.example/banner.jpg",
        "GENRES": "Drama",
        "DAY": "2024-06-01T00:00:00",
        "TIME": "20:30",
        "CINEMA": "Cinema City Glilot",
        "CITY": "Tel Aviv",
        "CHAIN": "Cinema City",
        "AvailableSEATS": "42",
        "DeepLink": f"https://tickets.example/{showtime_pid}",
        "IMDBID": "tt1445520",
    }
    row.update(extra)
    return row


@pytest.fixture
def make_row():
    return feed_row


# ------------------------------------------------------------------
# Meilisearch fake
# ------------------------------------------------------------------


class FakeIndex:
    def __init__(self, client, name):
        self.client = client
        self.name = name
        self.documents = {}
        self.settings = None
        self.searches = []

    def add_documents(self, documents, primary_key=None):
        for doc in documents:
            self.documents[doc[primary_key]] = doc
        return self.client._task()

    def delete_documents(self, ids):
        for doc_id in ids:
            self.documents.pop(doc_id, None)
        return self.client._task()

    def update_settings(self, settings):
        self.settings = settings
        return self.client._task()

    def search(self, query, params):
        self.searches.append((query, params))
        hits = [d for d in self.documents.values() if query.lower() in str(d).lower()]
        return {"hits": hits[: params.get("limit", 20)], "estimatedTotalHits": len(hits)}

    def get_stats(self):
        return SimpleNamespace(number_of_documents=len(self.documents))


class FakeMeiliClient:
    def __init__(self):
        self.indexes = {}
        self.created = []
        self.deleted = []
        self.fail_next = None
        self._tasks = {}
        self._uid = 0

    def _task(self, error=None):
        self._uid += 1
        if error is None and self.fail_next:
            error, self.fail_next = self.fail_next, None
        self._tasks[self._uid] = SimpleNamespace(
            status="failed" if error else "succeeded", error=error,
        )
        return SimpleNamespace(task_uid=self._uid)

    def index(self, name):
        if name not in self.indexes:
            self.indexes[name] = FakeIndex(self, name)
        return self.indexes[name]

    def create_index(self, name, options):
        if name in self.indexes:
            return self._task({"code": "index_already_exists", "message": "exists"})
        self.created.append((name, options))
        self.index(name)
        return self._task()

    def delete_index(self, name):
        if name not in self.indexes:
            return self._task({"code": "index_not_found", "message": "not found"})
        self.deleted.append(name)
        del self.indexes[name]
        return self._task()

    def wait_for_task(self, uid, timeout_in_ms=5000, interval_in_ms=50):
        return self._tasks[uid]


@pytest.fixture
def meili():
    return FakeMeiliClient()


@pytest.fixture
def log_dir(tmp_path, monkeypatch):
    """Point ``LOG_DIR`` at a temp dir and detach file handlers afterwards."""
    import logging

    from sratim import config

    monkeypatch.setattr(config, "LOG_DIR", str(tmp_path))
    yield tmp_path
    for name in ("sratim.showtimes", "sratim.search"):
        log = logging.getLogger(name)
        for handler in list(log.handlers):
            if isinstance(handler, logging.FileHandler):
                log.removeHandler(handler)
                handler.close()
