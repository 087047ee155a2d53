"""Catalog, showtime and bookkeeping tables mapped with SQLAlchemy ORM.

The production schema lives in Supabase (Postgres); these mappings cover
the columns the sync jobs read and write.  ``create_session_factory`` can
also build the schema on SQLite for local runs and tests.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
    sessionmaker,
)
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class Movie(Base):
    __tablename__ = "movies"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    slug: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    release_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    rating: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    # CountIt MoviePID; links movieshows rows to the catalog
    countit_pid: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)

    translations: Mapped[list[MovieTranslation]] = relationship(
        back_populates="movie",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Movie {self.id} {self.slug}>"


class MovieTranslation(Base):
    __tablename__ = "movie_translations"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    movie_id: Mapped[str] = mapped_column(
        ForeignKey("movies.id", ondelete="CASCADE"), nullable=False
    )
    language_code: Mapped[str] = mapped_column(String(2), nullable=False)
    title: Mapped[str] = mapped_column(String, nullable=False)
    synopsis: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    poster_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    trailer_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    __table_args__ = (UniqueConstraint("movie_id", "language_code"),)

    movie: Mapped[Movie] = relationship(back_populates="translations")


class Actor(Base):
    __tablename__ = "actors"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    slug: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    birth_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    birth_place: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    photo_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    translations: Mapped[list[ActorTranslation]] = relationship(
        back_populates="actor",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Actor {self.id} {self.slug}>"


class ActorTranslation(Base):
    __tablename__ = "actor_translations"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    actor_id: Mapped[str] = mapped_column(
        ForeignKey("actors.id", ondelete="CASCADE"), nullable=False
    )
    language_code: Mapped[str] = mapped_column(String(2), nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    biography: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (UniqueConstraint("actor_id", "language_code"),)

    actor: Mapped[Actor] = relationship(back_populates="translations")


# ---------------------------------------------------------------------------
# Showtimes (CountIt feed)
# ---------------------------------------------------------------------------


class MovieShow(Base):
    """One screening imported from the CountIt showtimes feed."""

    __tablename__ = "movieshows"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    moviepid: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    showtime_pid: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    movie_name: Mapped[str] = mapped_column(String, default="")
    movie_english: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    banner: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    genres: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    day: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    time: Mapped[str] = mapped_column(String, default="")  # "HH:MM"
    cinema: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)
    chain: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    available_seats: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    deep_link: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    imdbid: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "moviepid": self.moviepid,
            "showtime_pid": self.showtime_pid,
            "movie_name": self.movie_name,
            "movie_english": self.movie_english,
            "banner": self.banner,
            "genres": self.genres,
            "day": self.day.isoformat() if self.day else None,
            "time": self.time,
            "cinema": self.cinema,
            "city": self.city,
            "chain": self.chain,
            "available_seats": self.available_seats,
            "deep_link": self.deep_link,
            "imdbid": self.imdbid,
        }

    def __repr__(self) -> str:
        return f"<MovieShow {self.showtime_pid} {self.movie_name} {self.cinema}>"


# ---------------------------------------------------------------------------
# Bookkeeping
# ---------------------------------------------------------------------------


class SyncQueueItem(Base):
    """Pending search-index change written by database triggers."""

    __tablename__ = "sync_queue"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    type: Mapped[str] = mapped_column(String, nullable=False)  # movie | actor
    entity_id: Mapped[str] = mapped_column(String, nullable=False)
    action: Mapped[str] = mapped_column(String, default="sync")  # sync | delete
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "entity_id": self.entity_id,
            "action": self.action,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class LogEntry(Base):
    __tablename__ = "logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    level: Mapped[str] = mapped_column(String, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    # "metadata" is reserved on declarative classes
    meta: Mapped[Optional[dict]] = mapped_column(
        "metadata", JSON().with_variant(JSONB(), "postgresql"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)


# ---------------------------------------------------------------------------
# Engine / sessions
# ---------------------------------------------------------------------------


def create_session_factory(url: str, create_schema: bool = False) -> sessionmaker:
    """Build a session factory for ``url``.

    In-memory SQLite shares one connection across threads so background
    sync runs see the same data as the caller.
    """
    kwargs: dict[str, Any] = {"echo": False}
    # Supabase hands out plain postgres:// URLs; the driver is psycopg 3
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            url = "postgresql+psycopg://" + url[len(prefix):]
            break

    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True

    engine = create_engine(url, **kwargs)
    if create_schema:
        Base.metadata.create_all(engine)
        logger.info("Ensured schema on %s", engine.url.render_as_string(hide_password=True))
    return sessionmaker(bind=engine, expire_on_commit=False)


_factory: sessionmaker | None = None


def get_session_factory() -> sessionmaker:
    """Return the shared session factory for ``DATABASE_URL``."""
    global _factory
    if _factory is None:
        from sratim import config

        _factory = create_session_factory(config.require("DATABASE_URL"))
    return _factory
