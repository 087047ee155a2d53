"""sratim entry point.

``sratim serve`` runs the API and the scheduled sync jobs on one asyncio
event loop.  The other subcommands run a single job and exit.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

import uvicorn

from sratim import config
from sratim.oplog import setup_logging

logger = logging.getLogger(__name__)


async def async_serve() -> None:
    """Run the FastAPI app and the job scheduler concurrently."""
    from sratim.api.app import app as fastapi_app
    from sratim.scheduler import build_scheduler

    scheduler = build_scheduler()
    server = uvicorn.Server(uvicorn.Config(
        fastapi_app,
        host="0.0.0.0",
        port=config.API_PORT,
        log_level="info",
    ))

    logger.info("Starting API on port %d with scheduled jobs...", config.API_PORT)
    scheduler.start()
    try:
        await server.serve()
    finally:
        logger.info("Shutting down...")
        scheduler.shutdown(wait=False)


# ------------------------------------------------------------------
# Subcommands
# ------------------------------------------------------------------


def cmd_serve(args: argparse.Namespace) -> int:
    asyncio.run(async_serve())
    return 0


def cmd_sync_showtimes(args: argparse.Namespace) -> int:
    from sratim.showtimes.sync import run_showtime_sync

    result = run_showtime_sync()
    print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    return 0


def cmd_process_queue(args: argparse.Namespace) -> int:
    from sratim.db.models import get_session_factory
    from sratim.search.index import SearchIndex
    from sratim.search.queue import process_sync_queue

    index = SearchIndex.from_config()
    with get_session_factory()() as session:
        report = process_sync_queue(session, index, limit=args.limit)
    print(json.dumps(report.to_dict(), ensure_ascii=False, indent=2))
    return 1 if report.failed else 0


def cmd_configure_search(args: argparse.Namespace) -> int:
    from sratim.db.models import get_session_factory
    from sratim.search.index import SearchIndex

    index = SearchIndex.from_config()
    index.configure(recreate=args.recreate)
    if args.reindex:
        with get_session_factory()() as session:
            counts = index.reindex_all(session)
        logger.info("Reindexed %s", counts)
    logger.info("Index stats: %s", index.stats())
    return 0


def cmd_check_queue(args: argparse.Namespace) -> int:
    from sratim.db.models import get_session_factory
    from sratim.search.queue import inspect_queue

    with get_session_factory()() as session:
        info = inspect_queue(session, sample=args.sample)
    print(json.dumps(info, ensure_ascii=False, indent=2))
    return 0


def cmd_failed_movies(args: argparse.Namespace) -> int:
    from sratim.db.models import get_session_factory
    from sratim.showtimes.countit import fetch_showtimes
    from sratim.showtimes.failed_movies import unique_movies, unmatched_movies, write_csv

    rows = fetch_showtimes(config.require("SHOWTIMES_API_KEY"), config.SHOWTIMES_API_URL)
    out_dir = Path(args.output)
    write_csv(unique_movies(rows), out_dir / "countit-movies.csv")

    with get_session_factory()() as session:
        unmatched = unmatched_movies(session, rows)
    write_csv(unmatched, out_dir / "unmatched-movies.csv")

    for movie in unmatched:
        print(f"{movie.movie_pid}\t{movie.showtime_count}\t{movie.movie_name}")
    logger.info("%d movies in feed have no catalog entry", len(unmatched))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sratim")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("serve", help="Run the API and scheduled jobs").set_defaults(func=cmd_serve)
    sub.add_parser(
        "sync-showtimes", help="Import the CountIt feed once",
    ).set_defaults(func=cmd_sync_showtimes)

    p = sub.add_parser("process-queue", help="Push queued changes to Meilisearch")
    p.add_argument("--limit", type=int, default=config.QUEUE_BATCH_SIZE)
    p.set_defaults(func=cmd_process_queue)

    p = sub.add_parser("configure-search", help="Create and configure search indexes")
    p.add_argument("--recreate", action="store_true", help="Delete indexes first")
    p.add_argument("--reindex", action="store_true", help="Push every movie and actor")
    p.set_defaults(func=cmd_configure_search)

    p = sub.add_parser("check-queue", help="Show sync queue contents")
    p.add_argument("--sample", type=int, default=5)
    p.set_defaults(func=cmd_check_queue)

    p = sub.add_parser("failed-movies", help="Report feed movies missing from the catalog")
    p.add_argument("--output", default=str(Path(config.LOG_DIR) / "failed-movies"))
    p.set_defaults(func=cmd_failed_movies)

    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    setup_logging(
        logging.DEBUG if args.verbose else logging.INFO,
        log_dir=config.LOG_DIR,
    )
    try:
        code = args.func(args)
    except config.ConfigError as e:
        logger.error("%s", e)
        code = 1
    except Exception:
        logger.exception("%s failed", args.command)
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
