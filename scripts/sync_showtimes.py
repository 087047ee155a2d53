#!/usr/bin/env python3
"""Standalone showtime sync script for CI / cron.

Imports the CountIt feed into the movieshows table once and fails the
run when the feed is empty or too many rows could not be stored, so the
scheduler surfaces broken API keys and schema drift.

Usage:
    uv run python scripts/sync_showtimes.py
    uv run python scripts/sync_showtimes.py --max-failure-rate 0.2
"""

import argparse
import logging
import sys
from pathlib import Path

# Ensure project root is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from sratim import config
from sratim.oplog import setup_logging
from sratim.showtimes.sync import run_showtime_sync

logger = logging.getLogger(__name__)

# Share of feed rows allowed to fail (invalid rows + insert errors)
_MAX_FAILURE_RATE = 0.1


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--max-failure-rate", type=float, default=_MAX_FAILURE_RATE,
        help="Fail when more than this share of rows failed (default 0.1)",
    )
    args = parser.parse_args()

    setup_logging(log_dir=config.LOG_DIR)
    logger.info("Starting showtime sync...")

    result = run_showtime_sync()

    if result.total == 0:
        logger.error("CountIt returned 0 showtimes, treating run as failed")
        sys.exit(1)

    rate = result.failed / result.total
    logger.info(
        "Sync complete: %d rows, %d inserted, %d existing, %d without movie, %d failed (%.1f%%)",
        result.total, result.success, result.existing,
        result.missing_movie, result.failed, rate * 100,
    )
    for movie in result.failed_movies[:20]:
        logger.info(
            "  %s (%s): %s x%d",
            movie.movie_name, movie.moviepid, movie.failure_type, movie.showtime_count,
        )

    if rate > args.max_failure_rate:
        logger.error(
            "Sync FAILED: failure rate %.1f%% above %.1f%%",
            rate * 100, args.max_failure_rate * 100,
        )
        sys.exit(1)


if __name__ == "__main__":
    main()
