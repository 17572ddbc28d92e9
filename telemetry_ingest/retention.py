"""
Retention-window purge of stored measurements.

Deletes every measurement measured more than N days ago. Intended to run from
cron or a scheduled container::

    telemetry-retention --days 90

``--days`` defaults to RETENTION_DAYS (90). Only DATABASE_URL is required.

CHANGELOG:
- 2026-10-16: Initial creation

TODO:
- None
"""

import argparse
import asyncio
import logging
import os
from datetime import UTC, datetime, timedelta

from telemetry_ingest.config import configure_logging
from telemetry_ingest.db.session import dispose_engine, session_scope
from telemetry_ingest.services.measurement_store import MeasurementStore, SqlMeasurementStore

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 90


def retention_cutoff(days: int, now: datetime | None = None) -> datetime:
    """Return the instant before which measurements fall outside the window.

    Raises:
        ValueError: If *days* is less than 1.
    """
    if days < 1:
        raise ValueError(f"Retention must be at least 1 day, got {days}")
    return (now or datetime.now(UTC)) - timedelta(days=days)


async def purge(store: MeasurementStore, days: int, now: datetime | None = None) -> int:
    """Purge measurements older than *days* from *store*; return the count deleted."""
    cutoff = retention_cutoff(days, now)
    logger.info("Purging measurements measured before %s", cutoff.isoformat())
    return await store.purge_before(cutoff)


async def _main(args: argparse.Namespace) -> int:
    try:
        async with session_scope() as session:
            return await purge(SqlMeasurementStore(session), args.days)
    finally:
        await dispose_engine()


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="Delete measurements older than the retention window"
    )
    p.add_argument(
        "--days",
        type=int,
        default=int(os.environ.get("RETENTION_DAYS", DEFAULT_RETENTION_DAYS)),
        help="Retention window in days (default: RETENTION_DAYS or 90)",
    )
    p.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        help="Log level name (default: LOG_LEVEL or INFO)",
    )
    args = p.parse_args(argv)
    if args.days < 1:
        p.error("--days must be >= 1")
    return args


def main(argv: list[str] | None = None) -> None:
    """Console entry point."""
    args = _parse_args(argv)
    configure_logging(args.log_level.upper())
    deleted = asyncio.run(_main(args))
    logger.info("Retention purge complete: %d measurement(s) deleted", deleted)


if __name__ == "__main__":
    main()
