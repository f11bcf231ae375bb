"""
Command line entry point.

Usage:
    python -m seat_sampler.main --mode daemon
    python -m seat_sampler.main --mode sync
    python -m seat_sampler.main --mode resolve
    python -m seat_sampler.main --mode stats
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List
from typing import Optional

from seat_sampler.daemon import SeatsDaemon
from seat_sampler.database import Database
from seat_sampler.exceptions import ConfigurationError
from seat_sampler.exceptions import StoreError
from seat_sampler.providers import HttpClient
from seat_sampler.providers import load_providers
from seat_sampler.scheduler import SchedulerContext
from seat_sampler.scheduler import resolve_assignments
from seat_sampler.scheduler import sync
from seat_sampler.settings import Settings
from seat_sampler.settings import get_settings

logger = logging.getLogger(__name__)

MODES = ("daemon", "sync", "resolve", "stats")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="seat_sampler",
        description="Sample cinema seat availability around show start times.",
    )
    parser.add_argument(
        "--mode",
        choices=MODES,
        default="daemon",
        help="daemon: run all stages periodically; sync: one sync pass; "
             "resolve: one capacity resolution pass (quiet hours only); stats: print store statistics",
    )
    return parser.parse_args(argv)


async def run(mode: str, settings: Settings) -> int:
    """
    Open the store, load providers and run ``mode``.

    Returns:
        Process exit status
    """
    db = Database(settings.db_path)
    try:
        await db.initialize()
    except StoreError as e:
        logger.error(f"Startup failed: {e}")
        return 1

    if mode == "stats":
        try:
            print(json.dumps(await db.get_database_stats(), indent=2))
        finally:
            await db.close()
        return 0

    http = HttpClient(settings)
    try:
        providers = load_providers(settings.providers, settings=settings, http=http)
    except ConfigurationError as e:
        logger.error(f"Startup failed: {e}")
        await http.close()
        await db.close()
        return 1
    if not len(providers):
        logger.warning("No providers configured; every showing will be unclassified")

    ctx = SchedulerContext(db, providers, settings)
    try:
        if mode == "daemon":
            await SeatsDaemon(ctx).run()
        elif mode == "sync":
            result = await sync(ctx)
            print(result.model_dump_json(indent=2))
        elif mode == "resolve":
            result = await resolve_assignments(ctx)
            if not result.quiet:
                logger.warning("Capacity resolution only runs during quiet hours; nothing done")
            print(result.model_dump_json(indent=2))
    finally:
        if mode != "daemon":
            await providers.close()
            await db.close()
        await http.close()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    settings.setup_logging()
    try:
        return asyncio.run(run(args.mode, settings))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
