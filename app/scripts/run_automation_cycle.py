"""Run the automation dispatcher from the command line.

Usage:
    # One cycle, then exit (cron):
    python -m app.scripts.run_automation_cycle --limit 25

    # Keep polling every WORKER_POLL_MS:
    python -m app.scripts.run_automation_cycle --loop

Several copies may run at once; the claim step keeps a job from being sent twice.
"""

import argparse
import asyncio
import logging
import sys

from app.core.config import settings
from app.core.database import async_session_maker, engine
from app.services.dispatcher import Dispatcher, StoreUnavailableError
from app.services.providers import ProviderRegistry

logger = logging.getLogger("automation.worker")


async def run(limit: int, loop: bool) -> int:
    registry = ProviderRegistry.from_settings(settings)
    poll_seconds = settings.WORKER_POLL_MS / 1000
    exit_code = 0

    try:
        while True:
            async with async_session_maker() as db:
                dispatcher = Dispatcher.from_settings(db, registry, settings)
                try:
                    result = await dispatcher.run_cycle(limit)
                    if result.processed or result.failed or result.rescheduled:
                        logger.info("Cycle result: %s", result.to_dict())
                except StoreUnavailableError as e:
                    logger.error("Job store unavailable: %s", e)
                    exit_code = 1

            if not loop:
                break
            await asyncio.sleep(poll_seconds)
    finally:
        await engine.dispose()

    return exit_code


def main():
    parser = argparse.ArgumentParser(description="Dispatch due automation jobs")
    parser.add_argument(
        "--limit",
        type=int,
        default=settings.AUTOMATION_BATCH_LIMIT,
        help="Maximum jobs per cycle",
    )
    parser.add_argument("--loop", action="store_true", help="Poll forever instead of running one cycle")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    limit = max(1, min(args.limit, settings.AUTOMATION_MAX_BATCH_LIMIT))
    try:
        sys.exit(asyncio.run(run(limit, args.loop)))
    except KeyboardInterrupt:
        logger.info("Worker stopped")


if __name__ == "__main__":
    main()
