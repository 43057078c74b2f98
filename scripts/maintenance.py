"""Periodic housekeeping: close stale playback sessions and prune bad push tokens.

Meant to run from cron or a scheduler, e.g. every 15 minutes::

    python -m scripts.maintenance
"""
import argparse
import asyncio
import logging

from jevah.config import settings
from jevah.database import async_session
from jevah.logging_config import setup_logging
from jevah.services import playback_service, push_service

logger = logging.getLogger("jevah.maintenance")


async def run(skip_tokens: bool = False) -> None:
    async with async_session() as session:
        closed = await playback_service.cleanup_stale_sessions(session)
        removed = 0 if skip_tokens else await push_service.cleanup_invalid_tokens(session)
        await session.commit()
    logger.info("Maintenance done: %d stale session(s) closed, %d token(s) removed", closed, removed)


def main():
    parser = argparse.ArgumentParser(description="Jevah maintenance tasks")
    parser.add_argument("--skip-tokens", action="store_true", help="Do not prune push tokens")
    args = parser.parse_args()
    setup_logging(settings.LOG_LEVEL)
    asyncio.run(run(skip_tokens=args.skip_tokens))


if __name__ == "__main__":
    main()
