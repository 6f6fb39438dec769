#!/usr/bin/env python3
# =============================================================================
# Paperfolio Database Initialization Script
# Creates the schema and seeds the registration passcode
# =============================================================================

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from paperfolio.config.settings import settings
from paperfolio.database.connection import close_database, get_db_context, init_database
from paperfolio.services.passcodes import PasscodeService

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


async def initialize(passcode: Optional[str]) -> None:
    """Create all tables, then store the passcode hash if none exists yet."""
    logger.info("=" * 60)
    logger.info("Paperfolio Database Initialization")
    logger.info("=" * 60)

    try:
        await init_database()

        async with get_db_context() as session:
            if await PasscodeService(session).seed(passcode):
                logger.info("Registration passcode seeded")
            else:
                logger.info("Registration passcode not seeded (none given or one already exists)")
    finally:
        await close_database()

    logger.info("Database initialization completed successfully!")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Create the Paperfolio schema and seed the registration passcode.")
    parser.add_argument(
        "--passcode",
        default=settings.registration.passcode,
        help="Registration passcode (defaults to REG_PASSCODE)",
    )
    args = parser.parse_args(argv)

    try:
        asyncio.run(initialize(args.passcode))
    except KeyboardInterrupt:
        logger.info("Initialization interrupted by user")
        return 1
    except Exception as e:
        logger.error(f"Initialization failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
