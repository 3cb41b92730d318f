#!/usr/bin/env python3
"""
Initialize default database values.
This script is run on startup to populate the sports catalog.
"""

import asyncio
import logging
from sports_buddy.database import db
from sports_buddy.services import sport_service

logger = logging.getLogger(__name__)


async def init_defaults():
    """Initialize default database values."""
    async with db.AsyncSessionLocal() as session:
        created = await sport_service.ensure_default_sports(session)
        await session.commit()

    if created:
        logger.info(f"✓ Added {created} default sports")
    else:
        logger.info("✓ Default sports already present")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(init_defaults())
