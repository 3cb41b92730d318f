"""
Sports catalog service: read-only listing of the static sports reference table.
"""

from typing import Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sports_buddy.database.models import Sport
from sports_buddy.utils.constants import DEFAULT_SPORTS
from sports_buddy.utils.datetime_utils import isoformat
import logging

logger = logging.getLogger(__name__)


def sport_to_dict(sport: Optional[Sport]) -> Optional[Dict]:
    if sport is None:
        return None
    return {
        "id": sport.id,
        "name": sport.name,
        "description": sport.description,
        "min_players": sport.min_players,
        "max_players": sport.max_players,
        "created_at": isoformat(sport.created_at),
    }


async def list_sports(session: AsyncSession) -> List[Dict]:
    """List every sport ordered by name."""
    result = await session.execute(select(Sport).order_by(Sport.name))
    return [sport_to_dict(s) for s in result.scalars().all()]


async def get_sport(session: AsyncSession, sport_id: str) -> Optional[Dict]:
    """Get a single sport, or None if it does not exist."""
    result = await session.execute(select(Sport).where(Sport.id == sport_id))
    return sport_to_dict(result.scalar_one_or_none())


async def ensure_default_sports(session: AsyncSession) -> int:
    """
    Insert any missing sports from the default catalog.

    Returns:
        Number of sports created
    """
    result = await session.execute(select(Sport.name))
    existing = set(result.scalars().all())

    created = 0
    for name, min_players, max_players in DEFAULT_SPORTS:
        if name in existing:
            continue
        session.add(Sport(name=name, min_players=min_players, max_players=max_players))
        created += 1

    if created:
        await session.flush()
        logger.info(f"Seeded {created} default sports")
    return created
