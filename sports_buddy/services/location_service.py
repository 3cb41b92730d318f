"""
Location service: proximity search for users and matches, the caller's own
location, and popular areas.

Distances are computed in the application (haversine) over a bounded
candidate set fetched from the store.
"""

from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_
from sports_buddy.database.models import Match, MatchStatus, Profile
from sports_buddy.services import profile_service
from sports_buddy.services.match_service import match_to_dict
from sports_buddy.utils.constants import (
    DEFAULT_SEARCH_RADIUS,
    MAX_POPULAR_AREAS,
    MAX_SEARCH_RESULTS,
    NEARBY_CANDIDATE_LIMIT,
    POPULAR_AREAS_RADIUS,
)
from sports_buddy.utils.datetime_utils import ensure_utc, isoformat, utcnow
from sports_buddy.utils.errors import NotFoundError
from sports_buddy.utils.geo_utils import GeoPoint, filter_by_distance, haversine_distance_meters
import logging

logger = logging.getLogger(__name__)


def _search_params(location: GeoPoint, radius: float, **filters) -> Dict:
    params = {
        "latitude": location.latitude,
        "longitude": location.longitude,
        "radius": radius,
    }
    params.update(filters)
    return params


async def find_nearby_users(
    session: AsyncSession,
    location: GeoPoint,
    radius: float = DEFAULT_SEARCH_RADIUS,
    sport_id: Optional[str] = None,
    skill_level: Optional[str] = None,
    exclude_user_id: Optional[str] = None,
) -> Dict:
    """
    Profiles within ``radius`` meters of ``location``, nearest first.

    Returns:
        Dict with users, count and searchParams
    """
    users = await profile_service.search_profiles(
        session,
        location=location,
        radius=radius,
        sport_id=sport_id,
        skill_level=skill_level,
        exclude_user_id=exclude_user_id,
    )
    return {
        "users": users,
        "count": len(users),
        "searchParams": _search_params(
            location, radius, sport_id=sport_id, skill_level=skill_level
        ),
    }


async def find_nearby_matches(
    session: AsyncSession,
    location: GeoPoint,
    radius: float = DEFAULT_SEARCH_RADIUS,
    sport_id: Optional[str] = None,
    skill_level: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> Dict:
    """
    Open upcoming matches within ``radius`` meters of ``location``, nearest first.

    ``date_from`` defaults to now; earlier values are clamped so past matches
    never show up.

    Returns:
        Dict with matches, count and searchParams
    """
    now = utcnow()
    start = max(ensure_utc(date_from), now) if date_from else now

    query = select(Match).where(
        and_(Match.status == MatchStatus.OPEN.value, Match.scheduled_at >= start)
    )
    if date_to:
        query = query.where(Match.scheduled_at <= ensure_utc(date_to))
    if sport_id:
        query = query.where(Match.sport_id == sport_id)
    if skill_level and skill_level != "any":
        query = query.where(Match.skill_level_required == skill_level)

    result = await session.execute(
        query.order_by(Match.scheduled_at).limit(NEARBY_CANDIDATE_LIMIT)
    )
    nearby = filter_by_distance(result.scalars().all(), location, radius, lambda m: m.location)

    matches = []
    for match, distance in nearby[:MAX_SEARCH_RESULTS]:
        data = match_to_dict(match)
        data["distance"] = distance
        matches.append(data)

    return {
        "matches": matches,
        "count": len(matches),
        "searchParams": _search_params(
            location,
            radius,
            sport_id=sport_id,
            skill_level=skill_level,
            date_from=isoformat(date_from) if date_from else None,
            date_to=isoformat(date_to) if date_to else None,
        ),
    }


async def update_user_location(
    session: AsyncSession, user_id: str, location: GeoPoint, location_name: Optional[str] = None
) -> Dict:
    """
    Set the caller's location and label.

    Raises:
        NotFoundError: If the profile does not exist
    """
    result = await session.execute(select(Profile).where(Profile.id == user_id))
    profile = result.scalar_one_or_none()
    if profile is None:
        raise NotFoundError("Profile not found")

    profile.location = location
    profile.location_name = location_name or None
    profile.updated_at = utcnow()
    await session.flush()

    logger.info(f"Updated location for user {user_id}")
    return await profile_service.get_profile(session, user_id)


async def get_popular_areas(
    session: AsyncSession,
    location: Optional[GeoPoint] = None,
    radius: float = POPULAR_AREAS_RADIUS,
    limit: int = MAX_POPULAR_AREAS,
) -> List[Dict]:
    """
    Group matches and profiles by location label and rank labels by activity.

    A label needs at least two located rows to count as an area. Its center is
    the mean longitude/latitude of those rows. With a ``location``, only areas
    whose center lies within ``radius`` meters are kept.

    Returns:
        Up to ``limit`` dicts with location_name, activity_count, match_count,
        user_count, center and (with a location) distance
    """
    groups = defaultdict(lambda: {"points": [], "matches": 0, "users": 0})

    match_rows = await session.execute(
        select(Match.location_name, Match.location).where(Match.location_name.isnot(None))
    )
    for name, point in match_rows.all():
        if point is None or not name:
            continue
        groups[name]["points"].append(point)
        groups[name]["matches"] += 1

    profile_rows = await session.execute(
        select(Profile.location_name, Profile.location).where(
            and_(Profile.location_name.isnot(None), Profile.location.isnot(None))
        )
    )
    for name, point in profile_rows.all():
        if point is None or not name:
            continue
        groups[name]["points"].append(point)
        groups[name]["users"] += 1

    areas = []
    for name, group in groups.items():
        points = group["points"]
        if len(points) < 2:
            continue
        center = GeoPoint(
            sum(p.longitude for p in points) / len(points),
            sum(p.latitude for p in points) / len(points),
        )
        area = {
            "location_name": name,
            "activity_count": len(points),
            "match_count": group["matches"],
            "user_count": group["users"],
            "center": center.to_dict(),
        }
        if location is not None:
            distance = haversine_distance_meters(location, center)
            if distance > radius:
                continue
            area["distance"] = round(distance)
        areas.append(area)

    areas.sort(key=lambda a: (-a["activity_count"], a["location_name"]))
    return areas[:limit]
