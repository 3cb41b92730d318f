"""
Profile service for user profiles and sport preferences.

Profiles are created on signup and never deleted here. Sport preferences are
keyed by (user, sport); adding an existing pair updates it in place.
"""

import re
from typing import Any, Dict, Iterable, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, or_, exists, and_
from sqlalchemy.exc import SQLAlchemyError
from sports_buddy.database.models import Profile, Sport, UserSport
from sports_buddy.services.sport_service import sport_to_dict
from sports_buddy.utils.constants import (
    DEFAULT_SEARCH_RADIUS,
    MAX_SEARCH_RESULTS,
    NEARBY_CANDIDATE_LIMIT,
)
from sports_buddy.utils.datetime_utils import isoformat, utcnow
from sports_buddy.utils.errors import NotFoundError, ValidationError
from sports_buddy.utils.geo_utils import GeoPoint, filter_by_distance, point_from_pair
import logging

logger = logging.getLogger(__name__)

USERNAME_RE = re.compile(r"^[a-zA-Z0-9_]{3,50}$")

# Columns a caller may write through update_profile
UPDATABLE_FIELDS = (
    "username",
    "full_name",
    "avatar_url",
    "bio",
    "age",
    "skill_level",
    "location",
    "location_name",
)


def is_valid_username(username: str) -> bool:
    """Username must be 3-50 characters, alphanumeric and underscores only."""
    return bool(username) and USERNAME_RE.match(username) is not None


def normalize_username(username: str) -> str:
    """Usernames are stored lowercase and trimmed."""
    return username.strip().lower()


def user_sport_to_dict(user_sport: UserSport) -> Dict:
    return {
        "id": user_sport.id,
        "user_id": user_sport.user_id,
        "sport_id": user_sport.sport_id,
        "skill_level": user_sport.skill_level,
        "preferred": user_sport.preferred,
        "created_at": isoformat(user_sport.created_at),
        "updated_at": isoformat(user_sport.updated_at),
        "sport": sport_to_dict(user_sport.sport),
    }


def profile_to_dict(profile: Optional[Profile], include_sports: bool = True) -> Optional[Dict]:
    """
    Serialize a profile. The stored point is exposed as {latitude, longitude}.
    """
    if profile is None:
        return None
    data = {
        "id": profile.id,
        "username": profile.username,
        "full_name": profile.full_name,
        "avatar_url": profile.avatar_url,
        "bio": profile.bio,
        "age": profile.age,
        "skill_level": profile.skill_level,
        "location": profile.location.to_dict() if profile.location else None,
        "location_name": profile.location_name,
        "created_at": isoformat(profile.created_at),
        "updated_at": isoformat(profile.updated_at),
    }
    if include_sports:
        data["user_sports"] = [user_sport_to_dict(us) for us in profile.user_sports]
    return data


def profile_summary(profile: Optional[Profile]) -> Optional[Dict]:
    """Compact public fields used when a profile is embedded in another record."""
    if profile is None:
        return None
    return {
        "id": profile.id,
        "username": profile.username,
        "full_name": profile.full_name,
        "avatar_url": profile.avatar_url,
        "bio": profile.bio,
        "skill_level": profile.skill_level,
        "location_name": profile.location_name,
    }


def needs_profile_setup(profile: Optional[Dict]) -> bool:
    """A profile needs setup when it is missing or none of the setup fields are filled in."""
    if not profile:
        return True
    return not any(
        profile.get(field) for field in ("full_name", "bio", "age", "skill_level", "location")
    )


async def _load_profile(session: AsyncSession, user_id: str) -> Optional[Profile]:
    result = await session.execute(
        select(Profile)
        .where(Profile.id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_profile(session: AsyncSession, user_id: str) -> Optional[Dict]:
    """
    Get a profile with nested sport preferences.

    Args:
        session: Database session
        user_id: Profile ID (identity provider user id)

    Returns:
        Profile dict or None if not found
    """
    return profile_to_dict(await _load_profile(session, user_id))


async def is_username_taken(session: AsyncSession, username: str) -> bool:
    result = await session.execute(
        select(Profile.id).where(Profile.username == normalize_username(username))
    )
    return result.scalar_one_or_none() is not None


async def create_profile(
    session: AsyncSession, user_id: str, username: str, full_name: Optional[str] = None
) -> Dict:
    """
    Create the profile row for a freshly signed-up user.

    Raises:
        ValidationError: If the username is invalid
    """
    if not is_valid_username(username.strip()):
        raise ValidationError(
            "Username must be 3-50 characters, alphanumeric and underscores only"
        )
    profile = Profile(id=user_id, username=normalize_username(username), full_name=full_name)
    session.add(profile)
    await session.flush()
    return profile_to_dict(await _load_profile(session, user_id))


def _clean_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Drop unset values and fields that are not writable; encode location pairs."""
    clean = {k: v for k, v in fields.items() if v is not None and k in UPDATABLE_FIELDS}
    if "location" in clean and not isinstance(clean["location"], GeoPoint):
        clean["location"] = point_from_pair(clean["location"])
    if "username" in clean:
        if not is_valid_username(clean["username"].strip()):
            raise ValidationError(
                "Username must be 3-50 characters, alphanumeric and underscores only"
            )
        clean["username"] = normalize_username(clean["username"])
    return clean


async def update_profile(session: AsyncSession, user_id: str, fields: Dict[str, Any]) -> Dict:
    """
    Partially update a profile. Only provided (non-None) fields are written.

    Raises:
        NotFoundError: If the profile does not exist
        ValidationError: If a field value is invalid
    """
    profile = await _load_profile(session, user_id)
    if profile is None:
        raise NotFoundError("Profile not found")

    clean = _clean_fields(fields)
    if "username" in clean and clean["username"] != profile.username:
        if await is_username_taken(session, clean["username"]):
            raise ValidationError("Username already taken")

    for key, value in clean.items():
        setattr(profile, key, value)
    profile.updated_at = utcnow()
    await session.flush()

    return profile_to_dict(await _load_profile(session, user_id))


async def _existing_sport_ids(session: AsyncSession, sport_ids: Iterable[str]) -> set:
    ids = list(set(sport_ids))
    if not ids:
        return set()
    result = await session.execute(select(Sport.id).where(Sport.id.in_(ids)))
    return set(result.scalars().all())


async def setup_profile(
    session: AsyncSession,
    user_id: str,
    full_name: Optional[str] = None,
    bio: Optional[str] = None,
    age: Optional[int] = None,
    skill_level: Optional[str] = None,
    location: Optional[GeoPoint] = None,
    location_name: Optional[str] = None,
    preferred_sports: Optional[List[str]] = None,
) -> Dict:
    """
    One-shot initial population of a profile plus its preferred sports.

    Sport insertion is best-effort: a failure is logged and the profile update
    still goes through. Sports the user already has are left untouched.

    Raises:
        NotFoundError: If the profile does not exist
    """
    profile = await _load_profile(session, user_id)
    if profile is None:
        raise NotFoundError("Profile not found")

    profile.full_name = full_name
    profile.bio = bio
    profile.age = age
    profile.skill_level = skill_level
    profile.location = location
    profile.location_name = location_name
    profile.updated_at = utcnow()
    await session.flush()

    if preferred_sports:
        try:
            async with session.begin_nested():
                known = await _existing_sport_ids(session, preferred_sports)
                already = {us.sport_id for us in profile.user_sports}
                for sport_id in dict.fromkeys(preferred_sports):
                    if sport_id not in known:
                        logger.warning(f"Skipping unknown sport {sport_id} for user {user_id}")
                        continue
                    if sport_id in already:
                        continue
                    session.add(
                        UserSport(
                            user_id=user_id,
                            sport_id=sport_id,
                            preferred=True,
                            skill_level=skill_level or "intermediate",
                        )
                    )
                await session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Error adding sports during profile setup for {user_id}: {e}")

    return profile_to_dict(await _load_profile(session, user_id))


async def add_user_sport(
    session: AsyncSession,
    user_id: str,
    sport_id: str,
    skill_level: Optional[str] = None,
    preferred: bool = False,
) -> Dict:
    """
    Add a sport preference, or update skill/preferred if the pair already exists.

    Raises:
        NotFoundError: If the sport does not exist
    """
    if not await _existing_sport_ids(session, [sport_id]):
        raise NotFoundError("Sport not found")

    result = await session.execute(
        select(UserSport).where(
            and_(UserSport.user_id == user_id, UserSport.sport_id == sport_id)
        )
    )
    user_sport = result.scalar_one_or_none()
    if user_sport is None:
        user_sport = UserSport(user_id=user_id, sport_id=sport_id)
        session.add(user_sport)
    user_sport.skill_level = skill_level
    user_sport.preferred = bool(preferred)
    user_sport.updated_at = utcnow()
    await session.flush()

    result = await session.execute(
        select(UserSport)
        .where(UserSport.id == user_sport.id)
        .execution_options(populate_existing=True)
    )
    return user_sport_to_dict(result.scalar_one())


async def replace_user_sports(
    session: AsyncSession, user_id: str, sports: List[Dict[str, Any]]
) -> List[Dict]:
    """
    Replace all sport preferences for a user: delete every row, then insert the new list.

    Both steps run in the caller's transaction, so a failed insert rolls the
    delete back with it.

    Args:
        sports: List of dicts with sport_id, skill_level, preferred

    Raises:
        NotFoundError: If any sport does not exist
    """
    wanted = {}
    for item in sports:
        wanted[item["sport_id"]] = item
    known = await _existing_sport_ids(session, wanted.keys())
    missing = set(wanted) - known
    if missing:
        raise NotFoundError(f"Sport not found: {sorted(missing)[0]}")

    await session.execute(delete(UserSport).where(UserSport.user_id == user_id))
    for sport_id, item in wanted.items():
        session.add(
            UserSport(
                user_id=user_id,
                sport_id=sport_id,
                skill_level=item.get("skill_level"),
                preferred=bool(item.get("preferred", False)),
            )
        )
    await session.flush()

    result = await session.execute(
        select(UserSport)
        .where(UserSport.user_id == user_id)
        .order_by(UserSport.created_at)
        .execution_options(populate_existing=True)
    )
    return [user_sport_to_dict(us) for us in result.scalars().all()]


async def remove_user_sport(session: AsyncSession, user_id: str, sport_id: str) -> bool:
    """
    Remove one sport preference.

    Returns:
        True if a row was deleted
    """
    result = await session.execute(
        delete(UserSport).where(
            and_(UserSport.user_id == user_id, UserSport.sport_id == sport_id)
        )
    )
    await session.flush()
    return result.rowcount > 0


async def search_profiles(
    session: AsyncSession,
    location: Optional[GeoPoint] = None,
    radius: float = DEFAULT_SEARCH_RADIUS,
    sport_id: Optional[str] = None,
    skill_level: Optional[str] = None,
    exclude_user_id: Optional[str] = None,
    limit: int = MAX_SEARCH_RESULTS,
) -> List[Dict]:
    """
    Search profiles, optionally by proximity, sport and skill level.

    When a location is given, profiles without a location are skipped and the
    rest are filtered to ``radius`` meters and sorted nearest first, each
    carrying a ``distance`` in meters.

    Returns:
        Up to ``limit`` profile dicts
    """
    query = select(Profile)
    if location is not None:
        query = query.where(Profile.location.isnot(None))
    if sport_id:
        query = query.where(
            exists().where(and_(UserSport.user_id == Profile.id, UserSport.sport_id == sport_id))
        )
    if skill_level and skill_level != "any":
        query = query.where(
            or_(
                Profile.skill_level == skill_level,
                exists().where(
                    and_(UserSport.user_id == Profile.id, UserSport.skill_level == skill_level)
                ),
            )
        )
    if exclude_user_id:
        query = query.where(Profile.id != exclude_user_id)

    if location is None:
        result = await session.execute(query.order_by(Profile.username).limit(limit))
        return [profile_to_dict(p) for p in result.scalars().all()]

    result = await session.execute(query.limit(NEARBY_CANDIDATE_LIMIT))
    nearby = filter_by_distance(result.scalars().all(), location, radius, lambda p: p.location)
    items = []
    for profile, distance in nearby[:limit]:
        data = profile_to_dict(profile)
        data["distance"] = distance
        items.append(data)
    return items
