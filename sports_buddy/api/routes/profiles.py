"""Profile route handlers."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from sports_buddy.api.routes import limiter, SEARCH_RATE_LIMIT
from sports_buddy.api.auth_dependencies import (
    get_current_user,
    get_current_user_optional,
    make_require_owner,
)
from sports_buddy.api.http_errors import http_error
from sports_buddy.database.db import get_db_session
from sports_buddy.services import profile_service
from sports_buddy.models.schemas import (
    ProfileUpdate,
    ProfileSetupRequest,
    UserSportCreate,
    UserSportsReplace,
)
from sports_buddy.utils.constants import DEFAULT_SEARCH_RADIUS
from sports_buddy.utils.errors import NotFoundError, ServiceError
from sports_buddy.utils.geo_utils import parse_lat_lng_string, point_from_pair

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/profiles/search")
@limiter.limit(SEARCH_RATE_LIMIT)
async def search_profiles(
    request: Request,
    location: Optional[str] = Query(None, description="lat,lng"),
    radius: float = Query(DEFAULT_SEARCH_RADIUS, gt=0),
    sport_id: Optional[str] = None,
    skill_level: Optional[str] = None,
    user: Optional[dict] = Depends(get_current_user_optional),
    session: AsyncSession = Depends(get_db_session),
):
    """Search profiles by proximity, sport and skill level."""
    try:
        origin = parse_lat_lng_string(location) if location else None
        return await profile_service.search_profiles(
            session,
            location=origin,
            radius=radius,
            sport_id=sport_id,
            skill_level=skill_level,
            exclude_user_id=user["id"] if user else None,
        )
    except ServiceError as e:
        raise http_error(e)


@router.post("/api/profiles/setup")
async def setup_profile(
    payload: ProfileSetupRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Fill in the profile after signup, including preferred sports."""
    try:
        profile = await profile_service.setup_profile(
            session,
            user["id"],
            full_name=payload.full_name,
            bio=payload.bio,
            age=payload.age,
            skill_level=payload.skill_level,
            location=point_from_pair(payload.location) if payload.location else None,
            location_name=payload.location_name,
            preferred_sports=payload.preferred_sports,
        )
        return {"message": "Profile setup completed successfully", "profile": profile}
    except ServiceError as e:
        raise http_error(e)


@router.post("/api/profiles/sports", status_code=201)
async def add_user_sport(
    payload: UserSportCreate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Add a sport preference (or update it if already present)."""
    try:
        return await profile_service.add_user_sport(
            session, user["id"], payload.sport_id, payload.skill_level, payload.preferred
        )
    except ServiceError as e:
        raise http_error(e)


@router.put("/api/profiles/sports")
async def replace_user_sports(
    payload: UserSportsReplace,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Replace every sport preference of the caller."""
    try:
        sports = await profile_service.replace_user_sports(
            session, user["id"], [s.model_dump() for s in payload.sports]
        )
        return {"message": "Sports updated successfully", "user_sports": sports}
    except ServiceError as e:
        raise http_error(e)


@router.delete("/api/profiles/sports/{sport_id}")
async def remove_own_sport(
    sport_id: str,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    await profile_service.remove_user_sport(session, user["id"], sport_id)
    return {"message": "Sport removed successfully"}


@router.get("/api/profiles/{id}")
async def get_profile(id: str, session: AsyncSession = Depends(get_db_session)):
    """Get a profile with its sport preferences."""
    profile = await profile_service.get_profile(session, id)
    if profile is None:
        raise http_error(NotFoundError("Profile not found"))
    return profile


@router.put("/api/profiles/{id}")
async def update_profile(
    id: str,
    payload: ProfileUpdate,
    user: dict = Depends(make_require_owner("id")),
    session: AsyncSession = Depends(get_db_session),
):
    """Partially update the caller's own profile."""
    try:
        return await profile_service.update_profile(
            session, id, payload.model_dump(exclude_unset=True)
        )
    except ServiceError as e:
        raise http_error(e)


@router.delete("/api/profiles/{user_id}/sports/{sport_id}")
async def remove_user_sport(
    user_id: str,
    sport_id: str,
    user: dict = Depends(make_require_owner("user_id")),
    session: AsyncSession = Depends(get_db_session),
):
    await profile_service.remove_user_sport(session, user_id, sport_id)
    return {"message": "Sport removed successfully"}
