"""Location and proximity search route handlers."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from sports_buddy.api.routes import limiter, SEARCH_RATE_LIMIT
from sports_buddy.api.auth_dependencies import get_current_user, get_current_user_optional
from sports_buddy.api.http_errors import http_error
from sports_buddy.database.db import get_db_session
from sports_buddy.services import location_service
from sports_buddy.models.schemas import LocationUpdate
from sports_buddy.utils.constants import DEFAULT_SEARCH_RADIUS, POPULAR_AREAS_RADIUS
from sports_buddy.utils.datetime_utils import parse_iso_datetime
from sports_buddy.utils.errors import ServiceError, ValidationError
from sports_buddy.utils.geo_utils import make_point, parse_coordinates

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/location/nearby/users")
@limiter.limit(SEARCH_RATE_LIMIT)
async def nearby_users(
    request: Request,
    latitude: Optional[str] = None,
    longitude: Optional[str] = None,
    radius: float = Query(DEFAULT_SEARCH_RADIUS, gt=0),
    sport_id: Optional[str] = None,
    skill_level: Optional[str] = None,
    user: Optional[dict] = Depends(get_current_user_optional),
    session: AsyncSession = Depends(get_db_session),
):
    """Users within ``radius`` meters, nearest first."""
    try:
        origin = parse_coordinates(latitude, longitude)
        return await location_service.find_nearby_users(
            session,
            origin,
            radius=radius,
            sport_id=sport_id,
            skill_level=skill_level,
            exclude_user_id=user["id"] if user else None,
        )
    except ServiceError as e:
        raise http_error(e)


@router.get("/api/location/nearby/matches")
@limiter.limit(SEARCH_RATE_LIMIT)
async def nearby_matches(
    request: Request,
    latitude: Optional[str] = None,
    longitude: Optional[str] = None,
    radius: float = Query(DEFAULT_SEARCH_RADIUS, gt=0),
    sport_id: Optional[str] = None,
    skill_level: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    user: Optional[dict] = Depends(get_current_user_optional),
    session: AsyncSession = Depends(get_db_session),
):
    """Open upcoming matches within ``radius`` meters, nearest first."""
    try:
        origin = parse_coordinates(latitude, longitude)
        try:
            start = parse_iso_datetime(date_from)
            end = parse_iso_datetime(date_to)
        except ValueError:
            raise ValidationError("Invalid date format")
        return await location_service.find_nearby_matches(
            session,
            origin,
            radius=radius,
            sport_id=sport_id,
            skill_level=skill_level,
            date_from=start,
            date_to=end,
        )
    except ServiceError as e:
        raise http_error(e)


@router.put("/api/location/update")
async def update_location(
    payload: LocationUpdate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Set the caller's location and label."""
    try:
        profile = await location_service.update_user_location(
            session,
            user["id"],
            make_point(payload.longitude, payload.latitude),
            payload.location_name,
        )
        return {"message": "Location updated successfully", "profile": profile}
    except ServiceError as e:
        raise http_error(e)


@router.get("/api/location/popular-areas")
async def popular_areas(
    latitude: Optional[str] = None,
    longitude: Optional[str] = None,
    radius: float = Query(POPULAR_AREAS_RADIUS, gt=0),
    session: AsyncSession = Depends(get_db_session),
):
    """Location labels ranked by how many matches and users share them."""
    try:
        origin = None
        if latitude not in (None, "") or longitude not in (None, ""):
            origin = parse_coordinates(latitude, longitude)
        areas = await location_service.get_popular_areas(session, location=origin, radius=radius)
        return {"areas": areas}
    except ServiceError as e:
        raise http_error(e)
