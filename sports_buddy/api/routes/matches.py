"""Match route handlers."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from sports_buddy.api.routes import limiter, SEARCH_RATE_LIMIT, MATCH_CREATION_RATE_LIMIT
from sports_buddy.api.auth_dependencies import (
    get_current_user,
    get_current_user_optional,
    require_match_creator,
)
from sports_buddy.api.http_errors import http_error
from sports_buddy.database.db import get_db_session
from sports_buddy.services import match_service
from sports_buddy.models.schemas import (
    MatchCreate,
    MatchUpdate,
    MatchInviteRequest,
    InvitationResponseRequest,
)
from sports_buddy.utils.constants import DEFAULT_SEARCH_RADIUS
from sports_buddy.utils.errors import NotFoundError, ServiceError
from sports_buddy.utils.geo_utils import parse_lat_lng_string

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/matches")
@limiter.limit(SEARCH_RATE_LIMIT)
async def list_matches(
    request: Request,
    status: str = "open",
    sport_id: Optional[str] = None,
    skill_level: Optional[str] = None,
    search: Optional[str] = None,
    search_type: Optional[str] = None,
    location: Optional[str] = Query(None, description="lat,lng"),
    radius: float = Query(DEFAULT_SEARCH_RADIUS, gt=0),
    user: Optional[dict] = Depends(get_current_user_optional),
    session: AsyncSession = Depends(get_db_session),
):
    """
    List upcoming matches, optionally filtered by sport, skill, text and distance.
    """
    try:
        matches = await match_service.list_matches(
            session,
            status=status,
            sport_id=sport_id,
            skill_level=skill_level,
            search=search,
            search_type=search_type,
            location=parse_lat_lng_string(location) if location else None,
            radius=radius,
        )
        return {"matches": matches}
    except ServiceError as e:
        raise http_error(e)


@router.get("/api/matches/user")
async def get_user_matches(
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Matches the caller created and matches they joined."""
    return await match_service.get_user_matches(session, user["id"])


@router.get("/api/matches/{id}")
async def get_match(id: str, session: AsyncSession = Depends(get_db_session)):
    match = await match_service.get_match(session, id)
    if match is None:
        raise http_error(NotFoundError("Match not found"))
    return match


@router.post("/api/matches", status_code=201)
@limiter.limit(MATCH_CREATION_RATE_LIMIT)
async def create_match(
    request: Request,
    payload: MatchCreate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a match; the creator joins it as the first participant."""
    try:
        return await match_service.create_match(
            session,
            creator_id=user["id"],
            sport_id=payload.sport_id,
            title=payload.title,
            description=payload.description,
            location=payload.location,
            location_name=payload.location_name,
            scheduled_at=payload.scheduled_at,
            duration=payload.duration,
            max_participants=payload.max_participants,
            skill_level_required=payload.skill_level_required,
        )
    except ServiceError as e:
        raise http_error(e)


@router.put("/api/matches/{id}")
async def update_match(
    id: str,
    payload: MatchUpdate,
    user: dict = Depends(require_match_creator),
    session: AsyncSession = Depends(get_db_session),
):
    """Partially update a match. Creator only."""
    try:
        return await match_service.update_match(
            session, id, payload.model_dump(exclude_unset=True)
        )
    except ServiceError as e:
        raise http_error(e)


@router.post("/api/matches/{id}/join", status_code=201)
async def join_match(
    id: str,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await match_service.join_match(session, id, user["id"])
    except ServiceError as e:
        raise http_error(e)


@router.post("/api/matches/{id}/leave")
async def leave_match(
    id: str,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    await match_service.leave_match(session, id, user["id"])
    return {"message": "Left match successfully"}


@router.post("/api/matches/{id}/invite", status_code=201)
async def invite_to_match(
    id: str,
    payload: MatchInviteRequest,
    user: dict = Depends(require_match_creator),
    session: AsyncSession = Depends(get_db_session),
):
    """Invite a user to the match. Creator only."""
    try:
        return await match_service.invite_to_match(session, id, payload.user_id)
    except ServiceError as e:
        raise http_error(e)


@router.post("/api/matches/{id}/respond")
async def respond_to_invitation(
    id: str,
    payload: InvitationResponseRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Accept or decline an invitation to the match."""
    try:
        return await match_service.respond_to_invitation(
            session, id, user["id"], payload.response
        )
    except ServiceError as e:
        raise http_error(e)
