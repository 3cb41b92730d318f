"""Friend system route handlers. Every endpoint requires authentication."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from sports_buddy.api.auth_dependencies import get_current_user
from sports_buddy.api.http_errors import http_error
from sports_buddy.database.db import get_db_session
from sports_buddy.services import friend_service
from sports_buddy.models.schemas import FriendRequestCreate
from sports_buddy.utils.constants import DEFAULT_SUGGESTION_RADIUS_KM
from sports_buddy.utils.errors import ServiceError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/friends/request", status_code=201)
async def send_friend_request(
    payload: FriendRequestCreate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Send a friend request to another user."""
    try:
        connection = await friend_service.send_friend_request(
            session, user["id"], payload.friend_id
        )
        return {"message": "Friend request sent successfully", "connection": connection}
    except ServiceError as e:
        raise http_error(e)


@router.put("/api/friends/request/{connection_id}/accept")
async def accept_friend_request(
    connection_id: str,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Accept a pending friend request addressed to the caller."""
    try:
        connection = await friend_service.accept_friend_request(
            session, connection_id, user["id"]
        )
        return {"message": "Friend request accepted", "connection": connection}
    except ServiceError as e:
        raise http_error(e)


@router.delete("/api/friends/request/{connection_id}/reject")
async def reject_friend_request(
    connection_id: str,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Reject (delete) a pending friend request addressed to the caller."""
    await friend_service.reject_friend_request(session, connection_id, user["id"])
    return {"message": "Friend request rejected"}


@router.get("/api/friends")
async def get_friends(
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    return {"friends": await friend_service.get_friends(session, user["id"])}


@router.get("/api/friends/requests")
async def get_pending_requests(
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    return {"requests": await friend_service.get_pending_requests(session, user["id"])}


@router.get("/api/friends/search")
async def search_users(
    query: Optional[str] = None,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Search users by username, annotated with the caller's relationship to each."""
    try:
        return {"users": await friend_service.search_users(session, user["id"], query)}
    except ServiceError as e:
        raise http_error(e)


@router.get("/api/friends/suggestions")
async def get_friend_suggestions(
    radius: float = Query(DEFAULT_SUGGESTION_RADIUS_KM, gt=0, description="km"),
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Nearby users ranked by distance, shared sports, shared friends and skill."""
    try:
        suggestions = await friend_service.get_friend_suggestions(session, user["id"], radius)
        return {"suggestions": suggestions}
    except ServiceError as e:
        raise http_error(e)


@router.delete("/api/friends/{friend_id}")
async def remove_friend(
    friend_id: str,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    await friend_service.remove_friend(session, user["id"], friend_id)
    return {"message": "Friend removed successfully"}
