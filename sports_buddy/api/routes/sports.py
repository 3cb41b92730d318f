"""Sports catalog route handlers."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from sports_buddy.api.http_errors import http_error
from sports_buddy.database.db import get_db_session
from sports_buddy.services import sport_service
from sports_buddy.utils.errors import NotFoundError

router = APIRouter()


@router.get("/api/sports")
async def list_sports(session: AsyncSession = Depends(get_db_session)):
    """List all sports ordered by name."""
    return await sport_service.list_sports(session)


@router.get("/api/sports/{id}")
async def get_sport(id: str, session: AsyncSession = Depends(get_db_session)):
    sport = await sport_service.get_sport(session, id)
    if sport is None:
        raise http_error(NotFoundError("Sport not found"))
    return sport
