"""
Authentication dependencies for FastAPI routes.

Bearer tokens are verified against the identity provider. Handlers receive
the caller as ``{"id", "email", "role"}``.
"""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sports_buddy.api.http_errors import TaggedHTTPException
from sports_buddy.database.db import get_db_session
from sports_buddy.services import identity_service, match_service
from sports_buddy.utils.errors import AuthenticationError, ForbiddenError, NotFoundError

# Missing or malformed headers are answered with our own 401
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return TaggedHTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        code=AuthenticationError.code,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> dict:
    """
    Dependency to get the current authenticated user from the bearer token.

    Args:
        credentials: HTTP Bearer token credentials

    Returns:
        User dictionary with id, email and role

    Raises:
        HTTPException: 401 if the header is missing or the token is rejected
    """
    if credentials is None or not credentials.credentials:
        raise _unauthorized("Missing or invalid authorization header")

    user = await identity_service.verify_token(credentials.credentials)
    if user is None:
        raise _unauthorized("Invalid or expired token")
    return user


async def get_current_user_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[dict]:
    """
    Optional dependency to get the current authenticated user.
    Returns None if no token is provided or token is invalid.
    """
    if credentials is None:
        return None

    try:
        return await get_current_user(credentials)
    except HTTPException:
        return None


def make_require_owner(param_name: str = "id"):
    """
    Require the caller to be the user named by the ``param_name`` path parameter.
    """

    async def _dep(request: Request, user: dict = Depends(get_current_user)) -> dict:
        if request.path_params.get(param_name) != user["id"]:
            raise TaggedHTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access denied",
                code=ForbiddenError.code,
            )
        return user

    return _dep


async def require_match_creator(
    id: str,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
) -> dict:
    """Require the caller to have created the match in the ``id`` path parameter."""
    creator_id = await match_service.get_match_creator_id(session, id)
    if creator_id is None:
        raise TaggedHTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Match not found", code=NotFoundError.code
        )
    if creator_id != user["id"]:
        raise TaggedHTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the match creator can perform this action",
            code=ForbiddenError.code,
        )
    return user
