"""Authentication route handlers (delegate to the identity provider)."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from sports_buddy.api.routes import limiter, AUTH_RATE_LIMIT
from sports_buddy.api.auth_dependencies import security
from sports_buddy.api.http_errors import http_error
from sports_buddy.database.db import get_db_session
from sports_buddy.services import identity_service, profile_service, rate_limiting_service
from sports_buddy.models.schemas import (
    SignUpRequest,
    SignInRequest,
    VerifyEmailRequest,
    RefreshTokenRequest,
)
from sports_buddy.utils.errors import ServiceError, ValidationError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/auth/signup", status_code=201)
@limiter.limit(AUTH_RATE_LIMIT)
async def signup(
    request: Request,
    payload: SignUpRequest,
    session: AsyncSession = Depends(get_db_session),
):
    """
    Create an account with the identity provider and its profile row.
    The username is already validated and normalized by the request model.
    """
    try:
        if await profile_service.is_username_taken(session, payload.username):
            raise ValidationError("Username already taken")

        user = await identity_service.sign_up(
            payload.email, payload.password, payload.username, payload.full_name
        )
        await profile_service.create_profile(
            session, user["id"], payload.username, payload.full_name
        )
        logger.info(f"User {user['id']} signed up as {payload.username}")
        return {
            "message": "User created successfully. Please check your email for verification.",
            "user": user,
        }
    except ServiceError as e:
        raise http_error(e)


@router.post("/api/auth/signin")
@limiter.limit(AUTH_RATE_LIMIT)
async def signin(
    request: Request,
    payload: SignInRequest,
    session: AsyncSession = Depends(get_db_session),
):
    """
    Password sign-in. Repeated failures for one email are blocked for a while.
    """
    try:
        await rate_limiting_service.check_signin_allowed(payload.email)
        try:
            result = await identity_service.sign_in(payload.email, payload.password)
        except ServiceError:
            attempts = await rate_limiting_service.record_failed_signin(payload.email)
            logger.warning(f"Failed sign-in for {payload.email} ({attempts} recent failures)")
            raise
        await rate_limiting_service.clear_failed_signins(payload.email)

        profile = await profile_service.get_profile(session, result["user"]["id"])
        return {
            "message": "Signed in successfully",
            "user": result["user"],
            "session": result["session"],
            "needs_profile_setup": profile_service.needs_profile_setup(profile),
        }
    except ServiceError as e:
        raise http_error(e)


@router.post("/api/auth/signout")
async def signout(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
):
    """Revoke the caller's session, if a token was sent."""
    try:
        if credentials is not None and credentials.credentials:
            await identity_service.sign_out(credentials.credentials)
        return {"message": "Signed out successfully"}
    except ServiceError as e:
        raise http_error(e)


@router.post("/api/auth/verify-email")
@limiter.limit(AUTH_RATE_LIMIT)
async def verify_email(request: Request, payload: VerifyEmailRequest):
    """Confirm an email verification token."""
    try:
        user = await identity_service.verify_otp(payload.token, payload.type)
        return {"message": "Email verified successfully", "user": user}
    except ServiceError as e:
        raise http_error(e)


@router.post("/api/auth/refresh")
@limiter.limit(AUTH_RATE_LIMIT)
async def refresh_token(request: Request, payload: RefreshTokenRequest):
    """Exchange a refresh token for a new session."""
    try:
        result = await identity_service.refresh_session(payload.refresh_token)
        return {
            "message": "Token refreshed successfully",
            "user": result["user"],
            "session": result["session"],
        }
    except ServiceError as e:
        raise http_error(e)
