"""
Identity provider client (Supabase Auth REST API).

Signup, password sign-in, sign-out, email verification, refresh and token
verification are delegated to the provider. This module only shapes requests
and responses; profile rows are owned by profile_service.
"""

import logging
import os
from typing import Any, Dict, Optional

import httpx

from sports_buddy.utils.errors import AuthenticationError, ValidationError

logger = logging.getLogger(__name__)

REQUIRED_ENV_VARS = ("SUPABASE_URL", "SUPABASE_ANON_KEY", "SUPABASE_SERVICE_ROLE_KEY")
REQUEST_TIMEOUT = 10.0


def check_configuration() -> None:
    """
    Verify the provider credentials are configured.

    Raises:
        RuntimeError: Naming every missing environment variable
    """
    missing = [name for name in REQUIRED_ENV_VARS if not os.getenv(name)]
    if missing:
        raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")


def _auth_url(path: str) -> str:
    return f"{os.getenv('SUPABASE_URL', '').rstrip('/')}/auth/v1/{path}"


def _headers(access_token: Optional[str] = None) -> Dict[str, str]:
    key = os.getenv("SUPABASE_ANON_KEY", "")
    return {
        "apikey": key,
        "Authorization": f"Bearer {access_token or key}",
        "Content-Type": "application/json",
    }


def _error_message(response: httpx.Response) -> str:
    """Pull the provider's error text out of an error response."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"Identity provider error ({response.status_code})"
    for field in ("error_description", "msg", "message", "error"):
        if body.get(field):
            return str(body[field])
    return f"Identity provider error ({response.status_code})"


async def _post(
    path: str,
    payload: Dict[str, Any],
    params: Optional[Dict[str, str]] = None,
    access_token: Optional[str] = None,
) -> httpx.Response:
    async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
        return await client.post(
            _auth_url(path), json=payload, params=params, headers=_headers(access_token)
        )


def _session_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "access_token": data.get("access_token"),
        "refresh_token": data.get("refresh_token"),
        "expires_at": data.get("expires_at"),
    }


def _user_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    return {"id": data.get("id"), "email": data.get("email")}


async def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Resolve a bearer token to the provider's user.

    Returns:
        Dict with id, email and role, or None if the token is invalid or expired
    """
    try:
        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
            response = await client.get(_auth_url("user"), headers=_headers(token))
    except httpx.RequestError as e:
        logger.error(f"Token verification request failed: {e}")
        return None

    if response.status_code != 200:
        logger.debug(f"Token rejected by identity provider: {response.status_code}")
        return None

    try:
        user = response.json()
    except ValueError:
        logger.error("Identity provider returned a non-JSON user response")
        return None
    if not isinstance(user, dict) or not user.get("id"):
        return None
    return {"id": user["id"], "email": user.get("email"), "role": user.get("role")}


async def sign_up(
    email: str, password: str, username: str, full_name: Optional[str] = None
) -> Dict[str, Any]:
    """
    Register a new user with the provider.

    Returns:
        Dict with the new user's id and email

    Raises:
        ValidationError: If the provider refuses the signup
    """
    response = await _post(
        "signup",
        {
            "email": email,
            "password": password,
            "data": {"username": username, "full_name": full_name},
        },
    )
    if response.status_code >= 400:
        raise ValidationError(_error_message(response))

    data = response.json()
    # Auto-confirm projects wrap the user next to a session
    user = data.get("user") or data
    if not user.get("id"):
        raise ValidationError("Signup failed")
    return _user_dict(user)


async def sign_in(email: str, password: str) -> Dict[str, Any]:
    """
    Password sign-in.

    Returns:
        Dict with user {id, email} and session {access_token, refresh_token, expires_at}

    Raises:
        ValidationError: If the credentials are rejected
    """
    response = await _post(
        "token", {"email": email, "password": password}, params={"grant_type": "password"}
    )
    if response.status_code >= 400:
        raise ValidationError(_error_message(response))

    data = response.json()
    return {"user": _user_dict(data.get("user") or {}), "session": _session_dict(data)}


async def sign_out(access_token: str) -> None:
    """
    Revoke the session behind ``access_token``.

    Raises:
        ValidationError: If the provider refuses the logout
    """
    response = await _post("logout", {}, access_token=access_token)
    if response.status_code >= 400 and response.status_code != 401:
        raise ValidationError(_error_message(response))


async def verify_otp(token: str, otp_type: str) -> Dict[str, Any]:
    """
    Confirm an email verification token.

    Returns:
        Dict with the verified user's id and email

    Raises:
        ValidationError: If the token is rejected
    """
    response = await _post("verify", {"token_hash": token, "type": otp_type})
    if response.status_code >= 400:
        raise ValidationError(_error_message(response))

    data = response.json()
    user = data.get("user") or {}
    if not user.get("id"):
        raise ValidationError("Verification failed")
    return _user_dict(user)


async def refresh_session(refresh_token: str) -> Dict[str, Any]:
    """
    Exchange a refresh token for a new session.

    Raises:
        AuthenticationError: If the refresh token is invalid
    """
    response = await _post(
        "token", {"refresh_token": refresh_token}, params={"grant_type": "refresh_token"}
    )
    if response.status_code >= 400:
        raise AuthenticationError(_error_message(response))

    data = response.json()
    if not data.get("access_token") or not data.get("user"):
        raise AuthenticationError("Invalid refresh token")
    return {"user": _user_dict(data["user"]), "session": _session_dict(data)}
