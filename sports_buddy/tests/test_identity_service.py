"""
Tests for the identity provider client, with HTTP mocked by httpx.MockTransport.
"""

import json

import httpx
import pytest

from sports_buddy.services import identity_service
from sports_buddy.utils.errors import AuthenticationError, ValidationError


@pytest.fixture
def provider(monkeypatch):
    """
    Route identity_service's HTTP calls to a handler.

    Set ``provider.handler`` to a function taking an ``httpx.Request`` and
    returning an ``httpx.Response``; requests are recorded in ``provider.requests``.
    """

    class Provider:
        handler = None
        requests = []

    def transport_handler(request):
        Provider.requests.append(request)
        return Provider.handler(request)

    real_client = httpx.AsyncClient

    def client_factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(transport_handler)
        return real_client(*args, **kwargs)

    monkeypatch.setattr(identity_service.httpx, "AsyncClient", client_factory)
    Provider.requests = []
    return Provider


def test_check_configuration_lists_missing_vars(monkeypatch):
    monkeypatch.delenv("SUPABASE_ANON_KEY", raising=False)
    monkeypatch.delenv("SUPABASE_SERVICE_ROLE_KEY", raising=False)

    with pytest.raises(RuntimeError) as exc_info:
        identity_service.check_configuration()
    assert "SUPABASE_ANON_KEY" in str(exc_info.value)
    assert "SUPABASE_SERVICE_ROLE_KEY" in str(exc_info.value)
    assert "SUPABASE_URL" not in str(exc_info.value)


@pytest.mark.asyncio
async def test_verify_token_returns_user(provider):
    provider.handler = lambda request: httpx.Response(
        200, json={"id": "u1", "email": "a@example.com", "role": "authenticated"}
    )

    user = await identity_service.verify_token("tok")

    assert user == {"id": "u1", "email": "a@example.com", "role": "authenticated"}
    request = provider.requests[0]
    assert request.url.path == "/auth/v1/user"
    assert request.headers["Authorization"] == "Bearer tok"


@pytest.mark.asyncio
async def test_verify_token_rejected(provider):
    provider.handler = lambda request: httpx.Response(401, json={"msg": "invalid JWT"})
    assert await identity_service.verify_token("bad") is None


@pytest.mark.asyncio
async def test_verify_token_network_error(provider):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    provider.handler = handler
    assert await identity_service.verify_token("tok") is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="<html>gateway</html>"),
        httpx.Response(200, json=["not", "a", "user"]),
    ],
)
async def test_verify_token_malformed_user_body(provider, response):
    provider.handler = lambda request: response
    assert await identity_service.verify_token("tok") is None


@pytest.mark.asyncio
async def test_sign_up_sends_username_metadata(provider):
    provider.handler = lambda request: httpx.Response(
        200, json={"id": "u1", "email": "a@example.com"}
    )

    user = await identity_service.sign_up("a@example.com", "secret1", "alice_99", "Alice")

    assert user == {"id": "u1", "email": "a@example.com"}
    body = json.loads(provider.requests[0].content)
    assert body["data"] == {"username": "alice_99", "full_name": "Alice"}


@pytest.mark.asyncio
async def test_sign_up_error_message(provider):
    provider.handler = lambda request: httpx.Response(
        422, json={"msg": "User already registered"}
    )

    with pytest.raises(ValidationError, match="User already registered"):
        await identity_service.sign_up("a@example.com", "secret1", "alice_99")


@pytest.mark.asyncio
async def test_sign_in_returns_user_and_session(provider):
    provider.handler = lambda request: httpx.Response(
        200,
        json={
            "access_token": "at",
            "refresh_token": "rt",
            "expires_at": 1700000000,
            "user": {"id": "u1", "email": "a@example.com"},
        },
    )

    result = await identity_service.sign_in("a@example.com", "secret1")

    assert result["user"]["id"] == "u1"
    assert result["session"] == {"access_token": "at", "refresh_token": "rt", "expires_at": 1700000000}
    assert provider.requests[0].url.params["grant_type"] == "password"


@pytest.mark.asyncio
async def test_sign_in_bad_credentials(provider):
    provider.handler = lambda request: httpx.Response(
        400, json={"error": "invalid_grant", "error_description": "Invalid login credentials"}
    )

    with pytest.raises(ValidationError, match="Invalid login credentials"):
        await identity_service.sign_in("a@example.com", "wrong")


@pytest.mark.asyncio
async def test_sign_out_ignores_expired_session(provider):
    provider.handler = lambda request: httpx.Response(401, json={"msg": "expired"})
    await identity_service.sign_out("tok")
    assert provider.requests[0].headers["Authorization"] == "Bearer tok"


@pytest.mark.asyncio
async def test_verify_otp(provider):
    provider.handler = lambda request: httpx.Response(
        200, json={"user": {"id": "u1", "email": "a@example.com"}}
    )

    user = await identity_service.verify_otp("hash", "email")

    assert user["id"] == "u1"
    assert json.loads(provider.requests[0].content) == {"token_hash": "hash", "type": "email"}


@pytest.mark.asyncio
async def test_refresh_session_invalid(provider):
    provider.handler = lambda request: httpx.Response(400, json={"msg": "Invalid Refresh Token"})

    with pytest.raises(AuthenticationError, match="Invalid Refresh Token"):
        await identity_service.refresh_session("old")
