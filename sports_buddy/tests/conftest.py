"""
Shared pytest configuration for the API tests.

Service tests run against a fresh in-memory SQLite database per test. Route
tests run against a file-backed SQLite database (one per test) so the
TestClient's event loop can open its own connections, with the identity
provider replaced by a token -> user map.
"""

import os

# Must be set before the app modules are imported
os.environ["ENV"] = "test"
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SUPABASE_URL", "http://identity.test")
os.environ.setdefault("SUPABASE_ANON_KEY", "anon-key")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "service-key")
os.environ.pop("REDIS_HOST", None)

import asyncio
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from sports_buddy.database.db import Base, get_db_session
from sports_buddy.services import identity_service, rate_limiting_service, sport_service
from sports_buddy.tests.factories import create_profile


# ============================================================================
# Service fixtures
# ============================================================================

@pytest_asyncio.fixture
async def db_session():
    """Create a test database session on a fresh in-memory database."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_maker() as session:
        yield session

    await engine.dispose()


@pytest.fixture(autouse=True)
def clear_rate_limit_storage():
    """Clear sign-in failure counters before each test to ensure clean state."""
    rate_limiting_service.reset_signin_attempt_storage()
    yield
    rate_limiting_service.reset_signin_attempt_storage()


# ============================================================================
# Route fixtures
# ============================================================================

class ApiHarness:
    """TestClient plus direct database access and fake identity users."""

    def __init__(self, client: TestClient, session_maker):
        self.client = client
        self.session_maker = session_maker
        self.users = {}

    def run(self, func):
        """Run ``func(session)`` in its own transaction and return its result."""

        async def _runner():
            async with self.session_maker() as session:
                result = await func(session)
                await session.commit()
                return result

        return asyncio.run(_runner())

    def add_user(self, user_id: str, username: str, **profile_fields) -> dict:
        """Register a token for ``user_id`` and create their profile."""
        self.users[f"token-{user_id}"] = {
            "id": user_id,
            "email": f"{username}@example.com",
            "role": "authenticated",
        }
        self.run(lambda s: create_profile(s, user_id, username, **profile_fields))
        return self.auth(user_id)

    def auth(self, user_id: str) -> dict:
        return {"Authorization": f"Bearer token-{user_id}"}

    def sport_id(self, name: str) -> str:
        async def _lookup(session):
            for sport in await sport_service.list_sports(session):
                if sport["name"] == name:
                    return sport["id"]
            raise LookupError(name)

        return self.run(_lookup)


@pytest.fixture
def api(tmp_path, monkeypatch):
    """
    API harness on a file-backed database seeded with the default sports.

    Tokens look like ``token-<user_id>``; unknown tokens are rejected.
    """
    from sports_buddy.api.main import app

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'api.db'}", poolclass=NullPool)
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def _setup():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with session_maker() as session:
            await sport_service.ensure_default_sports(session)
            await session.commit()

    asyncio.run(_setup())

    async def override_get_db_session():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    harness = ApiHarness(TestClient(app), session_maker)

    async def fake_verify_token(token):
        return harness.users.get(token)

    monkeypatch.setattr(identity_service, "verify_token", fake_verify_token)
    app.dependency_overrides[get_db_session] = override_get_db_session
    yield harness
    app.dependency_overrides.clear()
