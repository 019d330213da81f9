"""
Shared test fixtures for the PMS core test suite.

Every test gets its own app, wired to a fresh in-memory aiosqlite
database (aiosqlite + AsyncSession, StaticPool).
"""

import os
import sys
import uuid
from datetime import timedelta
from typing import AsyncGenerator

import pytest

# Ensure project root is importable
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# Override environment BEFORE importing application modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CORS_ORIGINS"] = '["*"]'
os.environ["SECRET_KEY"] = "test-secret-key-0123456789abcdef0123456789abcdef"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"

from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings
from app.core.security import PasswordHasher, TokenIssuer
from app.db.base import Base
from app.main import create_app
from app.models.property import Property, UserProperty
from app.models.user import User, UserAbility


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
async def app(settings: Settings) -> AsyncGenerator[FastAPI, None]:
    """Create all tables before usage and drop the engine after."""
    application = create_app(settings)
    engine = application.state.engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield application

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Return a httpx AsyncClient wired to the app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
async def db_session(app: FastAPI) -> AsyncGenerator[AsyncSession, None]:
    """Return a raw database session for direct queries in tests."""
    async with app.state.session_factory() as session:
        yield session


@pytest.fixture
def issuer(app: FastAPI) -> TokenIssuer:
    return app.state.token_issuer


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


# ── Seed helpers ────────────────────────────────────────────────────
@pytest.fixture
def create_user(db_session: AsyncSession, hasher: PasswordHasher):
    async def _create(
        email: str = "user@example.com",
        password: str = "secret1",
        name: str = "User",
        abilities: tuple[str, ...] = (),
        properties: tuple[uuid.UUID, ...] = (),
        status: str = "active",
    ) -> User:
        user = User(name=name, email=email, password_hash=hasher.hash(password), status=status)
        db_session.add(user)
        await db_session.flush()
        for key in abilities:
            db_session.add(UserAbility(user_id=user.id, ability=key))
        for property_id in properties:
            db_session.add(UserProperty(user_id=user.id, property_id=property_id))
        await db_session.commit()
        return user

    return _create


@pytest.fixture
def create_property(db_session: AsyncSession):
    async def _create(name: str = "Grand Hotel") -> Property:
        prop = Property(name=name, city="Lisbon")
        db_session.add(prop)
        await db_session.commit()
        return prop

    return _create


@pytest.fixture
def auth_headers(issuer: TokenIssuer):
    """Bearer header for a user, minted directly (no login round-trip)."""

    def _headers(user: User, abilities: tuple[str, ...] = ()) -> dict[str, str]:
        token = issuer.issue_access_token(
            {"sub": str(user.id), "email": user.email, "abilities": list(abilities)},
            timedelta(minutes=5),
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers
