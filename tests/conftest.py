import asyncio
from datetime import timedelta

import pytest
from argon2 import PasswordHasher
from fastapi.testclient import TestClient
from sqlalchemy.pool import NullPool

from app.auth import password as password_module
from app.auth.jwt import TokenIssuer
from app.core.config import SigningConfig
from app.core.database import Base, build_engine, build_session_maker, get_db
from app.main import create_app
from app.models.user import User, UserRole, UserStatus

PASSWORD = "valid123"

TEST_SIGNING = SigningConfig(
    access_secret="test-access-secret",
    refresh_secret="test-refresh-secret",
    decoy_secret="test-decoy-secret",
    access_ttl=timedelta(hours=10),
    refresh_ttl=timedelta(hours=24),
)

SEED_USERS = {
    "admin": (UserRole.ADMIN, UserStatus.ACTIVE),
    "supervisor": (UserRole.SUPERVISOR, UserStatus.ACTIVE),
    "technician": (UserRole.TECHNICIAN, UserStatus.ACTIVE),
    "viewer": (UserRole.VIEWER, UserStatus.ACTIVE),
    "dormant": (UserRole.TECHNICIAN, UserStatus.INACTIVE),
}


@pytest.fixture(autouse=True)
def fast_hasher(monkeypatch):
    """Argon2 with minimal cost so the suite stays fast."""
    monkeypatch.setattr(password_module, "ph", PasswordHasher(time_cost=1, memory_cost=8, parallelism=1))


@pytest.fixture
def issuer():
    return TokenIssuer(TEST_SIGNING)


@pytest.fixture
def session_maker(tmp_path, fast_hasher):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)

    async def setup():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(setup())
    yield build_session_maker(engine)
    asyncio.run(engine.dispose())


@pytest.fixture
def users(session_maker):
    """Seeded principals keyed by username: {username: id}."""

    async def seed():
        ids = {}
        async with session_maker() as session:
            for username, (role, status) in SEED_USERS.items():
                user = User(username=username, full_name=username.title(), role=role, status=status)
                user.set_password(PASSWORD)
                session.add(user)
                await session.commit()
                ids[username] = user.id
        return ids

    return asyncio.run(seed())


@pytest.fixture
def app(session_maker):
    application = create_app(signing=TEST_SIGNING)

    async def override_get_db():
        async with session_maker() as session:
            yield session

    application.dependency_overrides[get_db] = override_get_db
    return application


@pytest.fixture
def client(app):
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def auth_headers(users, issuer):
    """Return bearer headers for a seeded username."""

    def make(username: str) -> dict[str, str]:
        role = SEED_USERS[username][0]
        token = issuer.issue_access_token(users[username], role.value).token
        return {"Authorization": f"Bearer {token}"}

    return make
