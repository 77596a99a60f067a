"""
conftest.py — shared fixtures for all tests.

Strategy:
- Every test gets a fresh in-memory SQLite database (aiosqlite + StaticPool),
  so API tests run the real SQLAlchemy store, models and auth lookup without
  an external PostgreSQL.
- The app's ``get_db`` and ``get_now`` dependencies are overridden: requests
  use the test database and a controllable clock fixed on Wednesday
  2025-01-08 08:00 UTC.
- User fixtures (admin/manager/employee) insert a user and return a dict with
  id, department and ready-to-use Authorization headers.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.clock import get_now
from app.core.security import create_access_token
from app.db.models import Base, User
from app.db.session import get_db
from app.main import app

FIXED_NOW = datetime(2025, 1, 8, 8, 0, 0, tzinfo=timezone.utc)  # Wednesday


class MutableClock:
    """Test clock: ``now`` stays put until the test moves it."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine():
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncSession:
    """Raw DB session for seeding and direct queries in tests."""
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Clock + HTTP client
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock(FIXED_NOW)


@pytest_asyncio.fixture
async def client(session_factory, clock: MutableClock) -> AsyncClient:
    """HTTPX async client bound to the app with test DB and clock."""

    async def _get_test_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_test_db
    app.dependency_overrides[get_now] = lambda: clock.now

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


def auth_headers(user_id: uuid.UUID) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user_id)})}"}


@pytest.fixture
def make_user(session_factory):
    """Factory: insert a user and return {id, username, role, department, headers}."""

    async def _make(
        role: str = "user",
        department: str | None = None,
        is_active: bool = True,
    ) -> dict:
        uid_short = uuid.uuid4().hex[:8]
        async with session_factory() as session:
            user = User(
                username=f"qa_{role}_{uid_short}",
                full_name=f"QA {role.title()} {uid_short}",
                role=role,
                department=department,
                is_active=is_active,
            )
            session.add(user)
            await session.commit()
            await session.refresh(user)
            user_id = user.id

        return {
            "id": user_id,
            "username": user.username,
            "role": role,
            "department": department,
            "headers": auth_headers(user_id),
        }

    return _make


@pytest_asyncio.fixture
async def admin_user(make_user) -> dict:
    return await make_user(role="admin")


@pytest_asyncio.fixture
async def manager_user(make_user) -> dict:
    return await make_user(role="manager", department="Operations")


@pytest_asyncio.fixture
async def employee_user(make_user) -> dict:
    return await make_user(role="user", department="Operations")
