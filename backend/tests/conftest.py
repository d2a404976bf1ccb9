"""
Pytest configuration and fixtures for Wheeldo tests.

Tests run against a throwaway SQLite file by default. Point
WHEELDO_TEST_DATABASE_URL at a Postgres database to run them against the
production dialect instead.
"""

import os
import pytest
import pytest_asyncio
from fastapi import Header
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel

import wheeldo.models  # noqa: F401
from wheeldo.main import app
from wheeldo.auth import AuthenticatedUser, verify_token
from wheeldo.database import get_session
from wheeldo.exceptions import UnauthorizedError
from wheeldo.models import User
from wheeldo.services.notifications import NotificationDispatcher, get_dispatcher


TEST_DATABASE_URL = os.environ.get("WHEELDO_TEST_DATABASE_URL")


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create a test database engine."""
    url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'wheeldo_test.db'}"
    engine = create_async_engine(url, echo=False)

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    # Drop all tables after tests
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_maker(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture(scope="function")
async def test_session(session_maker):
    """Create a test database session."""
    async with session_maker() as session:
        yield session


@pytest.fixture
def dispatcher(session_maker):
    """Notification dispatcher writing to the test database."""
    return NotificationDispatcher(session_factory=session_maker)


@pytest_asyncio.fixture(scope="function")
async def client(session_maker, dispatcher):
    """
    Create an async test client with test database.

    Requests authenticate as whatever uid is sent in the X-User-Id
    header; omit it to act anonymously.
    """

    async def override_get_session():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def override_verify_token(x_user_id: str | None = Header(default=None)):
        if not x_user_id:
            raise UnauthorizedError()
        return AuthenticatedUser(
            uid=x_user_id,
            email=f"{x_user_id}@example.com",
            name=x_user_id.capitalize(),
        )

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[verify_token] = override_verify_token
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# =============================================================================
# Service-level fixtures
# =============================================================================

@pytest_asyncio.fixture
async def users(test_session):
    """Three users: an owner, an editor-to-be and a viewer-to-be."""
    rows = [
        User(id="alice", email="alice@example.com", name="Alice"),
        User(id="bob", email="bob@example.com", name="Bob"),
        User(id="carol", email="carol@example.com", name="Carol"),
    ]
    test_session.add_all(rows)
    await test_session.flush()
    return {user.id: user for user in rows}
