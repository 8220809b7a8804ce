"""
Pytest fixtures for EventGate tests.

Each test gets its own file-based SQLite database so that the audit
recorder's sessions and the test's session see the same data.
"""

import uuid
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy import event as sa_event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from eventgate.config import Settings
from eventgate.kernel.models import Base, Event, Role, Rule, User


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """Create a test database engine."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'eventgate_test.db'}",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=NullPool,
    )

    # Foreign keys stay off so tests can build rules whose event is gone
    @sa_event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(db_engine) -> async_sessionmaker:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def settings() -> Settings:
    """Settings with no retry delay."""
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        audit_retry_backoff=(0.0,),
        audit_drain_timeout_seconds=5.0,
    )


async def _make_user(session: AsyncSession, role=None, email=None) -> User:
    user = User(
        id=uuid.uuid4(),
        email=email or f"user-{uuid.uuid4().hex[:8]}@example.com",
        name="Test User",
        role=role,
    )
    session.add(user)
    await session.commit()
    return user


@pytest.fixture
def make_user(db_session: AsyncSession):
    """Factory for extra users: ``await make_user(role="viewer")``."""
    async def factory(role=None, email=None) -> User:
        return await _make_user(db_session, role=role, email=email)
    return factory


@pytest_asyncio.fixture
async def creator(db_session: AsyncSession) -> User:
    """The user who creates the test event."""
    return await _make_user(db_session, role=Role.MEMBER.value, email="creator@example.com")


@pytest_asyncio.fixture
async def outsider(db_session: AsyncSession) -> User:
    """A user with no grants and no global role."""
    return await _make_user(db_session, email="outsider@example.com")


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> User:
    """A global admin."""
    return await _make_user(db_session, role=Role.ADMIN.value, email="admin@example.com")


@pytest_asyncio.fixture
async def test_event(db_session: AsyncSession, creator: User) -> Event:
    """An event owned by the acme team."""
    event = Event(
        id=uuid.uuid4(),
        team_slug="acme",
        created_by_id=creator.id,
        type="checkout_completed",
        label="Checkout completed",
        event_schema={"type": "object"},
    )
    db_session.add(event)
    await db_session.commit()
    return event


@pytest_asyncio.fixture
async def test_rule(db_session: AsyncSession, test_event: Event) -> Rule:
    """A rule on the test event."""
    rule = Rule(
        id=uuid.uuid4(),
        event_id=test_event.id,
        name="amount_positive",
        error_message="amount must be positive",
        query="SELECT 1 WHERE amount <= 0",
    )
    db_session.add(rule)
    await db_session.commit()
    return rule
