"""
Fixtures for database-backed tests.

Each test gets a fresh in-memory SQLite database with the full schema.
"""

from collections.abc import AsyncIterator, Awaitable, Callable

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from ib_engine.models import Base, User


@pytest_asyncio.fixture
async def engine() -> AsyncIterator[AsyncEngine]:
    """In-memory database shared by every session of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine) -> async_sessionmaker[AsyncSession]:
    """Session factory matching production session options."""
    return async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest_asyncio.fixture
async def session(session_maker) -> AsyncIterator[AsyncSession]:
    """Database session for one test."""
    async with session_maker() as session:
        yield session


@pytest.fixture
def create_user(
    session,
) -> Callable[..., Awaitable[User]]:
    """Factory inserting users into the test database."""
    counter = {"n": 0}

    async def factory(
        referrer: User | None = None,
        referral_code: str | None = None,
        username: str | None = None,
    ) -> User:
        counter["n"] += 1
        user = User(
            username=username or f"user{counter['n']}",
            email=f"user{counter['n']}@example.com",
            referral_code=referral_code,
            referrer_id=referrer.id if referrer else None,
        )
        session.add(user)
        await session.commit()
        return user

    return factory


@pytest.fixture
def create_chain(create_user) -> Callable[[int], Awaitable[list[User]]]:
    """
    Factory building a straight referral line.

    Returns users top first; the last user is the trader whose upline has
    length - 1 levels.
    """
    async def factory(length: int) -> list[User]:
        users: list[User] = []
        referrer = None
        for _ in range(length):
            referrer = await create_user(referrer=referrer)
            users.append(referrer)
        return users

    return factory
