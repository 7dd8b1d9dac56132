"""Unit tests for session helpers and schema creation."""

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from modules.notifier.core.database import create_schema, ping, session_scope
from modules.notifier.models.notification import Notification, NotificationStatus, NotificationType


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    await engine.dispose()


@pytest.fixture
async def factory(engine):
    await create_schema(engine)
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def _notification() -> Notification:
    return Notification(
        user_id="user-1",
        type=NotificationType.EMAIL_VERIFICATION,
        recipient="jane@acme.fr",
        status=NotificationStatus.PENDING,
        payload={},
    )


class TestCreateSchema:
    async def test_returns_table_names(self, engine):
        tables = await create_schema(engine)
        assert "notifications" in tables
        assert tables == sorted(tables)

    async def test_is_idempotent(self, engine):
        assert await create_schema(engine) == await create_schema(engine)


class TestSessionScope:
    async def test_commits_on_success(self, factory):
        async with session_scope(factory) as session:
            session.add(_notification())

        async with factory() as session:
            rows = (await session.execute(select(Notification))).scalars().all()
        assert len(rows) == 1

    async def test_rolls_back_on_error(self, factory):
        with pytest.raises(RuntimeError):
            async with session_scope(factory) as session:
                session.add(_notification())
                await session.flush()
                raise RuntimeError("abort")

        async with factory() as session:
            rows = (await session.execute(select(Notification))).scalars().all()
        assert rows == []


async def test_ping_reports_latency(factory):
    assert await ping(factory) >= 0
