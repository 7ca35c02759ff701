# tests/conftest.py
from datetime import datetime

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from marketsync import models  # noqa: F401
from marketsync.core.config import Settings
from marketsync.database import Base
from marketsync.models.account import SellerAccount

# In-memory SQLite shared by every session of a test
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture
def settings():
    """Provide test settings"""
    return Settings(
        DATABASE_URL=TEST_DATABASE_URL,
        EBAY_CLIENT_ID="test-client-id",
        EBAY_CLIENT_SECRET="test-client-secret",
        EBAY_RU_NAME="test-ru-name",
        EBAY_SANDBOX_MODE=False,
        PAGE_DELAY_SECONDS=0.5,
    )


class SleepRecorder:
    """Stands in for asyncio.sleep and records requested delays"""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture
def fake_sleep():
    return SleepRecorder()


@pytest.fixture(scope="function")
async def test_engine():
    """Create and configure the test database engine (function-scoped)."""
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool)

    # Let SQLAlchemy own BEGIN so SAVEPOINTs behave on SQLite
    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    """Provide a database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def make_account(db_session):
    """Factory for persisted seller accounts"""

    async def _make(name="seller-one", **overrides):
        values = {
            "name": name,
            "marketplaces": ["EBAY_US"],
            "access_token": "stored-access-token",
            "refresh_token": "stored-refresh-token",
            "expires_in": 7200,
            "token_issued_at": datetime(2025, 11, 10, 11, 0, 0),
            "initial_sync_date": datetime(2025, 11, 1),
        }
        values.update(overrides)
        account = SellerAccount(**values)
        db_session.add(account)
        await db_session.commit()
        await db_session.refresh(account)
        return account

    return _make
