# marketsync/database.py

from contextlib import asynccontextmanager
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import declarative_base

from marketsync.core.config import get_settings

Base = declarative_base()

_engine: Optional[AsyncEngine] = None
_sessionmaker: Optional[async_sessionmaker] = None


def normalize_database_url(database_url: str) -> str:
    # Convert postgresql:// to postgresql+asyncpg:// for async support
    if database_url.startswith('postgresql://'):
        return database_url.replace('postgresql://', 'postgresql+asyncpg://', 1)
    return database_url


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        database_url = get_settings().DATABASE_URL
        if not database_url:
            raise ValueError("DATABASE_URL is not set in environment variables")

        database_url = normalize_database_url(database_url)
        engine_kwargs = {"echo": False, "future": True}
        if database_url.startswith("postgresql"):
            engine_kwargs.update(pool_size=10, max_overflow=20, pool_timeout=30, pool_recycle=1800)
        _engine = create_async_engine(database_url, **engine_kwargs)
    return _engine


def get_sessionmaker() -> async_sessionmaker:
    global _sessionmaker
    if _sessionmaker is None:
        _sessionmaker = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False
        )
    return _sessionmaker


@asynccontextmanager
async def get_session() -> AsyncSession:
    session = get_sessionmaker()()
    try:
        yield session
    finally:
        await session.close()


async def get_db():
    """FastAPI dependency yielding a session per request."""
    async with get_session() as session:
        yield session
