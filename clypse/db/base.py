from __future__ import annotations

from sqlalchemy import MetaData
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

ASYNC_DRIVER = "postgresql+asyncpg"

# The kv_store table and its migration both register here.
metadata: MetaData = MetaData()


def to_async_url(url: str) -> str:
    """Rewrite any PostgreSQL URL (postgres://, postgresql+psycopg2://, ...) for asyncpg."""
    parsed = make_url(url)
    if parsed.drivername == ASYNC_DRIVER:
        return url
    return parsed.set(drivername=ASYNC_DRIVER).render_as_string(hide_password=False)


def make_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Engine for the SQL store; the store owns it and disposes it on close."""
    return create_async_engine(to_async_url(url), echo=echo, pool_pre_ping=True)


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # rows stay readable after commit
    return async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


async def create_tables(engine: AsyncEngine) -> None:
    """Create kv_store without alembic (tests and throwaway databases)."""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
