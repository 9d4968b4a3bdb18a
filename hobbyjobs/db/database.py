"""
Database Connection and Session Management
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from hobbyjobs.core.config import settings

Base = declarative_base()


def build_engine(database_url: str | None = None, **engine_kwargs) -> AsyncEngine:
    """יצירת engine אסינכרוני עם pool_pre_ping: חיבורים מתים מזוהים לפני שימוש"""
    return create_async_engine(
        database_url or settings.DATABASE_URL,
        echo=settings.DEBUG,
        pool_pre_ping=True,
        **engine_kwargs,
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False: אובייקטים שנקראו ע"י ה-reader נשארים שמישים אחרי commit של chunk
    return async_sessionmaker(bind=bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine()
AsyncSessionLocal = build_session_factory(engine)


async def get_db() -> AsyncIterator[AsyncSession]:
    """Dependency for getting database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


@asynccontextmanager
async def get_task_session() -> AsyncIterator[AsyncSession]:
    """
    Fresh database session for a Celery task.

    Every task runs in its own event loop (see ``run_async``), so the engine
    is created and disposed per task; the module-level engine would be
    attached to a different loop.
    """
    task_engine = build_engine(pool_size=5, max_overflow=10)
    session_factory = build_session_factory(task_engine)
    try:
        async with session_factory() as session:
            yield session
    finally:
        await task_engine.dispose()
