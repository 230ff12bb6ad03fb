from __future__ import annotations

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from crm_agent.config import AgentSettings


def build_engine(settings: AgentSettings) -> Optional[AsyncEngine]:
    if not settings.database_url:
        return None
    options = {"pool_pre_ping": True}
    if settings.database_url.startswith("postgresql"):
        options.update(pool_size=5, max_overflow=10)
    return create_async_engine(settings.database_url, **options)


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
