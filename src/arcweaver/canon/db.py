# src/arcweaver/canon/db.py
"""Database engine, session creation and schema setup."""

from __future__ import annotations

import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from functools import lru_cache

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from arcweaver.config import config
from arcweaver.core.logs import EventType, Priority, get_event_logger
from arcweaver.models import Base

event_logger = get_event_logger()


@lru_cache(maxsize=None)
def get_engine(url: str | None = None) -> AsyncEngine:
    """Return the shared async engine for ``url`` (the configured URL by default)."""
    return create_async_engine(url or config.database.postgres_url, echo=config.database.echo_sql)


def get_session_factory(engine: AsyncEngine | None = None) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine or get_engine(), class_=AsyncSession, expire_on_commit=False
    )


@asynccontextmanager
async def get_session(
    factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncIterator[AsyncSession]:
    """Yield a session that commits on success and rolls back on error."""
    start_time = time.time()
    async with (factory or get_session_factory())() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            event_logger.error(
                f"Database session failed: {exc}",
                event_type=EventType.DATABASE_OPERATION,
                component=__name__,
                metadata={"duration": time.time() - start_time},
            )
            raise
        except Exception:
            await session.rollback()
            raise


async def init_models(engine: AsyncEngine | None = None) -> None:
    """Create all tables that do not exist yet."""
    engine = engine or get_engine()
    start_time = time.time()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    event_logger.info(
        f"Database schema ready in {time.time() - start_time:.2f}s",
        event_type=EventType.DATABASE_OPERATION,
        priority=Priority.HIGH,
        component=__name__,
        metadata={"tables": sorted(Base.metadata.tables)},
    )


__all__ = ["get_engine", "get_session_factory", "get_session", "init_models"]
