"""Database engines, sessions and shared column mixins.

The API runs on the async engine; Celery tasks, scripts and the service
layer they call run on the sync engine against the same database.
"""

import uuid
from typing import AsyncGenerator

from sqlalchemy import JSON, Column, DateTime, func, create_engine
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from campscout.config import get_settings

settings = get_settings()


def sync_url(database_url: str) -> str:
    """psycopg2 URL for an asyncpg one."""
    return database_url.replace("postgresql+asyncpg://", "postgresql+psycopg2://")


engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_pre_ping=True,
)

AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

sync_engine = create_engine(
    sync_url(settings.database_url),
    echo=settings.debug,
    pool_size=settings.sync_db_pool_size,
    max_overflow=settings.sync_db_pool_size,
    pool_pre_ping=True,
)

SyncSessionLocal = sessionmaker(bind=sync_engine, autocommit=False, autoflush=False)

# JSONB on PostgreSQL, plain JSON for the SQLite test database
JSONDocument = JSONB().with_variant(JSON(), "sqlite")


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class UUIDMixin:
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; commits on success, rolls back on error."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
