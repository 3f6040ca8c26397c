import asyncio
import logging
from collections.abc import AsyncGenerator

from sqlalchemy import select
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from babyregistry.core.config import settings

logger = logging.getLogger("babyregistry.db")


def _build_engine(dsn: str) -> AsyncEngine:
    backend = make_url(dsn).get_backend_name()
    if backend == "postgresql":
        return create_async_engine(
            dsn,
            pool_pre_ping=True,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_recycle=settings.db_pool_recycle,
            pool_timeout=settings.db_pool_timeout,
        )
    if backend == "sqlite":
        # Concurrent reservers serialize on the database write lock.
        return create_async_engine(
            dsn,
            connect_args={"timeout": settings.sqlite_busy_timeout_seconds},
        )
    return create_async_engine(dsn, pool_pre_ping=True)


engine = _build_engine(settings.database_dsn)


class Base(DeclarativeBase):
    pass


async_session_factory = async_sessionmaker(
    bind=engine,
    expire_on_commit=False,
    autoflush=False,
)

_schema_ready = False
_schema_lock = asyncio.Lock()


async def ensure_schema_ready() -> None:
    """Create the registry tables once per process.

    Production databases are migrated with Alembic; ``create_all`` leaves
    existing tables alone, so running both is harmless.
    """
    global _schema_ready
    if _schema_ready:
        return

    async with _schema_lock:
        if _schema_ready:
            return

        from babyregistry.models import models as _models  # noqa: F401

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Schema ready tables=%s", ",".join(sorted(Base.metadata.tables)))
        _schema_ready = True


async def ping_database() -> int:
    async with async_session_factory() as session:
        return (await session.execute(select(1))).scalar_one()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    await ensure_schema_ready()
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
