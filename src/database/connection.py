from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from src.utils.logger import get_logger
from src.utils.settings.database import DatabaseSettings

logger = get_logger(__name__)


def build_async_engine(url: str | None = None, echo: bool | None = None) -> AsyncEngine:
    """Create an async engine; SQLite URLs skip the server pool options."""
    settings = DatabaseSettings()
    url = url or settings.DATABASE_URL_ASYNC
    echo = settings.DATABASE_ECHO if echo is None else echo
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=echo)
    return create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_recycle=300,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
    )


async_engine = build_async_engine()
AsyncSessionLocal = async_sessionmaker(
    bind=async_engine, class_=AsyncSession, expire_on_commit=False
)


@asynccontextmanager
async def get_async_db(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """Get asynchronous database session outside of a request (jobs, scripts)."""
    factory = session_factory or AsyncSessionLocal
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def create_all_tables(engine: AsyncEngine | None = None) -> None:
    """Create tables from model metadata for local runs without migrations."""
    from src.database.models import Base

    engine = engine or async_engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured")
