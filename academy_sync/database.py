from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from academy_sync.config import settings


def build_engine(database_url: str = settings.DATABASE_URL) -> AsyncEngine:
    """Create the async SQLAlchemy engine for the document store"""
    if "sqlite" in database_url:
        # SQLite ignores pool sizing
        return create_async_engine(
            database_url,
            echo=settings.DEBUG,
            connect_args={"check_same_thread": False},
        )
    return create_async_engine(
        database_url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        echo=settings.DEBUG,  # Log SQL queries in debug mode
    )


@lru_cache
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Session factory shared by every collection handle.

    Each store call opens its own short-lived session, so one cascade can run
    several dependent-collection updates concurrently.
    """
    return async_sessionmaker(build_engine(), expire_on_commit=False)
