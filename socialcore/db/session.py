from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool
from socialcore.config import settings
from typing import AsyncGenerator
import logging

from socialcore.db.base import Base
from socialcore.exceptions import SocialCoreError

logger = logging.getLogger(__name__)


def create_engine_for_url(database_url: str, echo: bool = False) -> AsyncEngine:
    """Build an async engine; SQLite gets foreign keys switched on per connection"""
    if database_url.startswith("sqlite"):
        engine = create_async_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
            poolclass=NullPool,
        )
        _enable_sqlite_foreign_keys(engine.sync_engine)
        return engine

    # PostgreSQL configuration for production/development
    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_pre_ping=True,
    )


def _enable_sqlite_foreign_keys(sync_engine: Engine) -> None:
    @event.listens_for(sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# Get database URL based on environment
engine = create_engine_for_url(settings.database_url, echo=settings.DEBUG)

# Create async session factory
AsyncSessionLocal = create_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except SocialCoreError:
            await session.rollback()
            raise
        except Exception as e:
            await session.rollback()
            logger.error(f"Database session error: {e}")
            raise
        finally:
            await session.close()


async def init_db(bind: AsyncEngine = engine) -> None:
    """Initialize database (create tables, etc.)"""
    import socialcore.models  # noqa: F401  registers every table on Base.metadata

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database initialized successfully")


async def close_db(bind: AsyncEngine = engine) -> None:
    """Close database connections"""
    await bind.dispose()
    logger.info("Database connections closed")
