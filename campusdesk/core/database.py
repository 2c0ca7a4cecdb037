# campusdesk/core/database.py
"""Database connection and session management using SQLAlchemy."""
from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy import text
import logging

from .config import settings

logger = logging.getLogger(__name__)


def build_engine(
    database_url: str,
    application_name: str = "campusdesk_api",
    pool_size: int = 10,
    max_overflow: int = 20,
    **engine_kwargs,
) -> AsyncEngine:
    """Create an async engine, applying PostgreSQL session limits when the URL targets asyncpg."""
    if database_url.startswith("postgresql+asyncpg"):
        engine_kwargs.setdefault("pool_size", pool_size)
        engine_kwargs.setdefault("max_overflow", max_overflow)
        engine_kwargs.setdefault("pool_timeout", 60)
        engine_kwargs.setdefault("pool_recycle", 1800)
        engine_kwargs.setdefault("pool_pre_ping", True)
        engine_kwargs.setdefault("connect_args", {
            "command_timeout": 60,
            "server_settings": {
                "jit": "off",  # Disable JIT for faster startup
                "application_name": application_name,
                "statement_timeout": settings.db_statement_timeout,
                "lock_timeout": settings.db_lock_timeout,
                "idle_in_transaction_session_timeout": "60s",  # Prevent hanging transactions
            }
        })
    engine_kwargs.setdefault("echo", settings.environment == 'development')
    return create_async_engine(database_url, **engine_kwargs)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        expire_on_commit=False,
        class_=AsyncSession,
        autoflush=False,  # Manual control over flushing
    )


# Request engine
engine = build_engine(settings.database_url)

# Separate engine for roll number recalculation and other post-commit work
background_engine = build_engine(
    settings.database_url,
    application_name="campusdesk_background",
    pool_size=5,
    max_overflow=10,
    echo=False,
)

AsyncSessionLocal = build_session_factory(engine)
AsyncBackgroundSessionLocal = build_session_factory(background_engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get database session for API requests with proper error handling"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception as e:
            logger.error("Database session error: %s", e)
            await session.rollback()
            raise


async def health_check_db(bind: AsyncEngine = None) -> bool:
    """Fast health check"""
    try:
        async with (bind or engine).connect() as conn:
            await conn.execute(text("SELECT 1"))
            return True
    except Exception as e:
        logger.error("Database health check failed: %s", e)
        return False


async def init_models(bind: AsyncEngine) -> None:
    """Create all tables directly from metadata. Used by tests and local bootstrapping."""
    from ..models import Base

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db_connections():
    """Properly close all database connections"""
    await engine.dispose()
    await background_engine.dispose()
    logger.info("Database connections closed")
