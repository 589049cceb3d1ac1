"""
Async SQLAlchemy engine and session factory for the relational store.
The engine is created on first use so the workbook backend never needs a
database driver installed.
"""
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

logger = logging.getLogger(__name__)

# Create Base class for models
Base = declarative_base()

_engine: Optional[AsyncEngine] = None
_async_session_maker: Optional[async_sessionmaker] = None


def get_engine(database_url: Optional[str] = None) -> AsyncEngine:
    """Get or create the database engine"""
    global _engine

    if _engine is None:
        if database_url is None:
            from .config import settings

            database_url = settings.async_database_url
        try:
            _engine = create_async_engine(database_url, pool_pre_ping=True, echo=False)
            logger.info("Database engine created successfully")
        except Exception as e:
            logger.error(f"Failed to create database engine: {e}")
            raise

    return _engine


def get_session_maker(database_url: Optional[str] = None) -> async_sessionmaker:
    """Get or create the session maker"""
    global _async_session_maker

    if _async_session_maker is None:
        _async_session_maker = async_sessionmaker(
            get_engine(database_url),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    return _async_session_maker


async def init_db(engine: Optional[AsyncEngine] = None) -> None:
    """Create all tables defined in models."""
    from . import models  # noqa: F401  registers the tables on Base

    engine = engine or get_engine()
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database tables: {e}")
        raise


async def close_db() -> None:
    """Dispose of the connection pool and forget the cached engine."""
    global _engine, _async_session_maker
    if _engine is not None:
        await _engine.dispose()
        logger.info("Database connection pool closed")
    _engine = None
    _async_session_maker = None
