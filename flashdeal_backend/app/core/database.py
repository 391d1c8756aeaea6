"""
Database engine for the SQL store

The engine is only built when the SQL backend is selected, so the in-memory
backend and its tests never open a connection pool. Production gets the
configured pool; everything else a small one.
"""
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from app.core.config import Settings

Base = declarative_base()


def pool_options(settings: Settings) -> dict:
    if settings.ENVIRONMENT == "production":
        return {
            "pool_size": settings.DB_POOL_SIZE,
            "max_overflow": settings.DB_MAX_OVERFLOW,
            "pool_recycle": settings.DB_POOL_RECYCLE,
            # Stale connections would surface as StoreError mid-reservation
            "pool_pre_ping": True,
        }
    return {"pool_size": 2, "max_overflow": 5, "pool_pre_ping": True}


def create_engine(settings: Settings) -> AsyncEngine:
    return create_async_engine(settings.DATABASE_URL, echo=settings.DEBUG, **pool_options(settings))


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    # Records are mapped out of rows before commit; nothing reads expired attributes
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
