"""
Pizzeria POS — Async SQLAlchemy engine and session factory
"""
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from pizzeria.core.config import get_settings

settings = get_settings()

engine_kwargs: dict = {"echo": settings.DEBUG}
if settings.database_url.startswith("sqlite"):
    # In-memory SQLite must share one connection across sessions
    engine_kwargs.update(connect_args={"check_same_thread": False}, poolclass=StaticPool)
else:
    engine_kwargs.update(pool_size=10, max_overflow=20, pool_pre_ping=True)

engine = create_async_engine(settings.database_url, **engine_kwargs)

SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with SessionLocal() as session:
        yield session
