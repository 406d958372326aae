"""Database engine and session management."""

from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from koda.config import settings
from koda.models import Base

engine = create_async_engine(settings.database_url, echo=settings.debug)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(target: AsyncEngine | None = None) -> None:
    """Create tables if they don't exist."""
    target = target or engine
    database = target.url.database
    if target.url.get_backend_name() == "sqlite" and database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
