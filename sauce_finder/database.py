"""PostgreSQL access for the search history store.

Only imported when HISTORY_BACKEND=database. The engine is built from
settings (asyncpg driver, pre-ping pool); `init_db` reports whether the
history table is reachable so the app can fall back to in-memory history.
"""

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from sauce_finder.config import settings

logger = logging.getLogger(__name__)

engine = create_async_engine(
    settings.database_url,
    echo=settings.database_echo,
    pool_size=settings.database_pool_size,
    max_overflow=settings.database_max_overflow,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db() -> bool:
    """Ensure the search_history table exists. False when the DB is unreachable."""
    from sauce_finder.models import Base, SearchHistory

    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            await conn.run_sync(Base.metadata.create_all, tables=[SearchHistory.__table__])
    except Exception as e:
        logger.warning("History database unavailable | url=%s | %s",
                       engine.url.render_as_string(hide_password=True), str(e)[:200])
        return False

    logger.info("History database ready | table=%s | pool=%d", SearchHistory.__tablename__,
                settings.database_pool_size)
    return True


async def close_db():
    await engine.dispose()
    logger.info("History database connections closed")
