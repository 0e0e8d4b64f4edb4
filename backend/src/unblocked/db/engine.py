"""Async database engine and session factory."""

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ..core.exceptions import DatabaseConnectionError
from ..core.logging import get_logger

logger = get_logger(__name__)


def _safe_url(database_url: str) -> str:
    return make_url(database_url).render_as_string(hide_password=True)


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for ``database_url``.

    SQLite URLs skip the pool sizing arguments, which its pool does not accept.
    """
    try:
        url = make_url(database_url)
        kwargs: dict = {"echo": echo}
        if url.get_backend_name() != "sqlite":
            kwargs.update(pool_size=10, max_overflow=20, pool_pre_ping=True)
        engine = create_async_engine(url, **kwargs)
    except Exception as e:
        logger.error(f"Failed to create async database engine: {e}")
        raise DatabaseConnectionError(f"engine creation: {e}") from e
    logger.debug("Database engine created", extra={"database_url": _safe_url(database_url)})
    return engine


async def check_connection(engine: AsyncEngine) -> bool:
    """Check if the database connection is working."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False
