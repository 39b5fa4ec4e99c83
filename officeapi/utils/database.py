import asyncpg
from loguru import logger

from .constants import Server, _Server


async def create_pool(settings: _Server = Server) -> asyncpg.Pool:
    """
    Create the connection pool used by every request.

    The pool is owned by the application lifespan, which closes it on shutdown.

    Args:
        settings: Server settings holding the database connection values.

    Returns:
        An initialized asyncpg connection pool.
    """
    pool = await asyncpg.create_pool(
        host=settings.DB_HOST,
        port=settings.DB_PORT,
        user=settings.DB_USER,
        password=settings.DB_PASSWORD,
        database=settings.DB_NAME,
        min_size=settings.DB_POOL_MIN_SIZE,
        max_size=settings.DB_POOL_MAX_SIZE,
    )
    logger.info(
        f"Database pool ready: {settings.DB_USER}@{settings.DB_HOST}:"
        f"{settings.DB_PORT}/{settings.DB_NAME}"
    )
    return pool
