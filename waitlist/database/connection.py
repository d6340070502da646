# waitlist/database/connection.py
import asyncpg
from contextlib import asynccontextmanager
from typing import Optional
from waitlist.config import settings
from waitlist.errors import WaitlistError, wrap_store_error
import logging

logger = logging.getLogger(__name__)

class DatabaseConnection:
    _pool: Optional[asyncpg.Pool] = None

    @classmethod
    async def get_pool(cls) -> asyncpg.Pool:
        """Get or create database connection pool"""
        if cls._pool is None:
            try:
                db_url = settings.database_url
                if not db_url:
                    raise ValueError("DATABASE_URL environment variable not set")

                cls._pool = await asyncpg.create_pool(
                    db_url,
                    min_size=settings.db_pool_min_size,
                    max_size=settings.db_pool_max_size,
                    command_timeout=settings.db_command_timeout
                )
                logger.info("Database connection pool created")
            except Exception as e:
                logger.error(f"Failed to create database pool: {e}")
                raise
        return cls._pool

    @classmethod
    async def close_pool(cls):
        """Close database connection pool"""
        if cls._pool:
            await cls._pool.close()
            cls._pool = None
            logger.info("Database connection pool closed")

async def get_db_connection() -> asyncpg.Connection:
    """Get database connection from pool"""
    try:
        pool = await DatabaseConnection.get_pool()
        return await pool.acquire()
    except Exception as e:
        logger.error(f"Failed to acquire database connection: {e}")
        raise wrap_store_error("acquire database connection", e) from e

async def release_db_connection(connection):
    """Release database connection back to pool"""
    pool = await DatabaseConnection.get_pool()
    await pool.release(connection)

@asynccontextmanager
async def store_transaction(connection: asyncpg.Connection, operation: str):
    """connection.transaction() whose driver failures (commit included) surface as StoreError"""
    try:
        async with connection.transaction():
            yield
    except WaitlistError:
        raise
    except Exception as e:
        logger.error(f"Transaction failed during {operation}: {e}")
        raise wrap_store_error(operation, e) from e
