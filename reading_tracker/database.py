"""
Reading Tracker - Database Connection
Async PostgreSQL with asyncpg
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

import asyncpg

from .config import get_database_config
from .errors import StorageFailureError
from .logger import get_logger

logger = get_logger("database")


class Database:
    """Async database connection manager."""

    def __init__(self, url: Optional[str] = None):
        self._url = url
        self._pool: Optional[asyncpg.Pool] = None

    @property
    def connected(self) -> bool:
        return self._pool is not None

    async def connect(self):
        """Create connection pool."""
        config = get_database_config()
        try:
            self._pool = await asyncpg.create_pool(
                self._url or config.url,
                min_size=config.min_pool_size,
                max_size=config.max_pool_size,
            )
        except (asyncpg.PostgresError, OSError) as e:
            raise StorageFailureError(f"could not connect to database: {e}") from e
        logger.info("Database connected")

    async def disconnect(self):
        """Close connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("Database disconnected")

    def _require_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise StorageFailureError("database is not connected")
        return self._pool

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[asyncpg.Connection]:
        """Borrow a connection, translating driver errors."""
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                yield conn
        except (asyncpg.PostgresError, OSError) as e:
            logger.error(f"Database error: {e}")
            raise StorageFailureError(str(e)) from e

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        """Connection with an open transaction, committed on clean exit."""
        async with self.acquire() as conn:
            async with conn.transaction():
                yield conn

    async def fetch(self, query: str, *args) -> List[dict]:
        """Fetch multiple rows."""
        async with self.acquire() as conn:
            rows = await conn.fetch(query, *args)
            return [dict(row) for row in rows]

    async def fetch_one(self, query: str, *args) -> Optional[dict]:
        """Fetch single row."""
        async with self.acquire() as conn:
            row = await conn.fetchrow(query, *args)
            return dict(row) if row else None

    async def fetch_value(self, query: str, *args):
        """Fetch the first column of the first row."""
        async with self.acquire() as conn:
            return await conn.fetchval(query, *args)

    async def execute(self, query: str, *args) -> str:
        """Execute query (INSERT, UPDATE, DELETE)."""
        async with self.acquire() as conn:
            return await conn.execute(query, *args)


# ============================================
# SCHEMA
# ============================================

# Catalog tables (novels, chapters, novel_genres, reviews, user_categories,
# reading_sessions) belong to the catalog service and are only read here.
SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS reading_progress (
        user_id INTEGER NOT NULL,
        chapter_id INTEGER NOT NULL,
        progress NUMERIC(4, 1) NOT NULL DEFAULT 0,
        last_position INTEGER NOT NULL DEFAULT 0,
        is_completed BOOLEAN NOT NULL DEFAULT FALSE,
        last_read_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
        PRIMARY KEY (user_id, chapter_id),
        CHECK (progress >= 0 AND progress <= 100),
        CHECK (last_position >= 0),
        CHECK (NOT is_completed OR progress = 100)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS reading_history (
        user_id INTEGER NOT NULL,
        chapter_id INTEGER NOT NULL,
        novel_id INTEGER NOT NULL,
        is_completed BOOLEAN NOT NULL DEFAULT FALSE,
        read_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
        PRIMARY KEY (user_id, chapter_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS user_library (
        user_id INTEGER NOT NULL,
        novel_id INTEGER NOT NULL,
        last_read_chapter INTEGER NOT NULL DEFAULT 0,
        reading_status VARCHAR(20) NOT NULL DEFAULT 'reading',
        is_favorite BOOLEAN NOT NULL DEFAULT FALSE,
        added_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
        advanced_at TIMESTAMP WITH TIME ZONE,
        PRIMARY KEY (user_id, novel_id),
        CHECK (last_read_chapter >= 0)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS reading_goals (
        user_id INTEGER PRIMARY KEY,
        goal_type VARCHAR(30) NOT NULL,
        target INTEGER NOT NULL,
        start_date TIMESTAMP WITH TIME ZONE NOT NULL,
        end_date TIMESTAMP WITH TIME ZONE NOT NULL,
        created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
        CHECK (target > 0),
        CHECK (end_date > start_date)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS achievement_unlocks (
        user_id INTEGER NOT NULL,
        code VARCHAR(50) NOT NULL,
        unlocked_at TIMESTAMP WITH TIME ZONE NOT NULL,
        PRIMARY KEY (user_id, code)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_reading_history_user_read_at ON reading_history(user_id, read_at DESC)",
    "CREATE INDEX IF NOT EXISTS idx_reading_history_user_novel ON reading_history(user_id, novel_id)",
    "CREATE INDEX IF NOT EXISTS idx_reading_progress_user ON reading_progress(user_id)",
]


async def ensure_tables(database: Database) -> None:
    """Create tracker tables if they don't exist."""
    async with database.transaction() as conn:
        for statement in SCHEMA_STATEMENTS:
            await conn.execute(statement)
    logger.info("Tracker schema ensured")
