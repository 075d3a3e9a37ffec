"""Database connection and schema for Life Connections."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import asyncpg
import structlog

logger = structlog.get_logger()


class Database:
    """Async PostgreSQL database connection manager."""

    def __init__(self, database_url: str, min_size: int = 1, max_size: int = 5):
        self.database_url = database_url
        self.min_size = min_size
        self.max_size = max_size
        self.pool: asyncpg.Pool | None = None

    async def connect(self) -> None:
        """Create connection pool."""
        self.pool = await asyncpg.create_pool(
            self.database_url,
            min_size=self.min_size,
            max_size=self.max_size,
        )
        logger.info("Database pool created", max_size=self.max_size)

    async def close(self) -> None:
        """Close connection pool."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("Database pool closed")

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[asyncpg.Connection]:
        """Acquire a connection from the pool."""
        if not self.pool:
            raise RuntimeError("Database not connected")
        async with self.pool.acquire() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        """Acquire a connection with transaction."""
        async with self.acquire() as conn:
            async with conn.transaction():
                yield conn

    async def execute(self, query: str, *args: Any) -> str:
        """Execute a query."""
        async with self.acquire() as conn:
            return await conn.execute(query, *args)

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        """Fetch all rows from a query."""
        async with self.acquire() as conn:
            return await conn.fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        """Fetch a single row from a query."""
        async with self.acquire() as conn:
            return await conn.fetchrow(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        """Fetch a single value from a query."""
        async with self.acquire() as conn:
            return await conn.fetchval(query, *args)


# Bucketed per-day values delivered by upstream extraction
DAILY_RECORDS_SCHEMA = """
CREATE TABLE IF NOT EXISTS daily_records (
    id BIGSERIAL PRIMARY KEY,
    user_id TEXT NOT NULL,
    domain TEXT NOT NULL,
    metric TEXT NOT NULL,
    day DATE NOT NULL,
    value DOUBLE PRECISION NOT NULL,
    value_type TEXT,
    unit TEXT,
    display_name TEXT,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_daily_records_user_domain_day
    ON daily_records(user_id, domain, day);
"""

# Connection sets, replaced wholesale on every analysis run
CONNECTIONS_SCHEMA = """
CREATE TABLE IF NOT EXISTS life_connections (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    category TEXT NOT NULL,
    domain_a TEXT NOT NULL,
    domain_b TEXT NOT NULL,
    effect_size DOUBLE PRECISION NOT NULL,
    payload JSONB NOT NULL,
    dismissed BOOLEAN DEFAULT FALSE,
    detected_at TIMESTAMPTZ NOT NULL,
    expires_at TIMESTAMPTZ NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_life_connections_user
    ON life_connections(user_id, effect_size DESC);
CREATE INDEX IF NOT EXISTS idx_life_connections_expires
    ON life_connections(expires_at);
"""


async def init_schema(db: Database) -> None:
    """Initialize database schema."""
    async with db.transaction() as conn:
        await conn.execute(DAILY_RECORDS_SCHEMA)
        await conn.execute(CONNECTIONS_SCHEMA)
    logger.info("Database schema initialized")
