"""psycopg 3 async pool shared by every query module"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from habitforge.config import DATABASE_URL, DB_POOL_MAX_SIZE, DB_POOL_MIN_SIZE

logger = logging.getLogger(__name__)


class Database:
    """
    Owns the AsyncConnectionPool

    Connections handed out use dict_row, so every query returns dicts keyed
    by column name. The pool is opened in the API lifespan; using a
    connection before that raises RuntimeError.
    """

    def __init__(self, dsn: str = DATABASE_URL):
        self.dsn = dsn
        self._pool: Optional[AsyncConnectionPool] = None

    async def init_pool(self) -> None:
        logger.info(f"Opening database pool (min={DB_POOL_MIN_SIZE}, max={DB_POOL_MAX_SIZE})")
        pool = AsyncConnectionPool(
            self.dsn,
            min_size=DB_POOL_MIN_SIZE,
            max_size=DB_POOL_MAX_SIZE,
            kwargs={"row_factory": dict_row},
            open=False,
        )
        await pool.open()
        self._pool = pool

    async def close_pool(self) -> None:
        if self._pool is None:
            return
        await self._pool.close()
        self._pool = None
        logger.info("Database pool closed")

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[psycopg.AsyncConnection]:
        if self._pool is None:
            raise RuntimeError("Database pool is not open")
        async with self._pool.connection() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[psycopg.AsyncConnection]:
        """Connection inside a transaction: committed on exit, rolled back on error"""
        async with self.connection() as conn:
            async with conn.transaction():
                yield conn

    async def ping(self) -> None:
        """Round-trip SELECT 1; raises if the database is unreachable"""
        async with self.connection() as conn:
            await conn.execute("SELECT 1")


db = Database()
