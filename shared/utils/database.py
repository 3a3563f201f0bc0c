"""
Database utilities for edgestack

Provides the readiness gate for the database, connection pool management,
run-once seeding and the explicit destructive reset.
"""

import asyncio
import time
from typing import Awaitable, Callable, Iterable, Optional, Sequence

import asyncpg
import structlog
from asyncpg import Pool

from shared.utils.config import DatabaseSettings
from shared.utils.errors import ConfigurationError, DependencyNotReadyError

logger = structlog.get_logger(__name__)

# Serializes concurrent first-startup seeding across processes
SEED_LOCK_ID = 7_305_021

SEED_HISTORY_DDL = """
    CREATE TABLE IF NOT EXISTS seed_history (
        name TEXT PRIMARY KEY,
        applied_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
"""

Probe = Callable[[DatabaseSettings, float], Awaitable[None]]

# Rejections no amount of waiting will fix, with the settings to correct
FATAL_PROBE_ERRORS = {
    asyncpg.InvalidAuthorizationSpecificationError: ["POSTGRES_USER", "POSTGRES_PASSWORD"],
    asyncpg.InvalidCatalogNameError: ["POSTGRES_DB"],
}


async def probe_database(settings: DatabaseSettings, timeout: float = 5.0) -> None:
    """Open a single connection and run SELECT 1; raises on any failure"""
    conn = await asyncpg.connect(timeout=timeout, **settings.connect_kwargs())
    try:
        await conn.execute('SELECT 1')
    finally:
        await conn.close()


async def wait_for_database(
    settings: DatabaseSettings,
    max_wait: float = 60.0,
    initial_delay: float = 0.5,
    max_delay: float = 5.0,
    probe: Probe = probe_database,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> int:
    """
    Block until the database accepts connections

    Retries the probe with exponential backoff, capped at max_delay per wait
    and bounded by max_wait overall.

    Args:
        settings: Database connection settings
        max_wait: Maximum seconds to wait before giving up
        initial_delay: First backoff delay in seconds
        max_delay: Upper bound for a single backoff delay
        probe: Readiness probe, raises while the database is not ready

    Returns:
        Number of attempts it took

    Raises:
        ConfigurationError: the database rejected the credentials or database name
        DependencyNotReadyError: the database was not ready within max_wait
    """
    started = clock()
    deadline = started + max_wait
    delay = initial_delay
    attempt = 0

    while True:
        attempt += 1
        remaining = deadline - clock()
        try:
            await probe(settings, max(0.1, min(remaining, max_delay)))
            if attempt > 1:
                logger.info("Database ready", attempts=attempt, waited=round(clock() - started, 2))
            return attempt
        except tuple(FATAL_PROBE_ERRORS) as e:
            fields = next(f for exc_type, f in FATAL_PROBE_ERRORS.items() if isinstance(e, exc_type))
            logger.error("Database rejected connection", host=settings.postgres_host, error=str(e))
            raise ConfigurationError(
                f"Database rejected the configured connection: {type(e).__name__}", fields=fields
            ) from e
        except Exception as e:
            remaining = deadline - clock()
            if remaining <= 0:
                logger.error(
                    "Database not ready, giving up",
                    host=settings.postgres_host,
                    attempts=attempt,
                    error=str(e),
                )
                raise DependencyNotReadyError("database", clock() - started, attempt) from e

            wait = min(delay, max_delay, remaining)
            logger.warning(
                "Database not ready, retrying",
                host=settings.postgres_host,
                attempt=attempt,
                retry_in=round(wait, 2),
                error=str(e),
            )
            await sleep(wait)
            delay = min(delay * 2, max_delay)


class DatabaseManager:
    """Database connection pool management"""

    def __init__(self, settings: DatabaseSettings, min_size: int = 1, max_size: int = 10,
                 command_timeout: float = 30):
        self.settings = settings
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self.pool: Optional[Pool] = None

    async def initialize(self):
        """Initialize database connection pool"""
        try:
            self.pool = await asyncpg.create_pool(
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=self.command_timeout,
                **self.settings.connect_kwargs()
            )
            logger.info("Database pool created", database=self.settings.postgres_db)

            # Test connection
            async with self.pool.acquire() as conn:
                await conn.execute('SELECT 1')

        except Exception as e:
            logger.error("Failed to initialize database", error=str(e))
            raise

    async def close(self):
        """Close database connection pool"""
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("Database pool closed")

    def get_pool(self) -> Pool:
        """Get database connection pool"""
        if self.pool is None:
            raise RuntimeError("Database pool not initialized")
        return self.pool

    async def test_connection(self) -> bool:
        """
        Test database connection

        Returns:
            True if connection successful, False otherwise
        """
        try:
            async with self.get_pool().acquire() as conn:
                await conn.execute('SELECT 1')
            return True
        except Exception as e:
            logger.error("Database connection test failed", error=str(e))
            return False

    async def apply_seed(self, name: str, schema: Sequence[str], seed: Sequence[str] = ()) -> bool:
        """
        Create schema and, on first-ever startup only, insert seed data

        Schema statements must be idempotent (CREATE ... IF NOT EXISTS). Seed
        statements run once per store; a marker row in seed_history records
        it, written in the same transaction under an advisory lock.

        Returns:
            True if seed statements ran, False if they were already applied
        """
        async with self.get_pool().acquire() as conn:
            async with conn.transaction():
                await conn.execute('SELECT pg_advisory_xact_lock($1)', SEED_LOCK_ID)
                await conn.execute(SEED_HISTORY_DDL)
                for statement in schema:
                    await conn.execute(statement)

                applied = await conn.fetchval(
                    'SELECT 1 FROM seed_history WHERE name = $1', name
                )
                if applied:
                    logger.info("Seed already applied, skipping", seed=name)
                    return False

                for statement in seed:
                    await conn.execute(statement)
                await conn.execute('INSERT INTO seed_history (name) VALUES ($1)', name)

        logger.info("Seed applied", seed=name, statements=len(seed))
        return True

    async def drop_tables(self, tables: Iterable[str]) -> None:
        """Drop tables and the seed marker; the explicit destructive reset"""
        names = list(tables) + ['seed_history']
        async with self.get_pool().acquire() as conn:
            async with conn.transaction():
                for table in names:
                    await conn.execute(f'DROP TABLE IF EXISTS "{table}" CASCADE')
        logger.warning("Database tables dropped", tables=names)
