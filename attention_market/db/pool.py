# attention_market/db/pool.py
"""
PostgreSQL connection pool shared by the queue, prioritization config,
evaluation and delivery stores.

The API process and each worker process open their own pool; the role they
pass to initialize() ends up in application_name so pg_stat_activity shows
which process holds a connection.
"""

import asyncio
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from attention_market.config import settings
from attention_market.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

HEALTHY_MAX_UTILIZATION_PERCENT = 90
HEALTHY_MAX_CONNECTION_MS = 100
WARN_UTILIZATION_PERCENT = 80
CLOSE_TIMEOUT_SECONDS = 30.0


class DatabasePoolManager:
    def __init__(self):
        self.pool: AsyncConnectionPool | None = None
        self.role = "api"
        self._initialized = False
        self._closed = False

    @property
    def initialized(self) -> bool:
        return self._initialized and not self._closed

    async def initialize(self, role: str = "api") -> None:
        """Open the pool and verify one round trip before serving traffic."""
        if self._initialized:
            logger.warning("Database pool already initialized", role=self.role)
            return
        if self._closed:
            raise RuntimeError("Cannot reinitialize closed pool")

        self.role = role
        pool_config = settings.get_db_pool_config()

        try:
            self.pool = AsyncConnectionPool(
                conninfo=settings.DATABASE_URL,
                open=False,
                check=AsyncConnectionPool.check_connection,
                configure=self._configure_connection,
                **pool_config,
            )
            await self.pool.open()
            await self.pool.wait()

            # connection() refuses to hand out connections until this is set
            self._initialized = True
            await self._verify_round_trip()

        except Exception as e:
            logger.error("Failed to initialize database pool", role=role, error=str(e))
            self._initialized = False
            if self.pool:
                try:
                    await self.pool.close()
                except Exception as close_error:
                    logger.warning("Error closing half-open pool", error=str(close_error))
                self.pool = None
            raise RuntimeError(f"Database pool initialization failed: {e}") from e

        logger.info(
            "Database pool initialized",
            role=role,
            min_size=pool_config["min_size"],
            max_size=pool_config["max_size"],
            environment=settings.environment,
        )

    async def _configure_connection(self, conn: psycopg.AsyncConnection) -> None:
        conn.row_factory = dict_row
        # Autocommit: every repository statement is a single atomic UPDATE/INSERT,
        # multi-statement work goes through transaction()
        await conn.set_autocommit(True)

        app_name = f"attention-market-{self.role}-{settings.environment}"
        await conn.execute(sql.SQL("SET application_name = {}").format(sql.Literal(app_name)))
        await conn.execute("SET timezone = 'UTC'")
        await conn.execute(
            sql.SQL("SET statement_timeout = {}").format(
                sql.Literal(f"{settings.DB_STATEMENT_TIMEOUT_SECONDS}s")
            )
        )

    async def _verify_round_trip(self) -> None:
        async with self.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute("SELECT 1 AS ok")
                row = await cur.fetchone()
        if not row or row.get("ok") != 1:
            raise RuntimeError("Database connection test returned an unexpected result")

    async def close(self) -> None:
        if not self._initialized or self._closed:
            return

        try:
            if self.pool:
                await asyncio.wait_for(self.pool.close(), timeout=CLOSE_TIMEOUT_SECONDS)
            logger.info("Database pool closed", role=self.role)
        except TimeoutError:
            logger.warning("Database pool close timed out, forcing shutdown", role=self.role)
        except Exception as e:
            logger.error("Error closing database pool", role=self.role, error=str(e))
        finally:
            self._initialized = False
            self._closed = True

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        if self._closed:
            raise RuntimeError("Database pool is closed")
        if not self._initialized:
            raise RuntimeError("Database pool not initialized. Call initialize() first.")

        async with self.pool.connection() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """Connection inside BEGIN/COMMIT; rolls back if the block raises."""
        async with self.connection() as conn:
            async with conn.transaction():
                yield conn

    async def health_check(self) -> dict[str, Any]:
        """
        Pool metrics plus a timed SELECT 1.

        Unhealthy when utilization reaches HEALTHY_MAX_UTILIZATION_PERCENT or a
        round trip takes longer than HEALTHY_MAX_CONNECTION_MS.
        """
        if not self.initialized:
            state = "closed" if self._closed else "not initialized"
            return {"healthy": False, "error": f"Pool {state}", "service": "database_pool"}

        try:
            stats = self.pool.get_stats()
            pool_size = stats.get("pool_size", 0)
            pool_available = stats.get("pool_available", 0)
            requests_waiting = stats.get("requests_waiting", 0)

            started = time.perf_counter()
            async with self.connection() as conn:
                await conn.execute("SELECT 1")
            connection_time_ms = (time.perf_counter() - started) * 1000

            utilization = (pool_size - pool_available) / pool_size * 100 if pool_size else 0

        except Exception as e:
            logger.error("Database pool health check failed", error=str(e))
            return {
                "healthy": False,
                "service": "database_pool",
                "error": str(e),
                "error_type": type(e).__name__,
            }

        health = {
            "healthy": utilization < HEALTHY_MAX_UTILIZATION_PERCENT
            and connection_time_ms < HEALTHY_MAX_CONNECTION_MS,
            "service": "database_pool",
            "role": self.role,
            "connection_time_ms": round(connection_time_ms, 2),
            "pool_stats": {
                "pool_size": pool_size,
                "pool_available": pool_available,
                "pool_utilization_percent": round(utilization, 2),
                "requests_waiting": requests_waiting,
            },
        }

        warnings = []
        if utilization > WARN_UTILIZATION_PERCENT:
            warnings.append(f"High pool utilization: {utilization:.1f}%")
        if requests_waiting:
            warnings.append(f"Requests waiting for connections: {requests_waiting}")
        if warnings:
            health["warnings"] = warnings

        return health


db_pool = DatabasePoolManager()


async def get_db_connection():
    return db_pool.connection()


async def get_db_transaction():
    return db_pool.transaction()


async def db_health_check() -> dict[str, Any]:
    return await db_pool.health_check()
