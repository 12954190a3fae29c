# backend/cloudstash/database/core.py
"""
Database core: a psycopg 3 connection pool shared by the queue and file
record operations.

The worker pool calls queue operations from executor threads, so the pool is
the synchronous ``psycopg_pool.ConnectionPool``; every borrowed connection
runs inside a transaction that commits on clean exit and rolls back on error.
"""

from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from ..enums import LoggerName, LogSource
from ..services.logger import get_service_logger
from ..utils.time_utils import utc_now

logger = get_service_logger(LoggerName.DATABASE, LogSource.DATABASE)


class SyncDatabaseCore:
    """
    Core sync database functionality for composition-based architecture.

    This class provides connection management without owning any queries;
    operation classes receive it by constructor injection.
    """

    def __init__(
        self,
        database_url: str,
        min_size: int = 2,
        max_size: int = 10,
        timeout: float = 30.0,
    ) -> None:
        """
        Initialize the SyncDatabaseCore instance with an unopened pool.

        Args:
            database_url: PostgreSQL connection string
            min_size: Minimum pooled connections
            max_size: Maximum pooled connections
            timeout: Seconds to wait for a free connection
        """
        self.database_url = database_url
        self.min_size = min_size
        self.max_size = max(max_size, min_size)
        self.timeout = timeout
        self._pool: Optional[ConnectionPool] = None
        self._connection_attempts = 0
        self._failed_connections = 0
        self._last_health_check = None
        self._pool_created_at = None

    @property
    def is_initialized(self) -> bool:
        return self._pool is not None

    def initialize(self) -> None:
        """
        Open the connection pool.

        Raises:
            psycopg.Error: If the pool cannot be opened
        """
        try:
            self._pool = ConnectionPool(
                self.database_url,
                min_size=self.min_size,
                max_size=self.max_size,
                timeout=self.timeout,
                kwargs={"row_factory": dict_row, "connect_timeout": 15},
                open=False,
            )
            self._pool.open()
            self._pool_created_at = utc_now()
            self._failed_connections = 0
        except Exception as e:
            self._failed_connections += 1
            logger.error("Failed to initialize database pool", exception=e)
            raise

    def close(self) -> None:
        """Close the connection pool."""
        if self._pool:
            self._pool.close()
            self._pool = None

    def check_pool_health(self) -> bool:
        """
        Check if the database connection pool is healthy.

        Returns:
            True if a trivial query succeeds, False otherwise
        """
        if not self._pool:
            return False

        try:
            with self._pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
                    cur.fetchone()

            self._last_health_check = utc_now()
            return True
        except psycopg.Error as e:
            self._failed_connections += 1
            logger.warning(f"Database health check failed: {e}")
            return False

    def get_pool_stats(self) -> Dict[str, Any]:
        """
        Get connection pool statistics.

        Returns:
            Dictionary with pool statistics
        """
        if not self._pool:
            return {"pool_initialized": False}

        stats = self._pool.get_stats()
        return {
            "pool_initialized": True,
            "pool_created_at": self._pool_created_at,
            "connection_attempts": self._connection_attempts,
            "failed_connections": self._failed_connections,
            "last_health_check": self._last_health_check,
            "pool_size": stats.get("pool_size", 0),
            "pool_available": stats.get("pool_available", 0),
        }

    @contextmanager
    def get_connection(self) -> Generator[Any, None, None]:
        """
        Borrow a connection wrapped in a transaction.

        Yields:
            Connection: A sync database connection with dict_row factory

        Raises:
            RuntimeError: If the pool has not been initialized
            psycopg_pool.PoolTimeout: If no connection frees up in time

        Usage:
            with db.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT * FROM pipeline_jobs")
                    data = cur.fetchall()
        """
        if not self._pool:
            raise RuntimeError("Database pool not initialized")

        self._connection_attempts += 1
        with self._pool.connection() as conn:
            with conn.transaction():
                yield conn


# Composition-based database class for services and workers
SyncDatabase = SyncDatabaseCore
