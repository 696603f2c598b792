"""PostgreSQL connection pooling shared by concurrent record fetches"""

from threading import Lock
from typing import Any, Dict

from loguru import logger
from psycopg2 import pool as pg_pool


class ConnectionPool:
    """Thread-safe PostgreSQL connection pool"""

    def __init__(
        self,
        connection_params: Dict[str, Any],
        min_connections: int = 1,
        max_connections: int = 10
    ):
        """
        Initialize connection pool

        Args:
            connection_params: Keyword arguments for psycopg2.connect
            min_connections: Minimum number of connections to maintain
            max_connections: Maximum number of connections allowed
        """
        self.connection_params = connection_params
        self.min_connections = min_connections
        self.max_connections = max_connections
        self.pool = None
        self._lock = Lock()

    def _initialize_pool(self) -> None:
        try:
            self.pool = pg_pool.ThreadedConnectionPool(
                self.min_connections,
                self.max_connections,
                **self.connection_params
            )
            logger.info(f"Initialized postgres connection pool (min={self.min_connections}, max={self.max_connections})")
        except Exception as e:
            logger.error(f"Failed to initialize connection pool: {e}")
            raise

    def get_connection(self):
        """
        Get a connection from the pool, creating the pool on first use

        Returns:
            psycopg2 connection
        """
        with self._lock:
            if self.pool is None:
                self._initialize_pool()
        return self.pool.getconn()

    def return_connection(self, connection, close: bool = False) -> None:
        """
        Return a connection to the pool

        Args:
            connection: Connection to return
            close: Discard the connection instead of reusing it
        """
        try:
            self.pool.putconn(connection, close=close)
        except Exception as e:
            logger.error(f"Failed to return connection to pool: {e}")

    def close_all(self) -> None:
        """Close all connections in the pool"""
        with self._lock:
            if self.pool is None:
                return
            try:
                self.pool.closeall()
                logger.info("Closed all connections in postgres pool")
            except Exception as e:
                logger.error(f"Error closing connection pool: {e}")
            finally:
                self.pool = None

class PooledConnection:
    """Context manager for pooled connections"""

    def __init__(self, pool: ConnectionPool):
        """
        Initialize pooled connection context manager

        Args:
            pool: Connection pool to use
        """
        self.pool = pool
        self.connection = None

    def __enter__(self):
        """Get connection from pool"""
        self.connection = self.pool.get_connection()
        return self.connection

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Return connection to pool; a broken connection is discarded"""
        if self.connection is not None:
            broken = bool(getattr(self.connection, "closed", 0))
            if exc_type is not None and not broken:
                try:
                    self.connection.rollback()
                except Exception as e:
                    logger.debug(f"Rollback failed, discarding connection: {e}")
                    broken = True
            self.pool.return_connection(self.connection, close=broken)
            self.connection = None
        return False
