"""PostgreSQL reads for the mirror pipeline"""

from typing import Any, Dict, List, Optional

from loguru import logger
from psycopg2 import sql
from psycopg2.extras import RealDictCursor

from ..config.tables import TableSyncConfig
from .base import RecordFetcher
from .connection_pool import ConnectionPool, PooledConnection


class PostgreSQLFetcher(RecordFetcher):
    """Reads replicated rows from the primary PostgreSQL database"""

    def __init__(self, pool: ConnectionPool):
        self.pool = pool

    def fetch_record(self, config: TableSyncConfig, primary_key_value: Any) -> Optional[Dict[str, Any]]:
        """Get the configured columns of one row, or None if it does not exist"""
        query = sql.SQL("SELECT {columns} FROM {table} WHERE {pk} = %s").format(
            columns=self._columns(config),
            table=sql.Identifier(config.table_name),
            pk=sql.Identifier(config.primary_key)
        )
        rows = self._execute(query, (primary_key_value,))
        return rows[0] if rows else None

    def fetch_page(self, config: TableSyncConfig, limit: int, offset: int = 0) -> List[Dict[str, Any]]:
        """Get up to ``limit`` rows ordered by primary key"""
        query = sql.SQL("SELECT {columns} FROM {table} ORDER BY {pk} LIMIT %s OFFSET %s").format(
            columns=self._columns(config),
            table=sql.Identifier(config.table_name),
            pk=sql.Identifier(config.primary_key)
        )
        return self._execute(query, (limit, offset))

    def ping(self) -> None:
        """Check that the primary database answers"""
        with PooledConnection(self.pool) as connection:
            with connection.cursor() as cursor:
                cursor.execute("SELECT NOW()")
                cursor.fetchone()
            connection.rollback()
        logger.info("PostgreSQL connection successful")

    def close(self) -> None:
        self.pool.close_all()

    def _columns(self, config: TableSyncConfig) -> sql.Composed:
        return sql.SQL(", ").join(sql.Identifier(name) for name in config.column_names)

    def _execute(self, query: sql.Composable, params: tuple) -> List[Dict[str, Any]]:
        with PooledConnection(self.pool) as connection:
            with connection.cursor(cursor_factory=RealDictCursor) as cursor:
                cursor.execute(query, params)
                rows = [dict(row) for row in cursor.fetchall()]
            # end the read transaction so pooled connections stay idle
            connection.rollback()
        return rows
