"""Primary database connectors module"""

from .base import RecordFetcher
from .connection_pool import ConnectionPool, PooledConnection
from .postgres import PostgreSQLFetcher

__all__ = [
    "RecordFetcher",
    "ConnectionPool",
    "PooledConnection",
    "PostgreSQLFetcher",
]
