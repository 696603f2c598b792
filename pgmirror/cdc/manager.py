"""Mirror sync worker: wires the listener, pipeline and bulk syncer together"""

import threading
from typing import Any, Dict, List, Optional

from loguru import logger

from ..config.settings import Settings
from ..config.tables import TableRegistry
from ..connectors.base import RecordFetcher
from ..connectors.connection_pool import ConnectionPool
from ..connectors.postgres import PostgreSQLFetcher
from ..mirror.base import MirrorStore
from ..mirror.supabase_store import SupabaseMirror
from .bulk import BulkSyncer, TableSyncSummary
from .coercion import ValueCoercer
from .dispatcher import WorkQueue
from .pipeline import RecordSyncPipeline
from .postgres_listener import PostgreSQLNotificationListener
from .retry import RetryScheduler
from .stats import StatsTracker


class MirrorSyncWorker:
    """
    Keeps the mirror eventually consistent with the primary database

    The worker:
    - subscribes to one notification channel per replicated table
    - queues each change for the per-record pipeline on a bounded pool
    - offers bulk (manual) sync for seeding and recovery
    - tracks success/error counts for the health status
    """

    def __init__(
        self,
        registry: TableRegistry,
        fetcher: RecordFetcher,
        mirror: MirrorStore,
        connection_params: Dict[str, Any],
        stats: Optional[StatsTracker] = None,
        retry: Optional[RetryScheduler] = None,
        workers: int = 4,
        batch_size: int = 50,
        serialize_per_key: bool = False,
        poll_timeout: float = 1.0,
        reconnect: bool = True,
        reconnect_max_delay: float = 30.0,
        initial_sync: bool = False,
        default_limit: int = 100
    ):
        self.registry = registry
        self.fetcher = fetcher
        self.mirror = mirror
        self.stats = stats or StatsTracker()
        self.initial_sync = initial_sync
        self.default_limit = default_limit

        coercer = ValueCoercer()
        retry = retry or RetryScheduler()
        self.pipeline = RecordSyncPipeline(
            registry=registry,
            fetcher=fetcher,
            mirror=mirror,
            stats=self.stats,
            coercer=coercer,
            retry=retry,
            serialize_per_key=serialize_per_key
        )
        self.bulk = BulkSyncer(
            registry=registry,
            fetcher=fetcher,
            mirror=mirror,
            stats=self.stats,
            coercer=coercer,
            batch_size=batch_size
        )
        self.queue = WorkQueue(self.pipeline.handle_change, workers=workers)
        self.listener = PostgreSQLNotificationListener(
            connection_params=connection_params,
            registry=registry,
            on_change=self.queue.submit,
            stats=self.stats,
            poll_timeout=poll_timeout,
            reconnect=reconnect,
            reconnect_base_delay=retry.base_delay,
            reconnect_max_delay=reconnect_max_delay
        )

        self.is_running = False
        self._state_lock = threading.Lock()

    def start(self) -> None:
        """Test connections, then start listening; failures leave the worker stopped"""
        with self._state_lock:
            if self.is_running:
                logger.info("Mirror sync system is already running")
                return

            logger.info("Starting mirror sync system...")
            self.stats.reset()
            try:
                self.test_connections()
                self.queue.start()
                self.listener.start()
            except Exception as e:
                logger.error(f"Failed to start mirror sync system: {e}")
                self.listener.stop()
                self.queue.stop()
                raise

            self.is_running = True
            tables = self.registry.table_names()
            logger.info("Mirror sync system started successfully")
            logger.info(f"Monitoring {len(tables)} tables: {', '.join(tables)}")

        if self.initial_sync:
            self.manual_sync()

    def stop(self) -> None:
        with self._state_lock:
            if not self.is_running:
                logger.info("Mirror sync system is not running")
                return

            self.is_running = False
            try:
                self.listener.stop()
            except Exception as e:
                logger.error(f"Error stopping notification listener: {e}")
            self.queue.stop()

            logger.info("Mirror sync system stopped")
            logger.info(self.stats.format_summary())

    def close(self) -> None:
        """Stop and release the primary read pool"""
        self.stop()
        self.fetcher.close()

    def test_connections(self) -> None:
        """Raise if either store is unreachable"""
        self.fetcher.ping()
        first_table = next(iter(self.registry), None)
        if first_table is not None:
            self.mirror.ping(first_table.table_name)

    def manual_sync(self, table_name: Optional[str] = None, limit: Optional[int] = None) -> List[TableSyncSummary]:
        """
        Bulk sync one table or all of them

        Args:
            table_name: Table to sync; None syncs every table
            limit: Rows per table (defaults to the configured limit)

        Returns:
            One summary per table

        Raises:
            UnknownTableError: Table is not in the registry
            ValueError: limit is negative
        """
        if limit is None:
            limit = self.default_limit
        elif limit < 0:
            raise ValueError(f"limit must not be negative, got {limit}")
        if table_name:
            return [self.bulk.sync_table(table_name, limit)]
        return self.bulk.sync_all(limit)

    def get_health_status(self) -> Dict[str, Any]:
        """Stats snapshot; running means the listener is still receiving too"""
        status = self.stats.snapshot(
            is_running=bool(self.is_running and self.listener.is_running),
            tables=self.registry.table_names()
        )
        status['listener'] = self.listener.get_status()
        status['queue'] = self.queue.get_status()
        return status


def create_worker(settings: Settings) -> MirrorSyncWorker:
    """
    Build a worker from settings

    Raises:
        ConfigurationError: Mirror credentials are missing or the table
            registry is invalid
    """
    settings.require_supabase_credentials()
    registry = settings.load_table_registry()

    pool = ConnectionPool(
        settings.postgres_connection_params,
        min_connections=settings.pool_min_connections,
        max_connections=settings.pool_max_connections
    )

    return MirrorSyncWorker(
        registry=registry,
        fetcher=PostgreSQLFetcher(pool),
        mirror=SupabaseMirror.from_credentials(settings.supabase_url, settings.supabase_key),
        connection_params=settings.postgres_connection_params,
        retry=RetryScheduler(
            max_attempts=settings.sync_max_attempts,
            base_delay=settings.sync_base_delay,
            max_delay=settings.sync_max_delay
        ),
        workers=settings.sync_workers,
        batch_size=settings.bulk_batch_size,
        serialize_per_key=settings.sync_serialize_per_key,
        poll_timeout=settings.listen_poll_timeout,
        reconnect=settings.listen_reconnect,
        reconnect_max_delay=settings.listen_reconnect_max_delay,
        initial_sync=settings.sync_initial_sync,
        default_limit=settings.bulk_default_limit
    )
