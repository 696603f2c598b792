"""Per-record sync: fetch from the primary, coerce, write to the mirror"""

import threading
import time
from collections import defaultdict
from contextlib import contextmanager
from typing import Dict, Iterator, Optional, Tuple, Union

from loguru import logger

from ..config.tables import TableRegistry, TableSyncConfig
from ..connectors.base import RecordFetcher
from ..exceptions import UnknownTableError
from ..mirror.base import MirrorStore
from .base import ChangeOperation, DecodedChange, SyncOutcome
from .coercion import ValueCoercer
from .retry import RetryScheduler
from .stats import StatsTracker


class KeyLockRegistry:
    """Per ``(table, key)`` locks, dropped once nobody holds or waits on them"""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Tuple[str, str], threading.Lock] = {}
        self._users: Dict[Tuple[str, str], int] = defaultdict(int)

    @contextmanager
    def hold(self, table_name: str, key: str) -> Iterator[None]:
        ident = (table_name, key)
        with self._guard:
            lock = self._locks.setdefault(ident, threading.Lock())
            self._users[ident] += 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[ident] -= 1
                if self._users[ident] == 0:
                    del self._users[ident]
                    del self._locks[ident]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class RecordSyncPipeline:
    """
    Makes the mirror match the primary for a single row

    INSERT/UPDATE re-read the row from the primary and upsert it, so the
    mirror always gets the row's current state rather than the state at
    notification time. A row that is gone by then is a benign race and a
    no-op. DELETE removes the mirror row unconditionally.

    Each call is wrapped in the retry scheduler; errors never escape
    ``sync_record``.
    """

    def __init__(
        self,
        registry: TableRegistry,
        fetcher: RecordFetcher,
        mirror: MirrorStore,
        stats: StatsTracker,
        coercer: Optional[ValueCoercer] = None,
        retry: Optional[RetryScheduler] = None,
        serialize_per_key: bool = False
    ):
        """
        Initialize the pipeline

        Args:
            registry: Replicated tables
            fetcher: Primary-store reader
            mirror: Destination store
            stats: Counters updated with every outcome
            coercer: Value normalizer
            retry: Retry policy for a whole fetch+write
            serialize_per_key: Run same-row syncs one at a time
        """
        self.registry = registry
        self.fetcher = fetcher
        self.mirror = mirror
        self.stats = stats
        self.coercer = coercer or ValueCoercer()
        self.retry = retry or RetryScheduler()
        self.key_locks = KeyLockRegistry() if serialize_per_key else None

    def handle_change(self, change: DecodedChange) -> SyncOutcome:
        """Work-queue entry point"""
        return self.sync_record(change.table_name, change.operation, change.primary_key_value)

    def sync_record(
        self,
        table_name: str,
        operation: Union[ChangeOperation, str],
        primary_key_value: str
    ) -> SyncOutcome:
        """
        Sync one row and record the outcome

        Args:
            table_name: Replicated table
            operation: INSERT, UPDATE or DELETE
            primary_key_value: Key of the changed row

        Returns:
            The outcome; failures are reported, not raised
        """
        started = time.monotonic()
        op = operation if isinstance(operation, ChangeOperation) else ChangeOperation.parse(str(operation))
        op_name = op.value if op else str(operation)
        label = f"{table_name} ({op_name}:{primary_key_value})"

        if op is None:
            logger.warning(f"Unknown operation: {operation} for {table_name}:{primary_key_value}")
            return SyncOutcome(table_name, primary_key_value, op_name, False, 0.0, error="unknown operation")

        try:
            config = self.registry.get(table_name)
        except UnknownTableError as e:
            logger.warning(f"Discarding change for {label}: {e}")
            return SyncOutcome(table_name, primary_key_value, op_name, False, 0.0, error=str(e))

        try:
            with self._serialized(table_name, primary_key_value):
                found = self.retry.run(
                    lambda: self._apply(config, op, primary_key_value),
                    description=f"sync {label}"
                )
        except Exception as e:
            outcome = SyncOutcome(
                table_name, primary_key_value, op_name, False, _elapsed_ms(started), error=str(e)
            )
            logger.error(f"Sync failed for {label} after {outcome.duration_ms:.0f}ms: {e}")
        else:
            outcome = SyncOutcome(
                table_name, primary_key_value, op_name, True, _elapsed_ms(started), skipped=not found
            )
            if found:
                logger.info(f"Synced {label} in {outcome.duration_ms:.0f}ms")

        self.stats.record_outcome(outcome)
        return outcome

    def _apply(self, config: TableSyncConfig, operation: ChangeOperation, primary_key_value: str) -> bool:
        """One attempt; returns False when the row no longer exists in the primary"""
        if operation == ChangeOperation.DELETE:
            self.mirror.delete(config.table_name, config.primary_key, primary_key_value)
            return True

        row = self.fetcher.fetch_record(config, primary_key_value)
        if row is None:
            logger.warning(f"Record not found in PostgreSQL: {config.table_name}:{primary_key_value}")
            return False

        record = self.coercer.coerce_row(config, row)
        self.mirror.upsert(config.table_name, [record], on_conflict=config.primary_key)
        return True

    @contextmanager
    def _serialized(self, table_name: str, primary_key_value: str) -> Iterator[None]:
        if self.key_locks is None:
            yield
            return
        with self.key_locks.hold(table_name, primary_key_value):
            yield


def _elapsed_ms(started: float) -> float:
    return (time.monotonic() - started) * 1000
