"""Whole-table backfill from the primary into the mirror"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from loguru import logger
from tqdm import tqdm

from ..config.tables import TableRegistry
from ..connectors.base import RecordFetcher
from ..mirror.base import MirrorStore
from .coercion import ValueCoercer
from .stats import StatsTracker


@dataclass
class TableSyncSummary:
    """What a bulk sync of one table did"""
    table_name: str
    rows_read: int = 0
    rows_synced: int = 0
    batches_attempted: int = 0
    batches_failed: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["success"] = self.success
        return data


class BulkSyncer:
    """
    Copies tables into the mirror in batches

    Used for cold start, manual resyncs and repair after an outage. Each
    batch is a single upsert call. A failing batch is logged and skipped;
    later batches still run and earlier ones are kept.
    """

    def __init__(
        self,
        registry: TableRegistry,
        fetcher: RecordFetcher,
        mirror: MirrorStore,
        stats: StatsTracker,
        coercer: Optional[ValueCoercer] = None,
        batch_size: int = 50,
        show_progress: bool = False
    ):
        """
        Initialize bulk syncer

        Args:
            registry: Replicated tables
            fetcher: Primary-store reader
            mirror: Destination store
            stats: Batch outcomes are counted here
            coercer: Value normalizer shared with the live path
            batch_size: Rows per upsert call
            show_progress: Show a tqdm progress bar per table
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.registry = registry
        self.fetcher = fetcher
        self.mirror = mirror
        self.stats = stats
        self.coercer = coercer or ValueCoercer()
        self.batch_size = batch_size
        self.show_progress = show_progress

    def sync_all(self, limit: int = 100) -> List[TableSyncSummary]:
        """Sync every table in registry order, one after another"""
        tables = self.registry.table_names()
        logger.info(f"Starting manual sync for tables: {', '.join(tables)}")

        summaries = [self.sync_table(table_name, limit) for table_name in tables]

        failed = sum(summary.batches_failed for summary in summaries)
        logger.info(f"Manual sync completed ({len(summaries)} tables, {failed} failed batches)")
        return summaries

    def sync_table(self, table_name: str, limit: int = 100) -> TableSyncSummary:
        """
        Sync up to ``limit`` rows of one table, ordered by primary key

        Args:
            table_name: Table to sync
            limit: Maximum rows read in the single bounded read

        Returns:
            Summary of rows and batches

        Raises:
            UnknownTableError: Table is not in the registry
        """
        config = self.registry.get(table_name)
        summary = TableSyncSummary(table_name=table_name)
        logger.info(f"Manual syncing {table_name}...")

        try:
            rows = self.fetcher.fetch_page(config, limit)
        except Exception as e:
            self.stats.record_error()
            summary.errors.append(f"read failed: {e}")
            logger.error(f"Failed to read {table_name} from PostgreSQL: {e}")
            return summary

        summary.rows_read = len(rows)
        logger.info(f"Found {len(rows)} records in {table_name}")

        with tqdm(total=len(rows), desc=f"Syncing {table_name}", disable=not self.show_progress) as pbar:
            for start in range(0, len(rows), self.batch_size):
                batch_number = start // self.batch_size + 1
                batch = rows[start:start + self.batch_size]
                summary.batches_attempted += 1

                try:
                    records = self.coercer.coerce_rows(config, batch)
                    self.mirror.upsert(table_name, records, on_conflict=config.primary_key)
                except Exception as e:
                    summary.batches_failed += 1
                    summary.errors.append(f"batch {batch_number}: {e}")
                    self.stats.record_error()
                    logger.error(f"Batch sync error for {table_name} (batch {batch_number}): {e}")
                else:
                    summary.rows_synced += len(records)
                    self.stats.record_success()
                    logger.info(f"Synced batch {batch_number} for {table_name} ({len(records)} records)")
                pbar.update(len(batch))

        return summary
