"""Notification-driven Change Data Capture into the mirror store"""

from .base import ChangeNotification, ChangeOperation, DecodedChange, SyncOutcome
from .bulk import BulkSyncer, TableSyncSummary
from .coercion import ValueCoercer
from .dispatcher import WorkQueue
from .manager import MirrorSyncWorker, create_worker
from .pipeline import RecordSyncPipeline
from .postgres_listener import PostgreSQLNotificationListener
from .retry import RetryScheduler, is_retryable_error
from .stats import StatsTracker

__all__ = [
    "ChangeNotification",
    "ChangeOperation",
    "DecodedChange",
    "SyncOutcome",
    "BulkSyncer",
    "TableSyncSummary",
    "ValueCoercer",
    "WorkQueue",
    "MirrorSyncWorker",
    "create_worker",
    "RecordSyncPipeline",
    "PostgreSQLNotificationListener",
    "RetryScheduler",
    "is_retryable_error",
    "StatsTracker",
]
