"""Process-local sync counters and health snapshot"""

import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .base import SyncOutcome


class StatsTracker:
    """
    Success/error counters for one worker instance

    Counters live in memory only and are reset when the worker starts;
    they are advisory, not an audit log.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.sync_count = 0
        self.error_count = 0
        self.last_sync_at: Optional[datetime] = None
        self.started_at: Optional[datetime] = None

    def reset(self) -> None:
        with self._lock:
            self.sync_count = 0
            self.error_count = 0
            self.last_sync_at = None
            self.started_at = _now()

    def record_success(self) -> None:
        with self._lock:
            self.sync_count += 1
            self.last_sync_at = _now()

    def record_error(self) -> None:
        with self._lock:
            self.error_count += 1

    def record_outcome(self, outcome: SyncOutcome) -> None:
        if outcome.success:
            self.record_success()
        else:
            self.record_error()

    @property
    def success_rate_percent(self) -> int:
        total = self.sync_count + self.error_count
        if self.sync_count == 0 or total == 0:
            return 0
        return round(self.sync_count / total * 100)

    def uptime_seconds(self) -> float:
        if self.started_at is None:
            return 0.0
        return (_now() - self.started_at).total_seconds()

    def snapshot(self, is_running: bool = False, tables: Optional[List[str]] = None) -> Dict[str, Any]:
        """Read-only view of the counters"""
        with self._lock:
            return {
                'is_running': is_running,
                'sync_count': self.sync_count,
                'error_count': self.error_count,
                'success_rate_percent': self.success_rate_percent,
                'last_sync_at': self.last_sync_at.isoformat() if self.last_sync_at else None,
                'started_at': self.started_at.isoformat() if self.started_at else None,
                'uptime_seconds': self.uptime_seconds(),
                'tables': list(tables or [])
            }

    def format_summary(self) -> str:
        snapshot = self.snapshot()
        last_sync = snapshot['last_sync_at'] or 'Never'
        return "\n".join([
            "Mirror sync statistics:",
            f"   Uptime: {int(snapshot['uptime_seconds'] // 60)} minutes",
            f"   Sync Count: {snapshot['sync_count']}",
            f"   Error Count: {snapshot['error_count']}",
            f"   Success Rate: {snapshot['success_rate_percent']}%",
            f"   Last Sync: {last_sync}"
        ])


def _now() -> datetime:
    return datetime.now(timezone.utc)
