"""Base primary-store reader interface"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..config.tables import TableSyncConfig


class RecordFetcher(ABC):
    """Abstract base class for reading rows from the primary store"""

    @abstractmethod
    def fetch_record(self, config: TableSyncConfig, primary_key_value: Any) -> Optional[Dict[str, Any]]:
        """
        Point read by primary key

        Args:
            config: Table to read from
            primary_key_value: Key of the row

        Returns:
            Row restricted to the configured columns, or None if absent
        """
        pass

    @abstractmethod
    def fetch_page(self, config: TableSyncConfig, limit: int, offset: int = 0) -> List[Dict[str, Any]]:
        """Range read ordered by primary key"""
        pass

    @abstractmethod
    def ping(self) -> None:
        """Raise if the primary store is unreachable"""
        pass

    def close(self) -> None:
        """Release resources"""
        pass
