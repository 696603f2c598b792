"""Base mirror store interface"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List


class MirrorStore(ABC):
    """Abstract base class for the destination ("mirror") store"""

    @abstractmethod
    def upsert(self, table: str, rows: List[Dict[str, Any]], on_conflict: str) -> None:
        """
        Insert or overwrite rows keyed by ``on_conflict``

        Conflicting rows are overwritten, never ignored.
        """
        pass

    @abstractmethod
    def delete(self, table: str, key_column: str, key_value: Any) -> None:
        """Delete the row whose ``key_column`` equals ``key_value``; absent rows are fine"""
        pass

    @abstractmethod
    def ping(self, table: str) -> None:
        """Raise if the mirror is unreachable"""
        pass
