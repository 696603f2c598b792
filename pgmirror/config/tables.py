"""Table registry: which tables are mirrored, and how"""

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

import yaml

from ..exceptions import ConfigurationError, UnknownTableError


_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class ColumnKind(Enum):
    """How a column's value is shaped for the mirror"""
    SCALAR = "scalar"
    ARRAY = "array"
    JSON = "json"


@dataclass(frozen=True)
class ColumnSpec:
    """A replicated column"""
    name: str
    kind: ColumnKind = ColumnKind.SCALAR


@dataclass(frozen=True)
class TableSyncConfig:
    """Replication settings for a single table"""
    table_name: str
    channel: str
    primary_key: str
    columns: Tuple[ColumnSpec, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "columns", tuple(self.columns))

        for name in (self.table_name, self.primary_key):
            _check_identifier(name, self.table_name)

        if not self.channel:
            raise ConfigurationError(f"Table {self.table_name} has no channel")

        names = [column.name for column in self.columns]
        for name in names:
            _check_identifier(name, self.table_name)

        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ConfigurationError(
                f"Duplicate columns for {self.table_name}: {', '.join(duplicates)}"
            )

        if self.primary_key not in names:
            raise ConfigurationError(
                f"Primary key '{self.primary_key}' is not among the columns of {self.table_name}"
            )

    @property
    def column_names(self) -> List[str]:
        return [column.name for column in self.columns]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation"""
        return {
            "table_name": self.table_name,
            "channel": self.channel,
            "primary_key": self.primary_key,
            "columns": [
                {"name": column.name, "kind": column.kind.value}
                for column in self.columns
            ]
        }

    @classmethod
    def from_dict(cls, table_name: str, data: Dict[str, Any]) -> "TableSyncConfig":
        """
        Build a config from a mapping

        Columns may be plain names (scalar) or ``{name, kind}`` mappings.
        The channel defaults to ``sync_<table>`` and the key to ``id``.
        """
        columns = []
        for column in data.get("columns") or []:
            if isinstance(column, str):
                columns.append(ColumnSpec(column))
                continue
            try:
                kind = ColumnKind(column.get("kind", ColumnKind.SCALAR.value))
            except ValueError as e:
                raise ConfigurationError(
                    f"Invalid column kind for {table_name}.{column.get('name')}: {e}"
                ) from e
            columns.append(ColumnSpec(column["name"], kind))

        return cls(
            table_name=table_name,
            channel=data.get("channel") or f"sync_{table_name}",
            primary_key=data.get("primary_key", "id"),
            columns=tuple(columns)
        )


def _check_identifier(name: str, table_name: str) -> None:
    if not isinstance(name, str) or not _IDENTIFIER.match(name):
        raise ConfigurationError(f"Invalid identifier {name!r} in table config {table_name!r}")


class TableRegistry:
    """Ordered, immutable set of table configs with unique names and channels"""

    def __init__(self, configs: List[TableSyncConfig]):
        self._tables: Dict[str, TableSyncConfig] = {}
        self._channels: Dict[str, TableSyncConfig] = {}

        for config in configs:
            if config.table_name in self._tables:
                raise ConfigurationError(f"Table '{config.table_name}' registered twice")
            if config.channel in self._channels:
                raise ConfigurationError(
                    f"Channel '{config.channel}' used by both "
                    f"{self._channels[config.channel].table_name} and {config.table_name}"
                )
            self._tables[config.table_name] = config
            self._channels[config.channel] = config

    def get(self, table_name: str) -> TableSyncConfig:
        try:
            return self._tables[table_name]
        except KeyError:
            raise UnknownTableError(f"Table '{table_name}' is not configured for sync") from None

    def for_channel(self, channel: str) -> Optional[TableSyncConfig]:
        return self._channels.get(channel)

    def table_names(self) -> List[str]:
        return list(self._tables)

    def channels(self) -> List[str]:
        return list(self._channels)

    def __iter__(self) -> Iterator[TableSyncConfig]:
        return iter(self._tables.values())

    def __len__(self) -> int:
        return len(self._tables)

    def __contains__(self, table_name: object) -> bool:
        return table_name in self._tables

    @classmethod
    def from_dict(cls, data: Dict[str, Dict[str, Any]]) -> "TableRegistry":
        """Build a registry from ``{table_name: {channel, primary_key, columns}}``"""
        return cls([
            TableSyncConfig.from_dict(table_name, table_data or {})
            for table_name, table_data in data.items()
        ])

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "TableRegistry":
        """
        Load a registry from a YAML file with a top-level ``tables`` mapping

        Raises:
            ConfigurationError: File is missing or has no tables
        """
        config_file = Path(path)
        if not config_file.exists():
            raise ConfigurationError(f"Table config file not found: {config_file}")

        with open(config_file, "r") as f:
            data = yaml.safe_load(f) or {}

        tables = data.get("tables")
        if not tables:
            raise ConfigurationError(f"No tables defined in {config_file}")
        return cls.from_dict(tables)


def _scalars(*names: str) -> Tuple[ColumnSpec, ...]:
    return tuple(ColumnSpec(name) for name in names)


def _arrays(*names: str) -> Tuple[ColumnSpec, ...]:
    return tuple(ColumnSpec(name, ColumnKind.ARRAY) for name in names)


DEFAULT_TABLES: List[TableSyncConfig] = [
    TableSyncConfig(
        table_name="conversations",
        channel="sync_conversations",
        primary_key="id",
        columns=_scalars("id", "user_id", "user_message", "bot_response", "created_at")
    ),
    TableSyncConfig(
        table_name="emotion_states",
        channel="sync_emotion_states",
        primary_key="user_id",
        columns=_scalars(
            "user_id", "energy_level", "intimacy_level", "interest_level", "mood_type",
            "conversation_count", "last_interaction", "created_at", "updated_at",
            "valence", "arousal", "dominance"
        )
    ),
    TableSyncConfig(
        table_name="user_memories",
        channel="sync_user_memories",
        primary_key="id",
        columns=(
            _scalars("id", "user_id", "memory_type", "content")
            + _arrays("keywords")
            + _scalars(
                "importance_score", "emotional_weight", "access_count",
                "created_at", "last_accessed", "expires_at"
            )
        )
    ),
    TableSyncConfig(
        table_name="conversation_analysis",
        channel="sync_conversation_analysis",
        primary_key="id",
        columns=(
            _scalars(
                "id", "user_id", "message_id", "user_message", "sentiment",
                "emotion_detected", "topic_category"
            )
            + _arrays("keywords")
            + _scalars("importance_score", "confidence_score", "analyzed_at")
        )
    ),
    TableSyncConfig(
        table_name="user_relationships",
        channel="sync_user_relationships",
        primary_key="user_id",
        columns=(
            _scalars(
                "user_id", "affection_level", "trust_level", "respect_level",
                "comfort_level", "relationship_stage", "conversation_count",
                "meaningful_interactions", "preferred_formality", "communication_pace",
                "humor_receptivity"
            )
            + _arrays("known_interests", "avoided_topics", "positive_triggers", "negative_triggers")
            + _scalars(
                "first_interaction", "last_interaction", "last_mood_detected",
                "created_at", "updated_at"
            )
        )
    ),
]


def default_registry() -> TableRegistry:
    return TableRegistry(DEFAULT_TABLES)
