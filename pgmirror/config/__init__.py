"""Configuration module"""

from .settings import Settings, get_settings
from .tables import (
    DEFAULT_TABLES,
    ColumnKind,
    ColumnSpec,
    TableRegistry,
    TableSyncConfig,
    default_registry,
)

__all__ = [
    "Settings",
    "get_settings",
    "DEFAULT_TABLES",
    "ColumnKind",
    "ColumnSpec",
    "TableRegistry",
    "TableSyncConfig",
    "default_registry",
]
